"""WeCom callback receiver.

Mounted on every registered webhook path (``/wecom`` unless an account
overrides ``webhookPath``).

- GET: URL verification, echoes the decrypted ``echostr``
- POST: encrypted message callback
"""

from flask import Response

from wecom_channel.helpers.api import ApiHandler, Request
from wecom_channel.helpers.webhook_targets import handle_webhook_request


class WebhookWecom(ApiHandler):
    @classmethod
    def get_methods(cls) -> list[str]:
        return ["GET", "POST"]

    async def process(self, input: dict, request: Request) -> Response:
        result = await handle_webhook_request(
            method=request.method,
            path=request.path,
            query=request.args,
            body=request.get_data(),
        )
        return Response(result.body, status=result.status, mimetype=result.content_type)
