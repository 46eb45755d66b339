import argparse
import asyncio
import logging
import os
import threading

import uvicorn
from flask import Flask, request
from uvicorn.middleware.wsgi import WSGIMiddleware
from werkzeug.wrappers.response import Response as BaseResponse

from wecom_channel.api.account_status_get import AccountStatusGet
from wecom_channel.api.webhook_events_get import WebhookEventsGet
from wecom_channel.api.webhook_wecom import WebhookWecom
from wecom_channel.helpers.api import ApiHandler
from wecom_channel.helpers.lifecycle import AccountLifecycleManager
from wecom_channel.helpers.settings import load_plugin_config

logger = logging.getLogger(__name__)

lock = threading.RLock()


def register_api_handler(app: Flask, handler: type[ApiHandler], rule: str | None = None):
    name = handler.__module__.split(".")[-1]
    instance = handler(app, lock)

    # path variables are read back from request.path by the handler
    async def handler_wrap(**_path_args) -> BaseResponse:
        return await instance.handle_request(request=request)

    app.add_url_rule(
        rule or f"/{name}",
        f"/{name}",
        handler_wrap,
        methods=handler.get_methods(),
    )


def create_app() -> Flask:
    # wecom_channel is a namespace package, so Flask cannot derive a root path from it
    webapp = Flask("app", root_path=os.path.dirname(os.path.abspath(__file__)))
    webapp.json.sort_keys = False

    register_api_handler(webapp, AccountStatusGet)
    register_api_handler(webapp, WebhookEventsGet)
    # Webhook paths come from account config; unknown paths get a 404 from the receiver.
    register_api_handler(webapp, WebhookWecom, rule="/<path:subpath>")
    return webapp


def run():
    parser = argparse.ArgumentParser(description="WeCom channel webhook server")
    parser.add_argument("--config", default=None, help="YAML/JSON config file")
    parser.add_argument("--host", default=os.environ.get("WECOM_HOST", "localhost"))
    parser.add_argument(
        "--port", type=int, default=int(os.environ.get("WECOM_PORT", "8787"))
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=os.environ.get("WECOM_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = load_plugin_config(args.config)
    manager = AccountLifecycleManager.get_instance()
    states = asyncio.run(manager.start_all(cfg))
    for state in states:
        logger.warning(
            "WeCom account %s: running=%s path=%s",
            state.account_id,
            state.running,
            state.webhook_path,
        )

    webapp = create_app()
    try:
        uvicorn.run(WSGIMiddleware(webapp), host=args.host, port=args.port)
    finally:
        manager.stop_all()


if __name__ == "__main__":
    run()
