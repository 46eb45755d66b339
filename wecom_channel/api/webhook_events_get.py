"""Inbound callback report: recent events and outcome counters.

Mounted at GET /webhook_events_get.

Query parameters:
- limit: Maximum number of events to return (default 50, at most 500)
- account_id: Only this account (``""`` selects signature failures)
- outcome: accepted | blocked | ignored | bad_signature | undecryptable
"""

from wecom_channel.helpers.api import ApiHandler, Request
from wecom_channel.helpers.channel_models import CallbackOutcome
from wecom_channel.helpers.webhook_event_log import WebhookEventLog

MAX_LIMIT = 500


class WebhookEventsGet(ApiHandler):
    @classmethod
    def get_methods(cls) -> list[str]:
        return ["GET"]

    async def process(self, input: dict, request: Request) -> dict:
        try:
            limit = int(request.args.get("limit", "50"))
        except ValueError:
            return {"error": "limit must be an integer"}
        limit = max(0, min(limit, MAX_LIMIT))

        outcome = request.args.get("outcome") or None
        if outcome is not None and outcome not in {str(o) for o in CallbackOutcome}:
            return {
                "error": f"Unknown outcome: {outcome}",
                "outcomes": [str(o) for o in CallbackOutcome],
            }
        account_id = request.args.get("account_id")

        log = WebhookEventLog.get_instance()
        return {
            "events": log.recent(limit=limit, account_id=account_id, outcome=outcome),
            "counts": log.counts(account_id),
            "rejected": log.rejected_total(account_id),
        }
