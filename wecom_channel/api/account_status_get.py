"""Account status API: read-only lifecycle snapshots.

Mounted at GET /account_status_get.

Query parameters:
- account_id: Return only this account
"""

from wecom_channel.helpers.api import ApiHandler, Request
from wecom_channel.helpers.lifecycle import AccountLifecycleManager


class AccountStatusGet(ApiHandler):
    @classmethod
    def get_methods(cls) -> list[str]:
        return ["GET"]

    async def process(self, input: dict, request: Request) -> dict:
        manager = AccountLifecycleManager.get_instance()
        account_id = request.args.get("account_id")

        if account_id:
            state = manager.status(account_id)
            if state is None:
                return {"error": f"Unknown account: {account_id}"}
            return {"accounts": [state.model_dump(mode="json")]}

        return {
            "accounts": [state.model_dump(mode="json") for state in manager.list_status()]
        }
