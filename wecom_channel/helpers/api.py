import json
import logging
import os
import threading
from abc import abstractmethod
from typing import Any, Dict, TypedDict, Union

from flask import Flask, Request, Response

from wecom_channel.helpers.errors import format_error

logger = logging.getLogger(__name__)

ThreadLockType = Union[threading.Lock, threading.RLock]

Input = dict
Output = Union[Dict[str, Any], Response, TypedDict]  # type: ignore


def is_development() -> bool:
    return os.environ.get("WECOM_ENV", "").lower() in ("dev", "development")


class ApiHandler:
    def __init__(self, app: Flask, thread_lock: ThreadLockType):
        self.app = app
        self.thread_lock = thread_lock

    @classmethod
    def get_methods(cls) -> list[str]:
        return ["POST"]

    @abstractmethod
    async def process(self, input: Input, request: Request) -> Output:
        pass

    async def handle_request(self, request: Request) -> Response:
        try:
            # input data from request based on type
            input_data: Input = {}
            if request.is_json:
                try:
                    if request.data:
                        input_data = request.get_json()
                except Exception as e:
                    logger.warning("Error parsing JSON: %s", e)
                    input_data = {}

            output = await self.process(input_data, request)

            if isinstance(output, Response):
                return output
            response_json = json.dumps(output, default=str)
            return Response(
                response=response_json, status=200, mimetype="application/json"
            )

        except Exception as e:
            logger.error("API error: %s", format_error(e))
            if is_development():
                error = format_error(e, include_trace=True)
                return Response(response=error, status=500, mimetype="text/plain")
            return Response(
                response=json.dumps({"error": "Internal server error"}),
                status=500,
                mimetype="application/json",
            )
