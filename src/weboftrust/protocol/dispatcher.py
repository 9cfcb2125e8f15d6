# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Request dispatcher.

Routes a request to its handler by its ``Message`` parameter and converts
every failure into an ``Error`` reply:

    {"Message": "Error", "OriginalMessage": ..., "Description": ..., "ErrorType": ...}

Each request runs in its own correlation-id scope so the log lines of one
request can be grouped.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from ..core.exceptions import NotFoundError, ValidationError, WotException
from ..core.logging import correlation_context, request_logger
from ..web_of_trust import WebOfTrust
from .handlers import HANDLERS, NULL, Params, Reply, ReplyType

logger = logging.getLogger(__name__)

Handler = Callable[[WebOfTrust, Params], Reply]


def error_reply(original_message: Any, description: str, error_type: str) -> Reply:
    return {
        "Message": ReplyType.ERROR.value,
        "OriginalMessage": NULL if original_message is None else str(original_message),
        "Description": description,
        "ErrorType": error_type,
    }


class Dispatcher:
    """Dispatches protocol requests to a ``WebOfTrust`` node."""

    def __init__(self, wot: WebOfTrust, handlers: Mapping[str, Handler] | None = None):
        self.wot = wot
        self.handlers = dict(HANDLERS if handlers is None else handlers)

    def handle(self, params: Mapping[str, str]) -> Reply:
        """Handle one request; never raises."""
        message = params.get("Message") if isinstance(params, Mapping) else None
        with correlation_context():
            start = time.time()
            request_logger.log_request(str(message), dict(params) if isinstance(params, Mapping) else {})
            reply = self._dispatch(message, params)
            request_logger.log_reply(str(message), reply["Message"], (time.time() - start) * 1000)
        return reply

    def _dispatch(self, message: Any, params: Mapping[str, str]) -> Reply:
        try:
            if not message:
                raise ValidationError("Missing mandatory parameter: Message", field="Message")
            handler = self.handlers.get(message)
            if handler is None:
                raise ValidationError(f"Unknown message: {message}", field="Message", value=message)
            return handler(self.wot, params)

        except ValidationError as e:
            logger.info(f"Invalid {message} request: {e.message}")
            return error_reply(message, e.message, type(e).__name__)
        except NotFoundError as e:
            logger.info(f"{message} failed: {e.message}")
            return error_reply(message, e.message, type(e).__name__)
        except WotException as e:
            logger.warning(f"{message} failed: {e.message}")
            return error_reply(message, e.message, type(e).__name__)
        except Exception as e:
            logger.exception(f"Unexpected error handling {message}")
            return error_reply(message, f"Internal error: {e}", type(e).__name__)
