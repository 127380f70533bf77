"""Request ids for tracing.

Every response carries ``X-Request-ID``. A well-formed id sent by the client
is echoed back; anything else is replaced by a fresh UUID. Log lines pick the
id up through ``sailsmart.core.logging.add_correlation_id``.
"""

import re
import uuid

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI

REQUEST_ID_HEADER = "X-Request-ID"

_REQUEST_ID = re.compile(r"[A-Za-z0-9._:\-]{1,128}")


def is_acceptable_request_id(value: str) -> bool:
    return _REQUEST_ID.fullmatch(value) is not None


def setup_correlation_middleware(app: FastAPI) -> None:
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name=REQUEST_ID_HEADER,
        update_request_header=True,
        generator=lambda: str(uuid.uuid4()),
        validator=is_acceptable_request_id,
    )


def get_correlation_id() -> str | None:
    """Current request id, None outside a request."""
    return correlation_id.get(None)
