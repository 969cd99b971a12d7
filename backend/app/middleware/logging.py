"""Request logging for the pick endpoints.

One JSON line per request on ``lastpick.http``. Competition/round/fixture
ids from the matched route are included so a failed pick can be traced back
without reading bodies; client addresses are only logged hashed.
"""

import hashlib
import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("lastpick.http")

_ID_PARAMS = ("competition_id", "round_id", "fixture_id", "player_id")


def _client_hash(request: Request):
    if not request.client or not request.client.host:
        return None
    return hashlib.sha256(request.client.host.encode()).hexdigest()[:12]


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        # Path params are filled in by the router during call_next.
        params = request.scope.get("path_params") or {}
        entry = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            "client_ip_hash": _client_hash(request),
            **{k: params[k] for k in _ID_PARAMS if k in params},
        }
        logger.log(
            logging.WARNING if response.status_code >= 400 else logging.INFO,
            json.dumps(entry),
        )
        response.headers["X-Request-ID"] = request_id
        return response


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
