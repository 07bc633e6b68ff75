import re
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def accepted_request_id(raw: str | None) -> str:
    """Reuse the caller's id when it is safe to log and echo, otherwise mint one."""
    if raw and REQUEST_ID_RE.match(raw):
        return raw
    return str(uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = accepted_request_id(request.headers.get("x-request-id"))
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response
