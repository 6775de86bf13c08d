from uuid import uuid4

from .config_log import request_id_ctx


class RequestIDMiddleware:
    """
    - Takes X-Request-ID from the client or generates one.
    - Binds it to a ContextVar so the logging filter picks it up.
    - Echoes the header back so clients can correlate log lines.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        rid = request.headers.get("X-Request-ID") or uuid4().hex[:12]
        token = request_id_ctx.set(rid)
        try:
            response = self.get_response(request)
        finally:
            request_id_ctx.reset(token)
        response["X-Request-ID"] = rid
        return response
