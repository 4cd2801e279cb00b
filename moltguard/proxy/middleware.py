"""Per-request logging context.

``RequestContextMiddleware`` is a plain ASGI middleware so that the route, the
``GatewayError`` handler and the middleware share one context: bindings made by
``set_request_id`` in a route are visible to the error handler and are cleared
here once the response has been sent.

Registration (in create_app() in moltguard/main.py):
    application.add_middleware(RequestContextMiddleware)
"""

from __future__ import annotations

from starlette.types import ASGIApp, Receive, Scope, Send

from moltguard.utils.logger import clear_request_context


class RequestContextMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        clear_request_context()
        try:
            await self.app(scope, receive, send)
        finally:
            clear_request_context()
