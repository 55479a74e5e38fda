"""ASGI middleware that drains post-response tasks.

This is a plain ASGI middleware rather than a ``BaseHTTPMiddleware``: it
has to observe the status the application actually sent and run after the
last body chunk has gone out.
"""

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from tryon_gateway.gateway.response_hooks import PostResponseTasks

POST_RESPONSE_TASKS_KEY = "post_response_tasks"


class ResponseHooksMiddleware:
    """Creates a ``PostResponseTasks`` queue per request and runs it at the end.

    The queue is exposed as ``request.state.post_response_tasks``. If the
    application raises before a response was started, the tasks see
    status 500, which is what the server error handler sends.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        tasks = PostResponseTasks()
        scope.setdefault("state", {})[POST_RESPONSE_TASKS_KEY] = tasks
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            await tasks.run(status_code)
