"""Metrics middleware for automatic request tracking."""

from time import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from tryon_gateway.core.metrics import active_requests, request_latency_seconds, request_total


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collects latency, totals and in-flight counts for every request.

    Health and metrics endpoints are excluded.
    """

    EXCLUDED_PATHS = {"/metrics", "/health", "/health/ready"}

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path

        if path in self.EXCLUDED_PATHS:
            return await call_next(request)

        method = request.method
        active_requests.inc()
        start_time = time()

        try:
            response = await call_next(request)
            endpoint = self._get_endpoint(request)
            request_latency_seconds.labels(endpoint=endpoint, method=method).observe(time() - start_time)
            request_total.labels(endpoint=endpoint, method=method, status=str(response.status_code)).inc()
            return response

        except Exception:
            endpoint = self._get_endpoint(request)
            request_latency_seconds.labels(endpoint=endpoint, method=method).observe(time() - start_time)
            request_total.labels(endpoint=endpoint, method=method, status="500").inc()
            raise

        finally:
            active_requests.dec()

    def _get_endpoint(self, request: Request) -> str:
        """Full route pattern when matched (``/api/v1/api-keys/{key_id}``), else the raw path.

        The matched route may carry only its own path, without the prefix of
        the router it was included through or the mount it sits under. The
        prefix is recovered as the part of the request path in front of the
        longest tail the route's pattern matches.
        """
        path = request.url.path
        route = request.scope.get("route")
        if route is None or not hasattr(route, "path_regex"):
            return path

        template: str = getattr(route, "path_format", route.path)
        for index, char in enumerate(path):
            if char == "/" and route.path_regex.match(path[index:]):
                return f"{path[:index]}{template}"
        return template
