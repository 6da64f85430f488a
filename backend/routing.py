"""
Route class that renders `ApiError`s and reports every request.

`ObservedRoute` wraps each FastAPI endpoint:
- `ApiError` subclasses become `{"error": message}` with their status.
- Anything unexpected is logged with its traceback and becomes a 500
  carrying the exception message.
- A `RequestOutcome` is built with the error message passed explicitly
  and attached as a background task, so the observer runs after the
  response is sent.

Use it with `APIRouter(route_class=ObservedRoute)`. Requests that match no
route (404) or no method (405) never reach a route, so `create_app`
registers `http_exception_handler` for those.
"""

import time
from datetime import datetime, timezone
from typing import Callable

import structlog
from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.background import BackgroundTask, BackgroundTasks
from starlette.exceptions import HTTPException

from errors import ApiError
from models import RequestOutcome
from settings import settings

log = structlog.get_logger(__name__)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _add_background(response: Response, func: Callable, *args) -> None:
    if response.background is None:
        response.background = BackgroundTask(func, *args)
        return
    tasks = BackgroundTasks()
    tasks.add_task(response.background)
    tasks.add_task(func, *args)
    response.background = tasks


class ObservedRoute(APIRoute):
    def get_route_handler(self) -> Callable:
        handler = super().get_route_handler()
        endpoint = self.path_format

        async def observed_handler(request: Request) -> Response:
            started_at = datetime.now(timezone.utc)
            started = time.perf_counter()
            error: str | None = None

            try:
                response = await handler(request)
            except ApiError as e:
                error = e.message
                response = _error_response(e.status_code, e.message)
            except RequestValidationError:
                error = "Malformed request"
                response = _error_response(400, error)
            except HTTPException as e:
                error = str(e.detail)
                response = _error_response(e.status_code, error)
            except Exception as e:
                log.exception("unhandled_error", endpoint=endpoint)
                error = str(e)
                response = _error_response(500, error)

            duration_ms = int((time.perf_counter() - started) * 1000)
            _observe(request, response, endpoint, started_at, duration_ms, error)
            return response

        return observed_handler


def _observe(
    request: Request,
    response: Response,
    endpoint: str,
    started_at: datetime,
    duration_ms: int,
    error: str | None,
) -> None:
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"

    outcome = RequestOutcome(
        service=settings.service_name,
        method=request.method,
        url=url,
        statusCode=response.status_code,
        endpoint=endpoint,
        timestamp=started_at,
        durationMs=duration_ms,
        message=f"HTTP {request.method} {url} finished in {duration_ms}ms",
        error=error,
    )
    _add_background(response, request.app.state.observer.notify, outcome)


async def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    """Render router-level 404/405 as `{"error": ...}` and report them.

    These are raised before any `ObservedRoute` handler runs, so the
    duration is zero and the endpoint is the raw path.
    """

    error = str(exc.detail)
    response = JSONResponse(
        {"error": error}, status_code=exc.status_code, headers=getattr(exc, "headers", None)
    )
    _observe(request, response, request.url.path, datetime.now(timezone.utc), 0, error)
    return response
