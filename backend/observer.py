"""
Request observer: one outcome record per completed request.

The route layer builds a `RequestOutcome` (including the handler's error
message, if any) and schedules `RequestObserver.notify` as a background
task, so it runs only after the response has been sent. `notify` logs
the record and, when `LOG_SERVICE_URL` is set, forwards it to the log
service. Nothing here can change or delay what the client receives.
"""

import httpx
import structlog

from models import RequestOutcome
from settings import settings

log = structlog.get_logger(__name__)


class RequestObserver:
    def __init__(self, transport: httpx.BaseTransport | None = None):
        self._transport = transport

    def notify(self, outcome: RequestOutcome) -> None:
        doc = outcome.model_dump(mode="json")
        log.info("request_completed", **doc)

        base_url = settings.log_service_url
        if settings.app_env == "test" or not base_url:
            return

        try:
            with httpx.Client(
                transport=self._transport, timeout=settings.log_service_timeout
            ) as client:
                client.post(f"{base_url.rstrip('/')}/api/logs", json=doc).raise_for_status()
        except Exception as e:
            log.error("log_sink_failed", error=str(e), url=doc["url"])
