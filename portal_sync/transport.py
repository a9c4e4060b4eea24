"""HTTP transport with retry, backoff and request spacing."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import requests
from requests import Response

from . import __version__
from .errors import OperationCancelled, TransportError

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({408, 429})


def is_retryable(status_code: int) -> bool:
    """408, 429 and every 5xx are worth another attempt."""
    return status_code in RETRYABLE_STATUSES or status_code >= 500


class ResilientTransport:
    """Send requests through one session, spacing and retrying them.

    Every attempt first waits out the cool-down window left by the previous
    attempt. Retryable responses are retried after ``attempt * retry_delay``
    seconds until ``deadline`` seconds have passed since the first attempt;
    after that the last response is handed back as-is so callers inspect the
    status themselves.

    ``clock`` and ``sleep`` are injectable so tests run without real delays.
    When ``cancel`` is set, waits end early and raise OperationCancelled.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        auth: tuple[str, str] | None = None,
        timeout: float = 180.0,
        deadline: float = 600.0,
        retry_delay: float = 2.0,
        cooldown: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        cancel: threading.Event | None = None,
    ) -> None:
        self.session = session or requests.Session()
        if auth is not None:
            self.session.auth = auth
        self.session.headers.update(
            {"Accept": "application/json", "User-Agent": f"portal-sync/{__version__}"}
        )
        self.timeout = timeout
        self.deadline = deadline
        self.retry_delay = retry_delay
        self.cooldown = cooldown
        self.clock = clock
        self._sleep = sleep
        self.cancel = cancel
        self._not_before = 0.0

    def get(self, url: str, **kwargs: Any) -> Response:
        return self.execute("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> Response:
        return self.execute("POST", url, **kwargs)

    def delete(self, url: str, **kwargs: Any) -> Response:
        return self.execute("DELETE", url, **kwargs)

    def get_partial(self, url: str, from_byte: int, to_byte: int, **kwargs: Any) -> Response:
        """GET one byte range; same retry contract as execute()."""
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Range"] = f"bytes={from_byte}-{to_byte}"
        return self.execute("GET", url, headers=headers, **kwargs)

    def execute(
        self,
        method: str,
        url: str,
        *,
        params: dict | None = None,
        json: Any = None,
        data: Any = None,
        headers: dict | None = None,
        stream: bool = False,
    ) -> Response:
        started = self.clock()
        attempt = 0
        while True:
            attempt += 1
            try:
                response = self._send(method, url, params, json, data, headers, stream)
            except (requests.ConnectionError, requests.Timeout) as exc:
                if self.clock() - started >= self.deadline:
                    raise TransportError(f"{method} {url} failed after {attempt} attempts: {exc}") from exc
                logger.warning("%s %s failed (%s), attempt %s", method, url, exc, attempt)
                self.wait(attempt * self.retry_delay)
                continue

            if not is_retryable(response.status_code):
                return response
            if self.clock() - started >= self.deadline:
                logger.error(
                    "%s %s still %s after %s attempts, giving up",
                    method,
                    url,
                    response.status_code,
                    attempt,
                )
                return response

            delay = attempt * self.retry_delay
            logger.warning(
                "%s %s returned %s, retry %s in %.0fs", method, url, response.status_code, attempt, delay
            )
            response.close()
            self.wait(delay)

    def wait(self, seconds: float) -> None:
        """Block for `seconds`, or until the cancel event is set."""
        if seconds <= 0:
            self._check_cancelled()
            return
        if self.cancel is not None:
            if self.cancel.wait(seconds):
                raise OperationCancelled("Cancelled while waiting")
            return
        self._sleep(seconds)

    def _check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise OperationCancelled("Cancelled")

    def _send(self, method, url, params, json, data, headers, stream) -> Response:
        remaining = self._not_before - self.clock()
        if remaining > 0:
            self.wait(remaining)
        self._check_cancelled()
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                data=data,
                headers=headers,
                stream=stream,
                timeout=self.timeout,
            )
        finally:
            self._not_before = self.clock() + self.cooldown
        logger.debug("%s %s -> %s %s", method, url, response.status_code, response.reason)
        return response
