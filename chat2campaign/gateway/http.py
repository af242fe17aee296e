"""Blocking HTTP client used by the API gateway.

Requests go through one shared ``requests.Session``.  The gateway owns retry
and circuit-breaking, so the session is mounted without urllib3 retries.
Calls are blocking and are meant to be offloaded with ``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests
from requests import Session
from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)

USER_AGENT = "Chat2Campaign/1.0"


class UpstreamRequestError(Exception):
    """Raised when an upstream call returns a non-2xx status or unreadable body."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None) -> None:
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{url}: {reason}")


class HttpClient:
    """Thin JSON-over-HTTP wrapper around a requests Session."""

    def __init__(self, session: Session | None = None) -> None:
        self._session = session or self._create_session()

    @staticmethod
    def _create_session() -> Session:
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def get_json(self, url: str, headers: dict[str, str], timeout: float) -> Any:
        """GET *url* and decode the JSON body.

        Raises:
            UpstreamRequestError: On non-2xx status or a body that is not JSON.
            requests.RequestException: On connection errors and timeouts.
        """
        response = self._session.get(url, headers=headers, timeout=timeout)
        if not response.ok:
            raise UpstreamRequestError(
                url, f"HTTP {response.status_code}: {response.reason}", response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamRequestError(url, "response body is not valid JSON") from exc

    def close(self) -> None:
        self._session.close()
