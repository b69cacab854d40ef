from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import requests

from leadwatch.errors import SourceError

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass
class RequestManager:
    timeout_seconds: int = 10
    max_retries: int = 3
    backoff_seconds: tuple[int, int, int] = (2, 4, 8)
    user_agent: str = "leadwatch/0.1"
    auth: tuple[str, str] | None = None
    session: requests.Session | None = field(default=None, repr=False)

    def open(self) -> None:
        if self.session is None:
            self.session = requests.Session()
            self.session.headers["User-Agent"] = self.user_agent
            if self.auth:
                self.session.auth = self.auth

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None

    def get_text(self, url: str, headers: dict[str, str] | None = None) -> str:
        response = self._request("GET", url, headers=headers)
        return response.text

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.open()
        last_error: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                resp = self.session.request(method, url, timeout=self.timeout_seconds, **kwargs)
                if resp.status_code in RETRYABLE_STATUS:
                    raise requests.HTTPError(f"retryable status {resp.status_code}", response=resp)
                resp.raise_for_status()
                return resp
            except requests.RequestException as exc:
                last_error = exc
                if isinstance(exc, requests.ConnectionError) and "NameResolutionError" in str(exc):
                    break
                if attempt >= self.max_retries - 1:
                    break
                delay = self.backoff_seconds[min(attempt, len(self.backoff_seconds) - 1)]
                time.sleep(delay)
        raise SourceError(f"Request failed after retries: {url} ({last_error})")
