"""
Management API HTTP client.

- JSON only (application/json), bearer token auth.
- Methods: get_json, post_json, patch_json, put_json, delete_json.
- Retries with exponential backoff on network errors, timeouts, 429 and 5xx.
- No retry on other 4xx.
- Errors as HttpError with status, url, and body (status 0 = transport error).

Usage:
    client = ApiClient(base_url, token, verify_tls=True, timeout_sec=10, retries=3)
    data = client.get_json("/api/v2/clients", params={"page": 0})
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import requests

JSON = Union[Dict[str, Any], List[Any]]

_USER_AGENT = "tenantsync/HTTPClient"


@dataclass(eq=False)
class HttpError(Exception):
    """HTTP/transport error with context."""
    status: int
    url: str
    body: str = ""
    message: str = ""

    def __str__(self) -> str:
        base = f"HttpError(status={self.status}, url={self.url})"
        if self.message:
            base += f": {self.message}"
        if self.body:
            base += f" body={self.body[:200]}"
        return base

    @property
    def retryable(self) -> bool:
        return self.status == 0 or self.status == 429 or 500 <= self.status < 600


class ApiClient:
    """Minimal JSON HTTP client with retries and timeouts."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        verify_tls: bool = True,
        timeout_sec: float = 30,
        retries: int = 3,
        backoff_base_sec: float = 0.05,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.verify_tls = verify_tls
        self.timeout = float(timeout_sec)
        self.retries = max(0, int(retries))
        self.backoff = float(backoff_base_sec)
        self.log = logger or logging.getLogger("ts.http")

        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
            "User-Agent": _USER_AGENT,
        })

    # ------------- Public API -------------

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> JSON:
        return self._request_json("GET", path, params=params)

    def post_json(self, path: str, payload: Dict[str, Any]) -> JSON:
        return self._request_json("POST", path, payload)

    def patch_json(self, path: str, payload: Dict[str, Any]) -> JSON:
        return self._request_json("PATCH", path, payload)

    def put_json(self, path: str, payload: Dict[str, Any]) -> JSON:
        return self._request_json("PUT", path, payload)

    def delete_json(self, path: str) -> JSON:
        return self._request_json("DELETE", path)

    def close(self) -> None:
        self.session.close()

    # ------------- Internal -------------

    def _full_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request_json(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> JSON:
        url = self._full_url(path)
        attempts = self.retries + 1
        last_err: Optional[HttpError] = None

        for attempt in range(attempts):
            start = time.time()
            try:
                resp = self.session.request(
                    method=method,
                    url=url,
                    params=params,
                    json=payload,
                    timeout=self.timeout,
                    verify=self.verify_tls,
                )
            except requests.Timeout:
                err = HttpError(status=0, url=url, message="timed out")
            except requests.RequestException as e:
                err = HttpError(status=0, url=url, message=str(e))
            else:
                elapsed = (time.time() - start) * 1000
                if resp.status_code < 400:
                    self._log_ok(method, path, resp.status_code, elapsed)
                    return self._decode(resp, url)
                err = HttpError(
                    status=resp.status_code,
                    url=url,
                    body=resp.text or "",
                    message=resp.reason or "",
                )

            self._log_err(method, path, err.status, err)
            last_err = err
            if err.retryable and attempt < attempts - 1:
                self._sleep_backoff(attempt)
                continue
            raise err

        # Should not reach here
        assert last_err is not None
        raise last_err

    @staticmethod
    def _decode(resp: requests.Response, url: str) -> JSON:
        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            return resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise HttpError(status=resp.status_code, url=url, body=resp.text, message=f"invalid JSON: {e}")

    def _sleep_backoff(self, attempt: int) -> None:
        time.sleep(self.backoff * (2 ** attempt))

    def _log_ok(self, method: str, path: str, status: int, elapsed_ms: float) -> None:
        self.log.debug("%s %s -> %s in %.1fms", method, path, status, elapsed_ms)

    def _log_err(self, method: str, path: str, status: int, err: HttpError) -> None:
        self.log.warning("%s %s failed (status=%s): %s", method, path, status, err)
