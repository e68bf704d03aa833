from __future__ import annotations

import time
from typing import Any, Callable

import httpx

STATUS_TTL_SECONDS = 60.0


class EntriesClient:
    """HTTP client for the ``/u`` routes used by front ends.

    The last status response is memoized for ``status_ttl_seconds``.
    ``get_status`` never hits the network: it returns the memoized value
    or ``None`` once it has expired, and callers decide when to call
    ``refresh_status``. Clocking in or out drops the memoized value.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        status_ttl_seconds: float = STATUS_TTL_SECONDS,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )
        self._ttl = status_ttl_seconds
        self._clock = clock
        self._cached_status: dict[str, Any] | None = None
        self._cached_expiry = 0.0

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._http.request(method, path, **kwargs)
        response.raise_for_status()
        return response.json()

    def list(self, *, tz: str | None = None) -> dict[str, list[dict[str, Any]]]:
        params = {"tz": tz} if tz else None
        return self._request("GET", "/u/entries", params=params)

    def get_status(self) -> dict[str, Any] | None:
        if self._cached_expiry < self._clock():
            return None
        return self._cached_status

    def refresh_status(self) -> dict[str, Any]:
        status = self._request("GET", "/u/status")
        self._cached_status = status
        self._cached_expiry = self._clock() + self._ttl
        return status

    def invalidate_status(self) -> None:
        self._cached_expiry = 0.0

    def clock_in(self) -> None:
        self._request("PUT", "/u/clock/in")
        self.invalidate_status()

    def clock_out(self) -> None:
        self._request("PUT", "/u/clock/out")
        self.invalidate_status()

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> EntriesClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
