"""Sync HTTP client for the Bilibili relation API with rate limiting.

Uses a shared requests.Session; concurrency comes from the caller's thread
pool, so the limiter and client are thread-safe.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests

from followgraph.exceptions import APIError, AuthenticationError, ErrorKind
from followgraph.models import UserIdentity
from followgraph.network.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Bilibili API base URL
BILIBILI_API_BASE = "https://api.bilibili.com"

FOLLOWERS_ENDPOINT = "/x/relation/fans"
FOLLOWINGS_ENDPOINT = "/x/relation/followings"
COMMON_FOLLOWINGS_ENDPOINT = "/x/relation/followings/followed_upper"
NAV_ENDPOINT = "/x/web-interface/nav"

# Application codes in the {code, message, data} envelope
SUCCESS_CODE = 0
RATE_LIMITED_CODE = -412

# Defaults
DEFAULT_TIMEOUT = 30
DEFAULT_MIN_INTERVAL = 0.25


class RateLimiter:
    """Minimum-interval rate limiter shared by every request of a pipeline.

    Each grant reserves the next free slot under the lock and sleeps outside
    it, so concurrent callers are spaced at least ``min_interval`` apart.
    Grant order among waiting threads is not guaranteed.
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_granted: Optional[float] = None
        self._granted = 0
        self._lock = threading.Lock()

    def acquire(self) -> float:
        """Block until the caller may issue a request. Returns seconds waited."""
        with self._lock:
            now = self._clock()
            if self._last_granted is None:
                slot = now
            else:
                slot = max(now, self._last_granted + self.min_interval)
            self._last_granted = slot
            self._granted += 1

        wait_time = slot - now
        if wait_time > 0:
            logger.debug("Rate limiter delaying request by %.3fs", wait_time)
            self._sleep(wait_time)
        return wait_time

    def get_usage_stats(self) -> Dict[str, Any]:
        """Return rate limiter statistics."""
        with self._lock:
            return {
                "requests_granted": self._granted,
                "last_granted": self._last_granted,
                "min_interval": self.min_interval,
            }


@dataclass(frozen=True)
class RequestResult:
    """Outcome of one logical request: either ``data`` or ``error`` is set."""

    data: Any = None
    error: Optional[APIError] = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.data


class BiliClient:
    """Sync wrapper around the Bilibili relation endpoints.

    Every attempt (retries included) goes through the rate limiter; failures
    are classified by the RetryPolicy and retried with backoff.
    """

    def __init__(
        self,
        *,
        base_url: str = BILIBILI_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        sessdata: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._rate_limiter = rate_limiter or RateLimiter()
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "User-Agent": "Mozilla/5.0 (compatible; followgraph/1.0)",
                "Accept": "application/json",
                "Referer": "https://www.bilibili.com/",
            }
        )
        if sessdata:
            self._session.cookies.set("SESSDATA", sessdata, domain=".bilibili.com")

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()

    def get_rate_limit_stats(self) -> Dict[str, Any]:
        return self._rate_limiter.get_usage_stats()

    def request(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> RequestResult:
        """Make a request with rate limiting and exponential backoff."""
        query = {k: v for k, v in (params or {}).items() if v is not None}
        url = f"{self._base_url}{endpoint}"

        attempt = 0
        while True:
            self._rate_limiter.acquire()
            try:
                payload = self._execute(url, query)
            except APIError as exc:
                error = exc
            else:
                return RequestResult(data=payload, attempts=attempt + 1)

            if not self._retry_policy.should_retry(error, attempt):
                if attempt > 0:
                    logger.warning(
                        "Giving up on %s after %d attempts: %s",
                        endpoint,
                        attempt + 1,
                        error.message,
                    )
                return RequestResult(error=error, attempts=attempt + 1)

            wait_time = self._retry_policy.backoff_delay(attempt)
            logger.warning(
                "%s on %s (attempt %d/%d). Retrying in %.1fs...",
                error.message,
                endpoint,
                attempt + 1,
                self._retry_policy.max_retries + 1,
                wait_time,
            )
            self._sleep(wait_time)
            attempt += 1

    def _execute(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Issue one GET and return the envelope, raising a classified APIError."""
        try:
            response = self._session.get(url, params=params, timeout=self._timeout)
        except requests.Timeout as exc:
            raise APIError("Request timed out", kind=ErrorKind.TIMEOUT, original_error=exc)
        except requests.RequestException as exc:
            raise APIError(
                "Network request failed", kind=ErrorKind.TRANSPORT, original_error=exc
            )

        status = response.status_code
        payload: Any = None
        decode_error: Optional[Exception] = None
        if response.content:
            try:
                payload = response.json()
            except ValueError as exc:
                decode_error = exc

        code = payload.get("code") if isinstance(payload, dict) else None

        # -412 means "slow down" whatever the HTTP status says
        if code == RATE_LIMITED_CODE:
            raise APIError(
                "Rate limited by upstream",
                kind=ErrorKind.RATE_LIMITED,
                status=status,
                code=code,
                details=payload.get("message"),
            )

        if status >= 400:
            raise APIError(
                f"HTTP {status}", kind=ErrorKind.HTTP_STATUS, status=status, code=code
            )

        if not response.content:
            raise APIError("Empty response body", kind=ErrorKind.DECODE, status=status)

        if not isinstance(payload, dict):
            raise APIError(
                "Failed to parse response",
                kind=ErrorKind.DECODE,
                status=status,
                original_error=decode_error,
            )

        if code != SUCCESS_CODE:
            raise APIError(
                payload.get("message") or "Request failed",
                kind=ErrorKind.API_CODE,
                status=status,
                code=code,
            )

        return payload

    # -----------------------------------------------------------------------
    # Relation endpoints
    # -----------------------------------------------------------------------

    def get_followers_page(
        self, vmid: int, pn: int = 1, ps: int = 20, offset: Optional[str] = None
    ) -> Dict[str, Any]:
        """Return one page of users following ``vmid``."""
        return self.request(
            FOLLOWERS_ENDPOINT, {"vmid": vmid, "ps": ps, "pn": pn, "offset": offset}
        ).unwrap()

    def get_followings_page(self, vmid: int, pn: int = 1, ps: int = 20) -> Dict[str, Any]:
        """Return one page of users ``vmid`` follows."""
        return self.request(
            FOLLOWINGS_ENDPOINT, {"vmid": vmid, "ps": ps, "pn": pn}
        ).unwrap()

    def get_common_followings(self, vmid: int) -> Dict[str, Any]:
        """Return the users ``vmid`` follows that the session user also follows."""
        return self.request(COMMON_FOLLOWINGS_ENDPOINT, {"vmid": vmid}).unwrap()

    # -----------------------------------------------------------------------
    # Session identity
    # -----------------------------------------------------------------------

    def get_current_identity(self) -> UserIdentity:
        """Resolve the logged-in user of the session."""
        result = self.request(NAV_ENDPOINT)
        if not result.ok:
            raise AuthenticationError(
                "Could not resolve the current user",
                details=result.error.message,
                original_error=result.error,
            )

        data = result.data.get("data") or {}
        if not isinstance(data, dict):
            raise AuthenticationError(
                "Identity response is malformed", details=f"data is {type(data).__name__}"
            )
        if not data.get("isLogin"):
            raise AuthenticationError(
                "Not logged in",
                details="Provide a SESSDATA cookie or an explicit mid.",
            )
        try:
            return UserIdentity(
                mid=int(data["mid"]),
                name=data.get("uname") or "",
                avatar=data.get("face") or "",
                is_vip=bool(data.get("vipStatus", 0)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise AuthenticationError(
                "Identity response is missing the user id", original_error=exc
            )
