"""
Mock data and fixtures for followgraph tests.

Provides realistic test data that mirrors actual Bilibili relation API
responses, plus deterministic clock and sleep doubles for timing code.
"""
import json
import threading
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock


def create_mock_user(mid: int, uname: Optional[str] = None, vip: bool = False) -> Dict[str, Any]:
    """Create a relation list item as returned in data.list."""
    return {
        "mid": mid,
        "attribute": 2,
        "mtime": 1700000000,
        "tag": None,
        "special": 0,
        "uname": uname if uname is not None else f"user{mid}",
        "face": f"https://i0.hdslb.com/bfs/face/{mid}.jpg",
        "sign": "",
        "official_verify": {"type": -1, "desc": ""},
        "vip": {"vipType": 2 if vip else 0, "vipStatus": 1 if vip else 0},
    }


def create_mock_page_response(
    mids: List[int], total: int, offset: Optional[str] = None
) -> Dict[str, Any]:
    """Create a followings/followers page envelope."""
    return {
        "code": 0,
        "message": "0",
        "ttl": 1,
        "data": {
            "list": [create_mock_user(mid) for mid in mids],
            "offset": offset or "",
            "re_version": 0,
            "total": total,
        },
    }


def create_mock_common_response(mids: List[int]) -> Dict[str, Any]:
    """Create a common-followings envelope."""
    return {
        "code": 0,
        "message": "0",
        "ttl": 1,
        "data": {
            "desc": "",
            "list": [create_mock_user(mid) for mid in mids],
            "total": len(mids),
        },
    }


def create_mock_nav_response(mid: int = 42, is_login: bool = True) -> Dict[str, Any]:
    """Create a session identity envelope."""
    if not is_login:
        return {"code": -101, "message": "账号未登录", "ttl": 1, "data": {"isLogin": False}}
    return {
        "code": 0,
        "message": "0",
        "ttl": 1,
        "data": {"isLogin": True, "mid": mid, "uname": f"user{mid}", "face": "", "vipStatus": 0},
    }


def create_error_response(code: int, message: str = "error") -> Dict[str, Any]:
    return {"code": code, "message": message, "ttl": 1}


def create_mock_http_response(
    payload: Any = None, status: int = 200, raw: Optional[bytes] = None
) -> MagicMock:
    """Create a requests.Response double.

    ``raw`` gives a body that fails JSON decoding; no payload and no raw
    gives an empty body.
    """
    response = MagicMock()
    response.status_code = status
    if raw is not None:
        response.content = raw
        response.json.side_effect = ValueError("Expecting value")
    elif payload is None:
        response.content = b""
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.content = json.dumps(payload).encode("utf-8")
        response.json.return_value = payload
    return response


def pages_for(mids: List[int], page_size: int) -> Dict[int, Dict[str, Any]]:
    """Split mids into page envelopes keyed by page number."""
    total = len(mids)
    pages = {}
    for index in range(0, max(total, 1), page_size):
        pages[index // page_size + 1] = create_mock_page_response(
            mids[index: index + page_size], total
        )
    return pages


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stands in for time.sleep; records requested delays without blocking."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.calls: List[float] = []
        self._clock = clock
        self._lock = threading.Lock()

    def __call__(self, seconds: float) -> None:
        with self._lock:
            self.calls.append(seconds)
            if self._clock is not None:
                self._clock.advance(seconds)
