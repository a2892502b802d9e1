"""Fetch stages of the pipeline: paged relation lists and common followings.

Both stages are synchronous. The aggregator fans each batch out over a
thread pool; pagination stays sequential so page bursts never compete with
the shared rate limiter. Progress is reported via a callback:
(operation, current, total) -> None.
"""

from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from followgraph.exceptions import APIError, DataError
from followgraph.network.cache import CacheStore, common_followings_key
from followgraph.network.client import BiliClient
from followgraph.network.control import PipelineControl
from followgraph.network.dedup import RequestDeduplicator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]

FOLLOWINGS = "followings"
FOLLOWERS = "followers"

DEFAULT_PAGE_SIZE = 50
DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY = 0.3


class PaginatedFetcher:
    """Walk a paged relation list to completion.

    Page 1 tells us ``total``; the remaining pages are fetched in order.
    Pages that fail or come back malformed are skipped and listed in
    ``skipped_pages`` after the run.
    """

    def __init__(
        self,
        client: BiliClient,
        *,
        control: Optional[PipelineControl] = None,
        progress_callback: Optional[ProgressCallback] = None,
        progress_page_interval: int = 5,
    ) -> None:
        self._client = client
        self._control = control
        self._progress_callback = progress_callback
        self._progress_page_interval = max(1, progress_page_interval)
        self.skipped_pages: List[int] = []

    def fetch_all(
        self,
        vmid: int,
        page_size: int = DEFAULT_PAGE_SIZE,
        resource: str = FOLLOWINGS,
    ) -> List[Dict[str, Any]]:
        """Return every list item of ``resource`` for ``vmid`` in page order."""
        if resource not in (FOLLOWINGS, FOLLOWERS):
            raise ValueError(f"Unknown relation list '{resource}'")
        if page_size < 1:
            raise ValueError("page_size must be positive")

        operation = f"Fetching {resource}"
        self.skipped_pages = []

        self._checkpoint()
        first = self._fetch_page(resource, vmid, 1, page_size, None)
        first_items = _page_items(first)
        total = _page_total(first)
        if first_items is None or total is None:
            raise DataError(
                f"First page of {resource} for {vmid} is malformed",
                details="Expected data.list and data.total in the response.",
            )

        items: List[Dict[str, Any]] = list(first_items)
        total_pages = max(1, math.ceil(total / page_size))
        offset = _page_offset(first)
        self._report(operation, len(items), total)

        for page in range(2, total_pages + 1):
            self._checkpoint()
            try:
                response = self._fetch_page(resource, vmid, page, page_size, offset)
            except APIError as exc:
                logger.warning(
                    "Page %d/%d of %s for %s failed: %s. Skipping",
                    page,
                    total_pages,
                    resource,
                    vmid,
                    exc.message,
                )
                self.skipped_pages.append(page)
            else:
                batch = _page_items(response)
                if batch is None:
                    logger.warning(
                        "Page %d/%d of %s for %s is malformed. Skipping",
                        page,
                        total_pages,
                        resource,
                        vmid,
                    )
                    self.skipped_pages.append(page)
                else:
                    items.extend(batch)
                    offset = _page_offset(response) or offset

            if page % self._progress_page_interval == 0:
                self._report(operation, len(items), total)

        logger.info(
            "Fetched %d/%d %s for %s over %d pages (%d skipped)",
            len(items),
            total,
            resource,
            vmid,
            total_pages,
            len(self.skipped_pages),
        )
        self._report(operation, len(items), total)
        return items

    def _fetch_page(
        self,
        resource: str,
        vmid: int,
        page: int,
        page_size: int,
        offset: Optional[str],
    ) -> Dict[str, Any]:
        if resource == FOLLOWERS:
            return self._client.get_followers_page(vmid, pn=page, ps=page_size, offset=offset)
        return self._client.get_followings_page(vmid, pn=page, ps=page_size)

    def _checkpoint(self) -> None:
        if self._control is not None:
            self._control.checkpoint()

    def _report(self, operation: str, current: int, total: int) -> None:
        if self._progress_callback:
            self._progress_callback(operation, current, total)


class CommonFollowingsAggregator:
    """Fetch common followings for many users in paced, concurrent batches.

    Each lookup goes cache -> deduplicator -> client. A failed lookup is
    recorded as an empty list and listed in ``failed``; it never aborts the
    run. Pacing between batches is skipped when the next batch is entirely
    cached.
    """

    def __init__(
        self,
        client: BiliClient,
        *,
        cache: Optional[CacheStore] = None,
        deduplicator: Optional[RequestDeduplicator] = None,
        control: Optional[PipelineControl] = None,
        progress_callback: Optional[ProgressCallback] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        cache_ttl: Optional[int] = None,
        progress_item_interval: int = 50,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._client = client
        self._cache = cache
        self._dedup = deduplicator or RequestDeduplicator()
        self._control = control
        self._progress_callback = progress_callback
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._cache_ttl = cache_ttl
        self._progress_item_interval = max(1, progress_item_interval)
        self._sleep = sleep
        self.failed: List[int] = []
        self.cache_hits = 0

    def aggregate(self, mids: Sequence[int]) -> Dict[int, List[int]]:
        """Return {mid: [mids of its common followings]} for every input mid."""
        mids = list(dict.fromkeys(mids))
        total = len(mids)
        operation = "Loading common followings"
        results: Dict[int, List[int]] = {}
        self.failed = []
        self.cache_hits = 0

        batches = [mids[i: i + self._batch_size] for i in range(0, total, self._batch_size)]
        self._report(operation, 0, total)

        with ThreadPoolExecutor(max_workers=self._batch_size) as pool:
            for index, batch in enumerate(batches):
                self._checkpoint()

                futures = {pool.submit(self._fetch_one, mid): mid for mid in batch}
                for future in as_completed(futures):
                    mid = futures[future]
                    try:
                        common, from_cache = future.result()
                    except Exception as exc:
                        logger.warning("Loading common followings failed for %s: %s", mid, exc)
                        self.failed.append(mid)
                        results[mid] = []
                        continue
                    results[mid] = common
                    if from_cache:
                        self.cache_hits += 1

                done = min((index + 1) * self._batch_size, total)
                if done % self._progress_item_interval == 0 or done >= total:
                    self._report(operation, done, total)

                if index + 1 < len(batches) and not self._batch_cached(batches[index + 1]):
                    self._sleep(self._batch_delay)

        logger.info(
            "Loaded common followings for %d users (%d from cache, %d failed)",
            total,
            self.cache_hits,
            len(self.failed),
        )
        return {mid: results[mid] for mid in mids}

    def _fetch_one(self, mid: int) -> Tuple[List[int], bool]:
        key = common_followings_key(mid)

        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                common = extract_common_mids(cached)
                if common is not None:
                    return common, True
                logger.debug("Cached common followings for %s have the wrong shape", mid)
                self._cache.remove(key)

        def load() -> List[int]:
            response = self._client.get_common_followings(mid)
            common = extract_common_mids(response)
            if common is None:
                raise DataError(f"Malformed common followings response for {mid}")
            if self._cache is not None:
                self._cache.set(key, response, ttl=self._cache_ttl)
            return common

        return list(self._dedup.dedupe(key, load)), False

    def _batch_cached(self, batch: Sequence[int]) -> bool:
        if self._cache is None:
            return False
        return all(self._cache.contains(common_followings_key(mid)) for mid in batch)

    def _checkpoint(self) -> None:
        if self._control is not None:
            self._control.checkpoint()

    def _report(self, operation: str, current: int, total: int) -> None:
        if self._progress_callback:
            self._progress_callback(operation, current, total)


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def _page_data(response: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(response, dict):
        return None
    data = response.get("data")
    return data if isinstance(data, dict) else None


def _page_items(response: Any) -> Optional[List[Dict[str, Any]]]:
    data = _page_data(response)
    if data is None or not isinstance(data.get("list"), list):
        return None
    return [item for item in data["list"] if isinstance(item, dict)]


def _page_total(response: Any) -> Optional[int]:
    data = _page_data(response)
    if data is None:
        return None
    total = data.get("total")
    if isinstance(total, bool) or not isinstance(total, int) or total < 0:
        return None
    return total


def _page_offset(response: Any) -> Optional[str]:
    data = _page_data(response)
    if data is None:
        return None
    offset = data.get("offset")
    return str(offset) if offset else None


def extract_common_mids(response: Any) -> Optional[List[int]]:
    """Return the mids listed in an endpoint-C response, or None if malformed.

    A null ``data.list`` means nobody in common.
    """
    data = _page_data(response)
    if data is None:
        return None
    entries = data.get("list")
    if entries is None:
        return []
    if not isinstance(entries, list):
        return None
    mids: List[int] = []
    for entry in entries:
        if isinstance(entry, dict) and entry.get("mid") is not None:
            try:
                mids.append(int(entry["mid"]))
            except (TypeError, ValueError):
                continue
    return mids
