"""Pipeline context: owns the shared client state and runs the stages in order.

identity -> follow list -> common followings -> graph. Each pipeline holds
its own rate limiter, deduplicator and cache, so separate pipelines never
share state.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from followgraph.config import PipelineConfig
from followgraph.exceptions import AuthenticationError
from followgraph.models import GraphResult, UserIdentity
from followgraph.network.cache import CacheStore
from followgraph.network.client import BiliClient, RateLimiter
from followgraph.network.control import PipelineControl
from followgraph.network.dedup import RequestDeduplicator
from followgraph.network.fetcher import (
    FOLLOWERS,
    FOLLOWINGS,
    CommonFollowingsAggregator,
    PaginatedFetcher,
)
from followgraph.network.graph import GraphBuilder
from followgraph.network.retry import RetryPolicy

logger = logging.getLogger(__name__)


class FollowGraphPipeline:
    """Fetch a user's follow graph and build it for rendering.

    Progress is reported via a callback: (operation, current, total) -> None.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        *,
        session: Optional[requests.Session] = None,
        cache: Optional[CacheStore] = None,
        control: Optional[PipelineControl] = None,
        progress_callback: Optional[Callable[[str, int, int], None]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.control = control or PipelineControl()
        self._progress_callback = progress_callback
        sleep_kwargs: Dict[str, Any] = {"sleep": sleep} if sleep is not None else {}

        self.rate_limiter = RateLimiter(self.config.min_request_interval, **sleep_kwargs)
        self.retry_policy = RetryPolicy(
            max_retries=self.config.max_retries,
            base_delay=self.config.base_delay,
            max_delay=self.config.max_delay,
            jitter=self.config.jitter,
        )
        self.client = BiliClient(
            timeout=self.config.timeout,
            rate_limiter=self.rate_limiter,
            retry_policy=self.retry_policy,
            session=session,
            sessdata=self.config.sessdata,
            **sleep_kwargs,
        )
        self.deduplicator = RequestDeduplicator()
        if cache is None and self.config.use_cache:
            cache = CacheStore(
                self.config.cache_dir,
                prefix=self.config.cache_prefix,
                default_ttl=self.config.cache_ttl,
                max_entry_bytes=self.config.cache_max_entry_bytes,
            )
        self.cache = cache if self.config.use_cache else None

        self.fetcher = PaginatedFetcher(
            self.client,
            control=self.control,
            progress_callback=progress_callback,
            progress_page_interval=self.config.progress_page_interval,
        )
        self.aggregator = CommonFollowingsAggregator(
            self.client,
            cache=self.cache,
            deduplicator=self.deduplicator,
            control=self.control,
            progress_callback=progress_callback,
            batch_size=self.config.batch_size,
            batch_delay=self.config.batch_delay,
            cache_ttl=self.config.cache_ttl,
            progress_item_interval=self.config.progress_item_interval,
            **sleep_kwargs,
        )
        self.builder = GraphBuilder(self.config.size_params)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "FollowGraphPipeline":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def resolve_identity(self, vmid: Optional[int] = None) -> int:
        """Return ``vmid`` or the logged-in user's mid; raise AuthenticationError otherwise."""
        if vmid is not None:
            if vmid <= 0:
                raise AuthenticationError(f"Invalid user id {vmid}")
            return vmid
        identity = self.client.get_current_identity()
        logger.info("Resolved session user %s (%s)", identity.mid, identity.name)
        return identity.mid

    def fetch_followings(self, vmid: Optional[int] = None) -> List[UserIdentity]:
        return self._fetch_list(vmid, FOLLOWINGS)

    def fetch_followers(self, vmid: Optional[int] = None) -> List[UserIdentity]:
        return self._fetch_list(vmid, FOLLOWERS)

    def _fetch_list(self, vmid: Optional[int], resource: str) -> List[UserIdentity]:
        mid = self.resolve_identity(vmid)
        items = self.fetcher.fetch_all(mid, page_size=self.config.page_size, resource=resource)
        users: List[UserIdentity] = []
        for item in items:
            try:
                users.append(UserIdentity.from_api(item))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping %s entry without a usable mid: %r", resource, item)
        return users

    def run(self, vmid: Optional[int] = None) -> GraphResult:
        """Run every stage and return the built graph."""
        self._report("Resolving user", 0, 1)
        mid = self.resolve_identity(vmid)
        self._report("Resolving user", 1, 1)

        followings = self.fetch_followings(mid)
        logger.info("Loaded %d followings for %s", len(followings), mid)

        common_map = self.aggregator.aggregate([user.mid for user in followings])

        self._report("Building graph", 0, 1)
        result = self.builder.build(followings, common_map)
        self._report("Building graph", 1, 1)
        return result

    def _report(self, operation: str, current: int, total: int) -> None:
        if self._progress_callback:
            self._progress_callback(operation, current, total)
