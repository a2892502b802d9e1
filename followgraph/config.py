"""
Followgraph Configuration

File Purpose: Static pipeline defaults with environment overrides
Primary Functions/Classes: PipelineConfig
Inputs and Outputs (I/O): Reads FOLLOWGRAPH_* environment variables (optionally from a .env file)

Every tunable of the fetch pipeline lives on one record that is injected into
FollowGraphPipeline. Nothing here touches configuration files other than the
optional .env loaded by python-dotenv.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import dotenv

from .models import SizeParams

logger = logging.getLogger(__name__)

ENV_PREFIX = "FOLLOWGRAPH_"

DEFAULT_CACHE_DIR = "~/.followgraph/cache"
DEFAULT_CACHE_PREFIX = "bilibili_helper_"
ONE_DAY_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class PipelineConfig:
    """User-adjustable defaults for fetching and graph building."""

    # Pagination
    page_size: int = 50
    progress_page_interval: int = 5
    # Common-followings aggregation
    batch_size: int = 10
    batch_delay: float = 0.3
    progress_item_interval: int = 50
    # HTTP
    timeout: float = 30.0
    min_request_interval: float = 0.25
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: float = 0.3
    sessdata: Optional[str] = None
    # Cache
    use_cache: bool = True
    cache_dir: str = DEFAULT_CACHE_DIR
    cache_prefix: str = DEFAULT_CACHE_PREFIX
    cache_ttl: int = ONE_DAY_SECONDS
    cache_max_entry_bytes: int = 2 * 1024 * 1024
    # Graph
    size_multiplier: float = 0.1
    max_size: float = 2.0
    swap_link_direction: bool = True

    @property
    def size_params(self) -> SizeParams:
        return SizeParams(
            size_multiplier=self.size_multiplier,
            max_size=self.max_size,
            swap_link_direction=self.swap_link_direction,
        )

    def with_overrides(self, **changes: Any) -> "PipelineConfig":
        """Return a copy with the given fields replaced; None values are ignored."""
        return dataclasses.replace(
            self, **{k: v for k, v in changes.items() if v is not None}
        )

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        *,
        load_dotenv: bool = True,
    ) -> "PipelineConfig":
        """Build a config from defaults plus FOLLOWGRAPH_<FIELD> variables.

        Example: FOLLOWGRAPH_PAGE_SIZE=20, FOLLOWGRAPH_USE_CACHE=false.
        Unparseable values are logged and ignored.
        """
        if environ is None:
            if load_dotenv:
                dotenv.load_dotenv()
            environ = os.environ

        overrides: Dict[str, Any] = {}
        for f in dataclasses.fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            try:
                overrides[f.name] = _coerce(raw, f.default)
            except ValueError:
                logger.warning(
                    "Ignoring invalid value %r for %s%s", raw, ENV_PREFIX, f.name.upper()
                )
        return cls(**overrides)


def _coerce(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(raw)
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw
