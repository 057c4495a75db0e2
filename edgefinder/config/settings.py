from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from edgefinder.config import constants as C


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return int(raw)


@dataclass
class VenueAuth:
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    page_limit: int = C.DEFAULT_PAGE_LIMIT
    max_pages: int = C.DEFAULT_MAX_PAGES


@dataclass
class EmbeddingSettings:
    provider: str = "openai"  # "openai" or "hashing"
    model: str = C.DEFAULT_EMBEDDING_MODEL
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    cache_dir: Optional[str] = None


@dataclass
class MatcherConfig:
    similarity_floor: float = C.DEFAULT_SIMILARITY_FLOOR
    require_mutual: bool = False


@dataclass
class ScoringConfig:
    persistence_min_minutes: float = C.PERSISTENCE_MIN_MINUTES
    persistence_min_samples: int = C.PERSISTENCE_MIN_SAMPLES
    stability_max_range: float = C.STABILITY_MAX_RANGE
    weight_edge: float = C.SCORE_WEIGHT_EDGE
    weight_duration: float = C.SCORE_WEIGHT_DURATION
    weight_samples: float = C.SCORE_WEIGHT_SAMPLES
    sample_divisor: float = C.SCORE_SAMPLE_DIVISOR


@dataclass
class SnapshotSettings:
    ttl_seconds: int = C.DEFAULT_SNAPSHOT_TTL_SECONDS
    max_items: int = C.MAX_SNAPSHOT_ITEMS


@dataclass
class RetrySettings:
    max_attempts: int = C.RETRY_MAX_ATTEMPTS
    initial_delay: float = C.RETRY_INITIAL_DELAY
    backoff_factor: float = C.RETRY_BACKOFF_FACTOR
    max_delay: float = C.RETRY_MAX_DELAY


@dataclass
class StorageSettings:
    db_path: str = C.DEFAULT_DB_PATH
    chunk_size: int = C.DB_CHUNK_SIZE


@dataclass
class Settings:
    polymarket: VenueAuth = field(default_factory=VenueAuth)
    kalshi: VenueAuth = field(default_factory=VenueAuth)
    embeddings: EmbeddingSettings = field(default_factory=EmbeddingSettings)
    matcher: MatcherConfig = field(default_factory=MatcherConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    snapshot: SnapshotSettings = field(default_factory=SnapshotSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    demo: bool = False
    env: str = "dev"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from defaults overlaid with environment variables."""
        s = cls()
        s.polymarket.base_url = os.environ.get("POLYMARKET_MARKETS_URL") or C.POLYMARKET_MARKETS_URL
        s.polymarket.page_limit = _env_int("POLYMARKET_PAGE_LIMIT", s.polymarket.page_limit)
        s.polymarket.max_pages = _env_int("POLYMARKET_MAX_PAGES", s.polymarket.max_pages)
        s.kalshi.base_url = os.environ.get("KALSHI_MARKETS_URL") or C.KALSHI_MARKETS_URL
        s.kalshi.api_key = os.environ.get("KALSHI_BEARER")
        s.kalshi.page_limit = _env_int("KALSHI_PAGE_LIMIT", s.kalshi.page_limit)
        s.kalshi.max_pages = _env_int("KALSHI_MAX_PAGES", s.kalshi.max_pages)

        s.embeddings.provider = os.environ.get("EMBEDDING_PROVIDER", s.embeddings.provider).lower()
        s.embeddings.model = os.environ.get("EMBEDDING_MODEL", s.embeddings.model)
        s.embeddings.api_key = os.environ.get("OPENAI_API_KEY")
        s.embeddings.base_url = os.environ.get("OPENAI_BASE_URL") or None
        s.embeddings.cache_dir = os.environ.get("EMB_CACHE_DIR") or None

        s.matcher.similarity_floor = _env_float("SIMILARITY_FLOOR", s.matcher.similarity_floor)
        s.matcher.require_mutual = os.environ.get("REQUIRE_MUTUAL_MATCH", "0").lower() in {"1", "true", "yes"}

        s.snapshot.ttl_seconds = _env_int("SNAPSHOT_TTL_SECONDS", s.snapshot.ttl_seconds)
        s.retry.max_attempts = _env_int("RETRY_MAX_ATTEMPTS", s.retry.max_attempts)
        s.storage.db_path = os.environ.get("EDGEFINDER_DB", s.storage.db_path)
        s.storage.chunk_size = _env_int("DB_CHUNK_SIZE", s.storage.chunk_size)

        s.demo = os.environ.get("DEMO", "0").lower() in {"1", "true", "yes"}
        s.env = os.environ.get("EDGEFINDER_ENV", s.env)
        return s
