from __future__ import annotations

import asyncio
import hashlib
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.feature_extraction.text import HashingVectorizer

from edgefinder.config import constants as C
from edgefinder.config.settings import EmbeddingSettings, RetrySettings
from edgefinder.core.errors import ConfigurationError, EdgeFinderError, UpstreamUnavailable
from edgefinder.core.models import MarketRecord
from edgefinder.utils.logging import get_logger
from edgefinder.utils.retry import retry_with_backoff
from edgefinder.utils.text import normalize_text


logger = get_logger("embeddings")


class Embedder(ABC):
    """Black-box text embedding provider.

    ``embed`` returns one vector per input text, or None for a text that could
    not be embedded. Vectors of one embedder share a fixed dimension.
    """

    name: str

    @abstractmethod
    async def embed(self, texts: Sequence[str]) -> List[Optional[np.ndarray]]:
        raise NotImplementedError


class HashingEmbedder(Embedder):
    """Offline embedder backed by scikit-learn's stateless HashingVectorizer.

    Token and bigram counts are hashed into a fixed number of features, so
    vectors from separate calls (one per venue) live in the same space.
    """

    name = "hashing"

    def __init__(self, n_features: int = C.HASHING_EMBEDDING_DIM):
        self.n_features = n_features
        self._vectorizer = HashingVectorizer(
            n_features=n_features,
            ngram_range=(1, 2),
            alternate_sign=False,
            norm="l2",
            preprocessor=normalize_text,
        )

    async def embed(self, texts: Sequence[str]) -> List[Optional[np.ndarray]]:
        out: List[Optional[np.ndarray]] = [None] * len(texts)
        idx = [i for i, t in enumerate(texts) if t and normalize_text(t)]
        if not idx:
            return out
        matrix = self._vectorizer.transform([texts[i] for i in idx]).toarray().astype(np.float32)
        for row, i in enumerate(idx):
            vec = matrix[row]
            if np.any(vec):
                out[i] = vec
        return out


def _hash(text: str) -> str:
    h = hashlib.sha256()
    h.update(text.strip().lower().encode())
    return h.hexdigest()


class EmbeddingCache:
    """On-disk JSON cache keyed by model and text hash."""

    def __init__(self, cache_dir: Optional[str], model: str):
        base = Path(cache_dir or os.getenv("EMB_CACHE_DIR") or ".cache/openai")
        self.dir = base / model.replace("/", "_")

    def _path(self, text: str) -> Path:
        return self.dir / f"{_hash(text)}.json"

    def load(self, texts: Sequence[str]) -> Tuple[Dict[str, np.ndarray], List[str]]:
        """Return (cached_vectors, missing_texts)."""
        cached: Dict[str, np.ndarray] = {}
        missing: List[str] = []
        for t in texts:
            p = self._path(t)
            if not p.exists():
                missing.append(t)
                continue
            try:
                with p.open("r") as f:
                    data = json.load(f)
                cached[t] = np.array(data["embedding"], dtype=np.float32)
            except (OSError, ValueError, KeyError):
                missing.append(t)
        return cached, missing

    def save(self, pairs: Dict[str, np.ndarray]) -> None:
        try:
            self.dir.mkdir(parents=True, exist_ok=True)
            for t, vec in pairs.items():
                with self._path(t).open("w") as f:
                    json.dump({"embedding": vec.tolist()}, f)
        except OSError as exc:
            logger.debug("Embedding cache write failed: %s", exc)


class OpenAIEmbedder(Embedder):
    """Embed texts via the OpenAI embeddings API with an on-disk cache."""

    name = "openai"

    def __init__(
        self,
        model: str = C.DEFAULT_EMBEDDING_MODEL,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        cache_dir: Optional[str] = None,
        retry: Optional[RetrySettings] = None,
        client=None,
    ):
        self.model = model
        self.retry = retry or RetrySettings()
        self.cache = EmbeddingCache(cache_dir, model)
        if client is None:
            key = api_key or os.getenv("OPENAI_API_KEY")
            if not key:
                raise ConfigurationError("OPENAI_API_KEY is not set")
            from openai import AsyncOpenAI

            client = AsyncOpenAI(api_key=key, base_url=base_url or None)
        self._client = client

    async def _create(self, batch: List[str]):
        return await self._client.embeddings.create(model=self.model, input=batch)

    async def embed(self, texts: Sequence[str]) -> List[Optional[np.ndarray]]:
        unique = [t for t in dict.fromkeys(texts) if t and t.strip()]
        cached, missing = self.cache.load(unique)
        vectors: Dict[str, np.ndarray] = dict(cached)
        last_error: Optional[EdgeFinderError] = None

        for i in range(0, len(missing), C.EMBEDDING_CHUNK_SIZE):
            batch = missing[i : i + C.EMBEDDING_CHUNK_SIZE]
            try:
                resp = await retry_with_backoff(
                    self._create,
                    batch,
                    max_retries=self.retry.max_attempts,
                    initial_delay=self.retry.initial_delay,
                    backoff_factor=self.retry.backoff_factor,
                    max_delay=self.retry.max_delay,
                    label="openai.embeddings",
                )
            except EdgeFinderError as exc:
                logger.warning("Embedding batch of %d failed: %s", len(batch), exc.message)
                last_error = exc
                continue
            except Exception as exc:  # noqa: BLE001
                if getattr(exc, "status_code", None) in (401, 403):
                    raise ConfigurationError(f"embedding provider rejected credentials: {exc}") from exc
                logger.warning("Embedding batch of %d failed: %s", len(batch), exc)
                last_error = UpstreamUnavailable(f"openai.embeddings failed: {exc}")
                continue
            fresh = {inp: np.asarray(item.embedding, dtype=np.float32) for inp, item in zip(batch, resp.data)}
            vectors.update(fresh)
            self.cache.save(fresh)

        # Every batch failed and nothing was cached: the provider is down
        if last_error is not None and not vectors:
            raise last_error

        logger.debug("Embedded %d texts (%d cached, %d fetched)", len(unique), len(cached), len(vectors) - len(cached))
        return [vectors.get(t) if t else None for t in texts]


def build_embedder(config: EmbeddingSettings, retry: Optional[RetrySettings] = None) -> Embedder:
    if config.provider == "hashing":
        return HashingEmbedder()
    if config.provider == "openai":
        return OpenAIEmbedder(
            model=config.model,
            api_key=config.api_key,
            base_url=config.base_url,
            cache_dir=config.cache_dir,
            retry=retry,
        )
    raise ConfigurationError(f"unknown embedding provider {config.provider!r}")


async def embed_records(embedder: Embedder, records: Sequence[MarketRecord]) -> Tuple[List[MarketRecord], int]:
    """Attach embeddings to records; records that fail to embed are skipped.

    Returns:
        (embedded_records, skipped_count)
    """
    if not records:
        return [], 0
    texts = [r.semantic_text or r.title for r in records]
    vectors = await embedder.embed(texts)
    out: List[MarketRecord] = []
    skipped = 0
    for record, vec in zip(records, vectors):
        if vec is None or len(vec) == 0:
            skipped += 1
            continue
        out.append(record.with_embedding(vec))
    if skipped:
        logger.info("Skipped %d record(s) without an embedding", skipped)
    return out, skipped


async def embed_venues(
    embedder: Embedder,
    records_a: Sequence[MarketRecord],
    records_b: Sequence[MarketRecord],
):
    """Embed both venues concurrently; each side fails independently."""
    return await asyncio.gather(
        embed_records(embedder, records_a),
        embed_records(embedder, records_b),
        return_exceptions=True,
    )
