"""Pipeline orchestrator.

One run walks ``pending -> fetching -> embedding -> matching -> snapshotting
-> scoring`` and ends ``completed`` or ``failed``. Every stage produces a
`StageOutcome`; failures are recorded on the run instead of propagating.
Only a missing hard dependency (no listings at all, no embeddings at all, no
match set) short-circuits the stages that need it.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from edgefinder.config.settings import Settings
from edgefinder.connectors.base import VenueConnector
from edgefinder.core.arb import evaluate_matches
from edgefinder.core.edge_history import EdgeHistory
from edgefinder.core.errors import ConfigurationError, EdgeFinderError, error_payload
from edgefinder.core.matching import SemanticMatcher
from edgefinder.core.models import MarketRecord, MatchedEvent
from edgefinder.core.normalizer import normalize_batch, wrap
from edgefinder.core.snapshots import SnapshotStore
from edgefinder.storage.db import Database
from edgefinder.utils.embeddings import Embedder, embed_venues
from edgefinder.utils.logging import get_logger
from edgefinder.utils.timing import TimingTracker


logger = get_logger("pipeline")


class RunStatus(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    EMBEDDING = "embedding"
    MATCHING = "matching"
    SNAPSHOTTING = "snapshotting"
    SCORING = "scoring"
    COMPLETED = "completed"
    FAILED = "failed"


class StageStatus(str, Enum):
    SUCCESS = "success"
    DEGRADED = "degraded"
    FAILED = "failed"
    SKIPPED = "skipped"


STAGES = ("fetch_markets", "generate_embeddings", "match_markets", "create_shared_dataset", "edge_snapshots")


@dataclass
class StageOutcome:
    status: StageStatus
    detail: Dict[str, Any] = field(default_factory=dict)
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "detail": self.detail, "errors": self.errors}


@dataclass
class PipelineRun:
    run_id: str
    started_at: datetime
    status: RunStatus = RunStatus.PENDING
    completed_at: Optional[datetime] = None
    stages: Dict[str, StageOutcome] = field(default_factory=dict)
    match_count: int = 0
    dataset_id: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    timings: Dict[str, str] = field(default_factory=dict)

    @property
    def error_message(self) -> Optional[str]:
        return "; ".join(self.errors) if self.errors else None

    @property
    def degraded(self) -> bool:
        return any(s.status is not StageStatus.SUCCESS for s in self.stages.values())

    def record(self, stage: str, outcome: StageOutcome, prefix: str) -> StageOutcome:
        self.stages[stage] = outcome
        for err in outcome.errors:
            self.errors.append(f"{prefix}: {err['message']}")
        return outcome

    def skip_remaining(self, reason: str) -> None:
        for stage in STAGES:
            if stage not in self.stages:
                self.stages[stage] = StageOutcome(StageStatus.SKIPPED, {"reason": reason})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.status is RunStatus.COMPLETED and not self.errors,
            "pipeline_run_id": self.run_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "shared_dataset_id": self.dataset_id,
            "market_matches_count": self.match_count,
            "steps": {name: s.to_dict() for name, s in self.stages.items()},
            "errors": list(self.errors),
            "timings": dict(self.timings),
        }


def _failure(exc: BaseException) -> Dict[str, str]:
    return error_payload(exc)


class Pipeline:
    """Runs fetch, embed, match, snapshot and score once per invocation.

    At most one run is in flight per instance; an overlapping call returns a
    failed run with a ``conflict`` error instead of starting a second one.
    """

    def __init__(
        self,
        db: Database,
        polymarket: VenueConnector,
        kalshi: VenueConnector,
        embedder: Optional[Embedder],
        settings: Optional[Settings] = None,
        *,
        embedder_error: Optional[EdgeFinderError] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.db = db
        self.polymarket = polymarket
        self.kalshi = kalshi
        self.embedder = embedder
        self.embedder_error = embedder_error
        self.settings = settings or Settings()
        self.clock = clock
        self.matcher = SemanticMatcher(self.settings.matcher)
        self.snapshots = SnapshotStore(db, self.settings.snapshot.ttl_seconds)
        self.history = EdgeHistory(db, self.settings.scoring)
        self._lock = asyncio.Lock()

    async def run_once(self) -> PipelineRun:
        if self._lock.locked():
            run = PipelineRun(run_id=str(uuid.uuid4()), started_at=self.clock(), status=RunStatus.FAILED)
            run.errors.append("conflict: a pipeline run is already in progress")
            run.completed_at = self.clock()
            logger.warning("Rejected overlapping pipeline run")
            return run
        async with self._lock:
            return await self._run()

    async def _run(self) -> PipelineRun:
        run = PipelineRun(run_id=str(uuid.uuid4()), started_at=self.clock())
        tracker = TimingTracker()
        logger.info("Starting pipeline run %s", run.run_id)
        try:
            await self.db.insert_run(run.run_id, "running", run.started_at)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to create pipeline run record: %s", exc)
            run.errors.append(f"Run record failed: {exc}")

        hard_failure = False
        records: Optional[Tuple[List[MarketRecord], List[MarketRecord]]] = None
        events: List[MatchedEvent] = []

        run.status = RunStatus.FETCHING
        with tracker.track("fetch_markets"):
            outcome, fetched = await self._fetch_stage()
        run.record("fetch_markets", outcome, "Market fetch failed")
        if outcome.status is StageStatus.FAILED:
            hard_failure = True
            run.skip_remaining("no market data")
        else:
            run.status = RunStatus.EMBEDDING
            with tracker.track("generate_embeddings"):
                outcome, records = await self._embedding_stage(*fetched)
            run.record("generate_embeddings", outcome, "Embedding generation failed")
            if outcome.status is StageStatus.FAILED:
                hard_failure = True
                run.skip_remaining("no embeddings")

        if records is not None:
            run.status = RunStatus.MATCHING
            with tracker.track("match_markets"):
                outcome, matched = await self._matching_stage(run.run_id, *records)
            run.record("match_markets", outcome, "Market matching failed")
            if matched is None:
                hard_failure = True
                run.skip_remaining("no match set")
            else:
                events = matched
                run.match_count = len(events)

                run.status = RunStatus.SNAPSHOTTING
                with tracker.track("create_shared_dataset"):
                    outcome = await self._snapshot_stage(run, events)
                run.record("create_shared_dataset", outcome, "Shared dataset creation failed")
                if outcome.status is StageStatus.FAILED:
                    hard_failure = True

                run.status = RunStatus.SCORING
                with tracker.track("edge_snapshots"):
                    outcome = await self._scoring_stage(events)
                run.record("edge_snapshots", outcome, "Edge snapshot recording failed")

        run.status = RunStatus.FAILED if hard_failure else RunStatus.COMPLETED
        run.completed_at = self.clock()
        run.timings = tracker.summary()
        try:
            await self.db.finish_run(
                run.run_id,
                status=run.status.value,
                completed_at=run.completed_at,
                stages={name: s.to_dict() for name, s in run.stages.items()},
                match_count=run.match_count,
                dataset_id=run.dataset_id,
                error_message=run.error_message,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to update pipeline run record: %s", exc)
            run.errors.append(f"Run record update failed: {exc}")

        logger.info(
            "Pipeline run %s %s in %dms (matches=%d, errors=%d)",
            run.run_id,
            run.status.value,
            tracker.total_ms(),
            run.match_count,
            len(run.errors),
        )
        return run

    # stages --------------------------------------------------------------

    async def _fetch_venue(self, connector: VenueConnector) -> Tuple[List[MarketRecord], int, int]:
        raw = await connector.fetch_raw()
        records, skipped = normalize_batch(wrap(connector.venue, raw))
        return records, len(raw), skipped

    async def _fetch_stage(self) -> Tuple[StageOutcome, Tuple[List[MarketRecord], List[MarketRecord]]]:
        results = await asyncio.gather(
            self._fetch_venue(self.polymarket),
            self._fetch_venue(self.kalshi),
            return_exceptions=True,
        )
        detail: Dict[str, Any] = {}
        errors: List[Dict[str, str]] = []
        per_venue: List[List[MarketRecord]] = []
        for connector, result in zip((self.polymarket, self.kalshi), results):
            venue = connector.venue.value
            if isinstance(result, BaseException):
                logger.error("%s fetch failed: %s", venue, result)
                errors.append({**_failure(result), "venue": venue})
                detail[venue] = {"fetched": 0, "normalized": 0, "skipped": 0, "error": _failure(result)["kind"]}
                per_venue.append([])
                continue
            records, fetched, skipped = result
            detail[venue] = {"fetched": fetched, "normalized": len(records), "skipped": skipped}
            per_venue.append(records)

        if len(errors) == 2:
            return StageOutcome(StageStatus.FAILED, detail, errors), ([], [])

        all_records = per_venue[0] + per_venue[1]
        try:
            detail["upserted"] = await self.db.upsert_markets(all_records, self.clock())
        except Exception as exc:  # noqa: BLE001
            logger.error("Market upsert failed: %s", exc)
            errors.append(_failure(exc))

        status = StageStatus.DEGRADED if errors else StageStatus.SUCCESS
        return StageOutcome(status, detail, errors), (per_venue[0], per_venue[1])

    async def _embedding_stage(
        self, records_a: Sequence[MarketRecord], records_b: Sequence[MarketRecord]
    ) -> Tuple[StageOutcome, Optional[Tuple[List[MarketRecord], List[MarketRecord]]]]:
        if self.embedder is None:
            exc = self.embedder_error or ConfigurationError("no embedding provider configured")
            return StageOutcome(StageStatus.FAILED, {}, [_failure(exc)]), None

        results = await embed_venues(self.embedder, records_a, records_b)
        detail: Dict[str, Any] = {}
        errors: List[Dict[str, str]] = []
        embedded: List[List[MarketRecord]] = []
        for name, result in zip(("polymarket", "kalshi"), results):
            if isinstance(result, BaseException):
                logger.error("%s embedding failed: %s", name, result)
                errors.append({**_failure(result), "venue": name})
                detail[name] = {"processed": 0, "skipped": 0}
                embedded.append([])
                continue
            done, skipped = result
            detail[name] = {"processed": len(done), "skipped": skipped}
            embedded.append(done)

        if len(errors) == 2:
            return StageOutcome(StageStatus.FAILED, detail, errors), None
        status = StageStatus.DEGRADED if errors else StageStatus.SUCCESS
        return StageOutcome(status, detail, errors), (embedded[0], embedded[1])

    async def _matching_stage(
        self, run_id: str, records_a: Sequence[MarketRecord], records_b: Sequence[MarketRecord]
    ) -> Tuple[StageOutcome, Optional[List[MatchedEvent]]]:
        now = self.clock()
        try:
            matches = self.matcher.match(records_a, records_b, now=now)
            events = evaluate_matches(matches)
        except Exception as exc:  # noqa: BLE001
            logger.error("Matching failed: %s", exc)
            return StageOutcome(StageStatus.FAILED, {}, [_failure(exc)]), None

        detail = {
            "best_matches_count": len(events),
            "arbitrage_count": sum(1 for e in events if e.arb.is_arbitrage),
        }
        errors: List[Dict[str, str]] = []
        try:
            await self.db.replace_matches(run_id, [e.match for e in events], now)
        except Exception as exc:  # noqa: BLE001
            logger.error("Persisting matches failed: %s", exc)
            errors.append(_failure(exc))
        status = StageStatus.DEGRADED if errors else StageStatus.SUCCESS
        return StageOutcome(status, detail, errors), events

    async def _snapshot_stage(self, run: PipelineRun, events: Sequence[MatchedEvent]) -> StageOutcome:
        items = list(events)[: self.settings.snapshot.max_items]
        try:
            dataset = await self.snapshots.create_snapshot(items, run_id=run.run_id, now=self.clock())
        except Exception as exc:  # noqa: BLE001
            logger.error("Shared dataset creation failed: %s", exc)
            return StageOutcome(StageStatus.FAILED, {}, [_failure(exc)])
        run.dataset_id = dataset.dataset_id
        return StageOutcome(
            StageStatus.SUCCESS,
            {"items_count": len(dataset.items), "expires_at": dataset.expires_at.isoformat()},
        )

    async def _scoring_stage(self, events: Sequence[MatchedEvent]) -> StageOutcome:
        try:
            written = await self.history.append_events(events, self.clock())
        except Exception as exc:  # noqa: BLE001
            logger.error("Edge snapshot recording failed: %s", exc)
            return StageOutcome(StageStatus.DEGRADED, {}, [_failure(exc)])
        return StageOutcome(StageStatus.SUCCESS, {"edge_snapshots": written})
