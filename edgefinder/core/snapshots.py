"""Shared dataset (snapshot) lifecycle and entitlement stamping.

A snapshot is written once at the end of a pipeline run and never changes.
Which snapshot is "current" is decided at read time: the newest one that has
not expired, otherwise the newest one of any age as a stale fallback.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from edgefinder.config.constants import DEFAULT_SNAPSHOT_TTL_SECONDS
from edgefinder.core.errors import ConflictOrStaleState, MalformedUpstreamData, SnapshotNotFoundError
from edgefinder.core.models import Entitlement, MatchedEvent, SharedDataset
from edgefinder.storage.db import Database
from edgefinder.utils.logging import get_logger
from edgefinder.utils.validation import is_valid_wallet_address


logger = get_logger("snapshots")


def select_current(datasets: Iterable[SharedDataset], now: datetime) -> Optional[SharedDataset]:
    """Newest non-expired dataset, else newest overall, else None."""
    ordered = sorted(datasets, key=lambda d: d.created_at, reverse=True)
    for dataset in ordered:
        if dataset.is_active(now):
            return dataset
    return ordered[0] if ordered else None


class SnapshotStore:
    def __init__(self, db: Database, ttl_seconds: int = DEFAULT_SNAPSHOT_TTL_SECONDS):
        self.db = db
        self.ttl_seconds = ttl_seconds

    async def create_snapshot(
        self,
        matched_events: Sequence[MatchedEvent],
        *,
        run_id: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> SharedDataset:
        now = now or datetime.now(timezone.utc)
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        dataset = SharedDataset(
            dataset_id=str(uuid.uuid4()),
            run_id=run_id,
            items=tuple(e.to_item() for e in matched_events),
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )
        await self.db.insert_dataset(dataset)
        logger.info(
            "Created shared dataset %s with %d items (expires %s)",
            dataset.dataset_id,
            len(dataset.items),
            dataset.expires_at.isoformat(),
        )
        return dataset

    async def get_active_or_latest(self, now: Optional[datetime] = None) -> SharedDataset:
        now = now or datetime.now(timezone.utc)
        active = await self.db.latest_active_dataset(now)
        if active is not None:
            return active
        latest = await self.db.latest_dataset()
        if latest is None:
            raise SnapshotNotFoundError("No shared dataset available")
        logger.info("No active dataset; serving stale %s (expired %s)", latest.dataset_id, latest.expires_at.isoformat())
        return latest

    async def grant_entitlement(self, wallet_address: str, now: Optional[datetime] = None) -> Entitlement:
        """Stamp an entitlement to the current dataset, valid until its expiry."""
        if not is_valid_wallet_address(wallet_address):
            raise MalformedUpstreamData("Invalid wallet address format")
        now = now or datetime.now(timezone.utc)
        dataset = await self.get_active_or_latest(now)
        ent = Entitlement(
            entitlement_id=str(uuid.uuid4()),
            wallet_address=wallet_address,
            dataset_id=dataset.dataset_id,
            created_at=now,
            valid_until=dataset.expires_at,
        )
        await self.db.insert_entitlement(ent)
        logger.info("Granted %s access to dataset %s until %s", wallet_address, dataset.dataset_id, ent.valid_until.isoformat())
        return ent

    async def entitled_dataset(self, wallet_address: str):
        """Latest entitlement for a wallet and the dataset it was stamped with.

        Returns (None, None) when the wallet holds no entitlement.
        """
        if not is_valid_wallet_address(wallet_address):
            raise MalformedUpstreamData("Invalid wallet address format")
        ent = await self.db.latest_entitlement(wallet_address)
        if ent is None:
            return None, None
        dataset = await self.db.get_dataset(ent.dataset_id)
        if dataset is None:
            raise ConflictOrStaleState(f"entitlement {ent.entitlement_id} references missing dataset {ent.dataset_id}")
        return ent, dataset
