"""Query surface over the persisted pipeline state.

Every function returns a structured outcome ``{"ok": True, "data": ...}`` or
``{"ok": False, "error": {"kind": ..., "message": ...}}``; component
exceptions are converted here and never escape.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from edgefinder.config.constants import DEFAULT_EDGE_THRESHOLD, DEFAULT_WINDOW_HOURS
from edgefinder.config.settings import ScoringConfig
from edgefinder.core.edge_history import EdgeHistory
from edgefinder.core.errors import MalformedUpstreamData, NoDataAvailable, error_payload
from edgefinder.core.snapshots import SnapshotStore
from edgefinder.storage.db import Database
from edgefinder.utils.logging import get_logger


logger = get_logger("api")

Outcome = Dict[str, Any]


def ok(data: Any) -> Outcome:
    return {"ok": True, "data": data}


def fail(exc: BaseException) -> Outcome:
    return {"ok": False, "error": error_payload(exc)}


async def get_opportunity_analytics(
    db: Database,
    opportunity_id: str,
    window_hours: float = DEFAULT_WINDOW_HOURS,
    edge_threshold: float = DEFAULT_EDGE_THRESHOLD,
    now: Optional[datetime] = None,
    config: Optional[ScoringConfig] = None,
) -> Outcome:
    """Edge quality analytics for one opportunity over a trailing window."""
    try:
        if not opportunity_id:
            raise MalformedUpstreamData("opportunity_id is required")
        if window_hours <= 0:
            raise MalformedUpstreamData("window_hours must be positive")
        now = now or datetime.now(timezone.utc)
        analytics = await EdgeHistory(db, config).get_analytics(opportunity_id, window_hours, edge_threshold, now)
    except Exception as exc:  # noqa: BLE001
        logger.error("Analytics query for %s failed: %s", opportunity_id, exc)
        return fail(exc)

    if analytics is None:
        return ok(
            {
                "opportunity_id": opportunity_id,
                "has_data": False,
                "message": "No edge history found for this opportunity",
            }
        )
    return ok(
        {
            "opportunity_id": opportunity_id,
            "has_data": True,
            "analytics": analytics.to_dict(),
            "metadata": {
                "window_hours": window_hours,
                "edge_threshold": edge_threshold,
                "calculated_at": now.isoformat(),
            },
        }
    )


async def get_current_dataset(db: Database, now: Optional[datetime] = None) -> Outcome:
    now = now or datetime.now(timezone.utc)
    try:
        dataset = await SnapshotStore(db).get_active_or_latest(now)
    except Exception as exc:  # noqa: BLE001
        return fail(exc)
    return ok(dataset.to_dict(now))


async def grant_access(db: Database, wallet_address: str, now: Optional[datetime] = None) -> Outcome:
    """Stamp an entitlement for a wallet to the current dataset."""
    now = now or datetime.now(timezone.utc)
    try:
        ent = await SnapshotStore(db).grant_entitlement(wallet_address, now)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Access grant for %s failed: %s", wallet_address, exc)
        return fail(exc)
    return ok(
        {
            "entitlement_id": ent.entitlement_id,
            "wallet_address": ent.wallet_address,
            "shared_dataset_id": ent.dataset_id,
            "valid_until": ent.valid_until.isoformat(),
        }
    )


async def get_access_status(db: Database, wallet_address: str, now: Optional[datetime] = None) -> Outcome:
    """Entitlement status for a wallet and the dataset it was stamped with.

    An entitlement keeps pointing at the dataset it was granted for; a newer
    snapshot does not extend or upgrade it.
    """
    now = now or datetime.now(timezone.utc)
    try:
        ent, dataset = await SnapshotStore(db).entitled_dataset(wallet_address)
    except Exception as exc:  # noqa: BLE001
        return fail(exc)
    if ent is None:
        return ok({"wallet_address": wallet_address, "has_access": False, "is_valid": False})
    return ok(
        {
            "wallet_address": wallet_address,
            "has_access": True,
            "is_valid": ent.is_valid(now),
            "now": now.isoformat(),
            "valid_until": ent.valid_until.isoformat(),
            "entitlement_id": ent.entitlement_id,
            "dataset": dataset.to_dict(now),
        }
    )


async def get_pipeline_run(db: Database, run_id: str) -> Outcome:
    try:
        run = await db.get_run(run_id)
    except Exception as exc:  # noqa: BLE001
        return fail(exc)
    if run is None:
        return fail(NoDataAvailable(f"pipeline run {run_id} not found"))
    run["started_at"] = run["started_at"].isoformat() if run["started_at"] else None
    run["completed_at"] = run["completed_at"].isoformat() if run["completed_at"] else None
    return ok(run)
