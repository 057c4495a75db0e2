import asyncio
from datetime import timedelta

from edgefinder import api
from edgefinder.core.models import EdgeSnapshot
from edgefinder.core.snapshots import SnapshotStore
from edgefinder.storage.db import Database


WALLET = "0x" + "1f" * 20


def _edge(ts, edge):
    return EdgeSnapshot(
        snapshot_id=f"s-{ts.timestamp()}",
        opportunity_id="pm-1::KX-1",
        timestamp=ts,
        polymarket_yes_price=0.4,
        polymarket_no_price=0.6,
        kalshi_yes_price=0.45,
        kalshi_no_price=0.5,
        edge_percent=edge,
        strategy="BUY_YES_PM_BUY_NO_KALSHI",
    )


def test_analytics_with_and_without_data(now):
    async def _run():
        async with Database() as db:
            await db.insert_edge_snapshots([_edge(now + timedelta(minutes=m), 6.0) for m in (0, 15, 30)])
            found = await api.get_opportunity_analytics(db, "pm-1::KX-1", now=now + timedelta(minutes=30))
            missing = await api.get_opportunity_analytics(db, "nope::nope", now=now)
            bad = await api.get_opportunity_analytics(db, "pm-1::KX-1", window_hours=0)
            return found, missing, bad

    found, missing, bad = asyncio.run(_run())
    assert found["ok"] is True
    data = found["data"]
    assert data["has_data"] is True
    assert data["analytics"]["edge_quality"] == "STABLE"
    assert data["analytics"]["samples_above_threshold"] == 3
    assert data["metadata"]["window_hours"] == 24

    assert missing["ok"] is True
    assert missing["data"]["has_data"] is False
    assert "message" in missing["data"]

    assert bad["ok"] is False
    assert bad["error"]["kind"] == "malformed_data"


def test_current_dataset_when_none_exists(now):
    async def _run():
        async with Database() as db:
            return await api.get_current_dataset(db, now=now)

    result = asyncio.run(_run())
    assert result == {"ok": False, "error": {"kind": "no_data", "message": "No shared dataset available"}}


def test_grant_and_status_round(now):
    async def _run():
        async with Database() as db:
            dataset = await SnapshotStore(db, ttl_seconds=600).create_snapshot([], now=now)
            granted = await api.grant_access(db, WALLET, now=now)
            status = await api.get_access_status(db, WALLET, now=now + timedelta(seconds=60))
            expired = await api.get_access_status(db, WALLET, now=now + timedelta(seconds=601))
            unknown = await api.get_access_status(db, "0x" + "00" * 20, now=now)
            invalid = await api.grant_access(db, "0x123", now=now)
            return dataset, granted, status, expired, unknown, invalid

    dataset, granted, status, expired, unknown, invalid = asyncio.run(_run())
    assert granted["ok"] is True
    assert granted["data"]["shared_dataset_id"] == dataset.dataset_id
    assert granted["data"]["valid_until"] == dataset.expires_at.isoformat()

    assert status["data"]["is_valid"] is True
    assert status["data"]["dataset"]["id"] == dataset.dataset_id
    assert expired["data"]["is_valid"] is False
    assert expired["data"]["dataset"]["is_stale"] is True

    assert unknown["data"]["has_access"] is False
    assert invalid["ok"] is False
    assert invalid["error"]["kind"] == "malformed_data"


def test_pipeline_run_lookup_missing():
    async def _run():
        async with Database() as db:
            return await api.get_pipeline_run(db, "missing")

    result = asyncio.run(_run())
    assert result["ok"] is False
    assert result["error"]["kind"] == "no_data"
