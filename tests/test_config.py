from edgefinder.config import constants as C
from edgefinder.config.settings import Settings
from edgefinder.utils.validation import is_valid_wallet_address, parse_dt, parse_price


def test_defaults():
    s = Settings()
    assert s.matcher.similarity_floor == 0.75
    assert s.matcher.require_mutual is False
    assert s.snapshot.ttl_seconds == 3600
    assert s.storage.chunk_size == 500
    assert s.embeddings.provider == "openai"


def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("SIMILARITY_FLOOR", "0.8")
    monkeypatch.setenv("REQUIRE_MUTUAL_MATCH", "true")
    monkeypatch.setenv("SNAPSHOT_TTL_SECONDS", "120")
    monkeypatch.setenv("KALSHI_BEARER", "token")
    monkeypatch.setenv("EMBEDDING_PROVIDER", "Hashing")
    monkeypatch.setenv("DEMO", "1")
    monkeypatch.delenv("POLYMARKET_MARKETS_URL", raising=False)

    s = Settings.from_env()
    assert s.matcher.similarity_floor == 0.8
    assert s.matcher.require_mutual is True
    assert s.snapshot.ttl_seconds == 120
    assert s.kalshi.api_key == "token"
    assert s.embeddings.provider == "hashing"
    assert s.demo is True
    assert s.polymarket.base_url == C.POLYMARKET_MARKETS_URL


def test_price_and_timestamp_parsing():
    assert parse_price("0.35") == 0.35
    assert parse_price(35, scale=100.0) == 0.35
    assert parse_price(1.5) is None
    assert parse_price("n/a") is None
    assert parse_price(True) is None
    assert parse_dt("2025-01-02T03:04:05Z").isoformat() == "2025-01-02T03:04:05+00:00"
    assert parse_dt("yesterday") is None


def test_wallet_addresses():
    assert is_valid_wallet_address("0x" + "aB" * 20)
    assert not is_valid_wallet_address("0x" + "ab" * 19)
    assert not is_valid_wallet_address(None)
