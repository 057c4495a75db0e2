"""Constants used throughout the application.

This module centralizes magic numbers and default tuning values that appear
across multiple modules. Runtime overrides live in `settings.py`.
"""

# Matching algorithm constants
DEFAULT_SIMILARITY_FLOOR = 0.75

# Arbitrage directions ("A" is Polymarket, "B" is Kalshi)
DIRECTION_A_YES_B_NO = "A-yes/B-no"
DIRECTION_B_YES_A_NO = "B-yes/A-no"
STRATEGY_A_YES_B_NO = "BUY_YES_PM_BUY_NO_KALSHI"
STRATEGY_B_YES_A_NO = "BUY_YES_KALSHI_BUY_NO_PM"
STRATEGY_NONE = "NONE"

# Snapshot lifecycle
DEFAULT_SNAPSHOT_TTL_SECONDS = 3600
MAX_SNAPSHOT_ITEMS = 100

# Edge quality scoring
DEFAULT_WINDOW_HOURS = 24
DEFAULT_EDGE_THRESHOLD = 5.0
PERSISTENCE_MIN_MINUTES = 30.0
PERSISTENCE_MIN_SAMPLES = 3
STABILITY_MAX_RANGE = 3.0
SCORE_WEIGHT_EDGE = 0.4
SCORE_WEIGHT_DURATION = 0.3
SCORE_WEIGHT_SAMPLES = 0.3
SCORE_SAMPLE_DIVISOR = 60.0

# Embedding processing constants
EMBEDDING_CHUNK_SIZE = 96
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
HASHING_EMBEDDING_DIM = 512
SEMANTIC_TEXT_MAX_DESCRIPTION = 300

# API constants
API_TIMEOUT_SECONDS = 15
DEFAULT_PAGE_LIMIT = 100
DEFAULT_MAX_PAGES = 10
POLYMARKET_MARKETS_URL = "https://gamma-api.polymarket.com/markets"
KALSHI_MARKETS_URL = "https://api.elections.kalshi.com/trade-api/v2/markets"

# Retry constants
RETRY_MAX_ATTEMPTS = 3
RETRY_INITIAL_DELAY = 0.3
RETRY_BACKOFF_FACTOR = 2.0
RETRY_MAX_DELAY = 10.0

# Persistence constants
DB_CHUNK_SIZE = 500
DEFAULT_DB_PATH = "edgefinder.db"

# Entitlements
WALLET_ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"
