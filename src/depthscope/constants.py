"""Core constants for DepthScope."""

from enum import Enum


class ConnectionState(str, Enum):
    """Per-venue connection lifecycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class VenueSchema(str, Enum):
    """Venue-native payload variants understood by the adapters."""

    BINANCE = "binance"
    OKX = "okx"
    BYBIT = "bybit"
    SIM = "sim"


class FeedMode(str, Enum):
    """Live HTTP polling or the simulated depth generator."""

    LIVE = "live"
    SIM = "sim"


class BookSide(str, Enum):
    """Order-book side."""

    BID = "bid"
    ASK = "ask"


class TradeSide(str, Enum):
    """Aggressor side for market-impact estimates."""

    BUY = "buy"
    SELL = "sell"


class SpreadTrend(str, Enum):
    """Direction of the recent spread regression slope."""

    NARROWING = "narrowing"
    STABLE = "stable"
    WIDENING = "widening"


class SpreadTightness(str, Enum):
    """Current spread relative to its running average."""

    TIGHT = "tight"
    NORMAL = "normal"
    WIDE = "wide"


class ZoneMovement(str, Enum):
    """Expected evolution of a pressure zone."""

    STRENGTHENING = "strengthening"
    WEAKENING = "weakening"
    STABLE = "stable"


class ZoneDirection(str, Enum):
    """Expected price direction around a pressure zone."""

    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class ImbalanceDirection(str, Enum):
    """Side dominating the top of book."""

    BID = "bid"
    ASK = "ask"
    BALANCED = "balanced"


class MarketBias(str, Enum):
    """Directional reading derived from book imbalance."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# ============================================
# Default Values
# ============================================

DEFAULT_SYMBOL = "BTCUSDT"
DEFAULT_HISTORY_SIZE = 1000
DEFAULT_EXPECTED_LEVELS = 20
DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_MAX_RECONNECT_ATTEMPTS = 8

MERGED_VENUE = "Merged"

# ============================================
# Application Constants
# ============================================

APP_NAME = "depthscope"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
