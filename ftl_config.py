"""
FTL Configuration

Environment-driven settings for the compliance engine. Values are read
once at import; a malformed value raises ConfigurationError so that the
host fails to start instead of producing wrong metrics.
"""

import os
import logging

from dotenv import load_dotenv

from ftl_errors import ConfigurationError

# Load environment
dotenv_path = os.getenv("DOTENV_CONFIG_PATH", ".env")
load_dotenv(dotenv_path)

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


TRUE_WORDS = ("1", "true", "yes", "on")
FALSE_WORDS = ("0", "false", "no", "off")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in TRUE_WORDS:
        return True
    if value in FALSE_WORDS:
        return False
    raise ConfigurationError(f"{name} must be true or false, got {raw!r}")


# =====================================================
# Engine Settings
# =====================================================

# Tier thresholds (percent of limit)
FTL_APPROACHING_THRESHOLD = _env_float("FTL_APPROACHING_THRESHOLD", 80.0)
FTL_EXCEEDED_THRESHOLD = _env_float("FTL_EXCEEDED_THRESHOLD", 100.0)

# Optional JSON limit table; built-in defaults are used when unset
FTL_LIMITS_FILE = os.getenv("FTL_LIMITS_FILE", "")

# Reject overlapping duty entries instead of summing them
FTL_STRICT_OVERLAP = _env_bool("FTL_STRICT_OVERLAP", False)

# Fraction of a standby period credited as duty time
FTL_STANDBY_CREDIT = _env_float("FTL_STANDBY_CREDIT", 0.5)

if not 0.0 <= FTL_STANDBY_CREDIT <= 1.0:
    raise ConfigurationError(
        f"FTL_STANDBY_CREDIT must be between 0 and 1, got {FTL_STANDBY_CREDIT}"
    )

# Host-side projection cache
CACHE_TTL_SECONDS = int(_env_float("CACHE_TTL_SECONDS", 300))
REDIS_URL = os.getenv("REDIS_URL", "")

logger.debug(
    f"FTL settings: approaching={FTL_APPROACHING_THRESHOLD}%, "
    f"exceeded={FTL_EXCEEDED_THRESHOLD}%, strict_overlap={FTL_STRICT_OVERLAP}, "
    f"standby_credit={FTL_STANDBY_CREDIT}"
)
