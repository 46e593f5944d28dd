"""
config.py -- All tunable parameters for the adversarial shield.

Every value here is loaded from environment variables so the shield can be
tuned per deployment (or via a local .env file) without touching code.

HOW TO READ THIS FILE:
  Each config value has a comment explaining:
    1. What it controls
    2. What happens if you raise/lower it
    3. The default and why it was chosen
"""

import os
import logging

# ---------------------------------------------------------------------------
# Helper: read an env var with a typed default
# ---------------------------------------------------------------------------

def _env(name, default, cast=str):
    """
    Read an environment variable and cast it to the right type.
    If the var is missing or empty, return *default* (already the right type).
    """
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        # Special handling for booleans -- "true"/"1"/"yes" are all truthy
        if cast is bool:
            return raw.strip().lower() in ("true", "1", "yes")
        return cast(raw)
    except (ValueError, TypeError):
        return default


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

# Root log level for the CLI.  DEBUG shows every state save.
LOG_LEVEL: str = _env("LOG_LEVEL", "INFO")

# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

# Directory holding the local JSON state file.  Created on first save.
SHIELD_STATE_DIR: str = _env("SHIELD_STATE_DIR", "logs")

# Key the shield state is stored under.  Run one key per account/session
# if several shields share the same directory or Supabase table.
SHIELD_STATE_KEY: str = _env("SHIELD_STATE_KEY", "adversarial_shield_state")

# Saved state older than this is ignored on startup (7 days).
# Lowering it forgets learned thresholds sooner after a break.
SHIELD_STATE_MAX_AGE_SEC: float = _env("SHIELD_STATE_MAX_AGE_SEC", 7 * 24 * 3600.0, float)

# Supabase (PostgREST) -- optional remote mirror of the shield state.
# If not set, the shield runs fine with the local JSON file only.
SUPABASE_URL: str = _env("SUPABASE_URL", "")
SUPABASE_KEY: str = _env("SUPABASE_KEY", "")
SUPABASE_STATE_TABLE: str = _env("SUPABASE_STATE_TABLE", "shield_state")

# ---------------------------------------------------------------------------
# Outcome feed
# ---------------------------------------------------------------------------

# How many outcomes the feed keeps.  The sequence detector analyses the
# whole window, so raising it makes frequency/run tests slower to react.
SHIELD_FEED_WINDOW: int = _env("SHIELD_FEED_WINDOW", 50, int)

# ---------------------------------------------------------------------------
# Decision thresholds
# ---------------------------------------------------------------------------

# Starting confidence (fraction of detectors voting) needed to BLOCK/INVERT.
# It adapts between the min/max bounds from inversion outcomes.
SHIELD_INITIAL_THRESHOLD: float = _env("SHIELD_INITIAL_THRESHOLD", 0.60, float)
SHIELD_THRESHOLD_MIN: float = _env("SHIELD_THRESHOLD_MIN", 0.45, float)
SHIELD_THRESHOLD_MAX: float = _env("SHIELD_THRESHOLD_MAX", 0.75, float)

# Confidence that sends the shield into STANDBY after a single prior trap.
SHIELD_STANDBY_CONFIDENCE: float = _env("SHIELD_STANDBY_CONFIDENCE", 0.80, float)

# Recent inversion success rate required before the shield inverts instead
# of blocking.  Raising it makes the shield block more and invert less.
SHIELD_INVERSION_SUCCESS_MIN: float = _env("SHIELD_INVERSION_SUCCESS_MIN", 0.55, float)

# Threshold bump applied after a confirmed manual reset (more conservative).
SHIELD_RESET_THRESHOLD_BUMP: float = _env("SHIELD_RESET_THRESHOLD_BUMP", 0.05, float)

# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------

# Stake at or above which a trade counts as "big" for bait detection.
SHIELD_BIG_STAKE: float = _env("SHIELD_BIG_STAKE", 20.0, float)

# Temperature for ensemble calibration.  >1 softens overconfident models.
SHIELD_ENSEMBLE_TEMPERATURE: float = _env("SHIELD_ENSEMBLE_TEMPERATURE", 1.5, float)

# Absolute volatility above which the regime is CRISIS regardless of history.
SHIELD_CRISIS_VOL_THRESHOLD: float = _env("SHIELD_CRISIS_VOL_THRESHOLD", 40.0, float)


def print_banner():
    """Log the effective configuration at startup."""
    logger = logging.getLogger(__name__)
    logger.info("Adversarial shield configuration:")
    logger.info("  state: %s/%s.json (max age %.0fs)",
                SHIELD_STATE_DIR, SHIELD_STATE_KEY, SHIELD_STATE_MAX_AGE_SEC)
    logger.info("  supabase mirror: %s", "on" if SUPABASE_URL and SUPABASE_KEY else "off")
    logger.info("  threshold: %.2f (bounds %.2f-%.2f), standby confidence %.2f",
                SHIELD_INITIAL_THRESHOLD, SHIELD_THRESHOLD_MIN,
                SHIELD_THRESHOLD_MAX, SHIELD_STANDBY_CONFIDENCE)
    logger.info("  feed window: %d outcomes", SHIELD_FEED_WINDOW)
