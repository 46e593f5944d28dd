"""
supabase_store.py -- Supabase (PostgREST) mirror for the shield state.

Keeps a copy of the shield state in a cloud table so learned thresholds and
standby status survive a wiped machine or a fresh container.

PATTERN:
  - Never raises -- logs warnings on failure
  - Shield works identically without Supabase configured
  - Uses urllib.request only (zero external dependencies)

WRITE PATH:
  Synchronous upsert on every save (the shield writes through after each
  mutating call, so there is nothing to batch).

READ PATH:
  One HTTP call on startup.  10s timeout.

SETUP:
  1. Create a Supabase project (free tier)
  2. create table shield_state (key text primary key, data jsonb,
                                updated_at timestamptz default now());
  3. Set SUPABASE_URL and SUPABASE_KEY env vars
"""

import json
import logging
import urllib.request
import urllib.error
import urllib.parse

import config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Guard
# ---------------------------------------------------------------------------

def _enabled() -> bool:
    """Return True if Supabase is configured."""
    return bool(config.SUPABASE_URL and config.SUPABASE_KEY)


def _table_path() -> str:
    return "/rest/v1/" + config.SUPABASE_STATE_TABLE


# ---------------------------------------------------------------------------
# Core HTTP helper
# ---------------------------------------------------------------------------

def _headers(prefer: str) -> dict:
    return {
        "apikey": config.SUPABASE_KEY,
        "Authorization": f"Bearer {config.SUPABASE_KEY}",
        "Content-Type": "application/json",
        "Prefer": prefer,
        "User-Agent": "AdversarialShield/1.0",
    }


def _request(method: str, params: dict, body: dict | None = None,
             upsert: bool = False, timeout: int = 10):
    """One call against the state table; parsed JSON, or None on failure."""
    if not _enabled():
        return None

    path = _table_path()
    url = config.SUPABASE_URL.rstrip("/") + path + "?" + urllib.parse.urlencode(params)
    if method == "GET":
        prefer = "return=representation"
    else:
        prefer = "return=minimal, resolution=merge-duplicates" if upsert else "return=minimal"
    data = json.dumps(body).encode("utf-8") if body is not None else None
    req = urllib.request.Request(url, data=data, headers=_headers(prefer), method=method)

    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
        return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as e:
        detail = e.read().decode("utf-8", errors="replace")[:200]
        logger.warning("Supabase %s %s HTTP %d: %s", method, path, e.code, detail)
        return None
    except Exception as e:
        logger.warning("Supabase %s %s failed: %s", method, path, e)
        return None


# ---------------------------------------------------------------------------
# State operations
# ---------------------------------------------------------------------------

def save_state(key: str, snapshot: dict) -> bool:
    """Upsert the state row for *key*.  Returns True on success."""
    if not _enabled():
        return False
    result = _request("POST", {"on_conflict": "key"},
                      body={"key": key, "data": snapshot}, upsert=True)
    return result is not None


def load_state(key: str) -> dict:
    """
    Load the state snapshot stored under *key*.

    Returns the state data dict, or {} when missing or on failure.
    """
    if not _enabled():
        return {}

    result = _request("GET", {
        "key": f"eq.{key}",
        "select": "data",
        "limit": "1",
    })

    if result is None:
        logger.warning("Supabase: failed to load shield state -- using local")
        return {}

    if isinstance(result, list) and len(result) > 0:
        data = result[0].get("data", {})
        if isinstance(data, dict) and data:
            logger.info("Supabase: loaded shield state snapshot")
            return data

    return {}


def delete_state(key: str) -> bool:
    if not _enabled():
        return False
    return _request("DELETE", {"key": f"eq.{key}"}) is not None
