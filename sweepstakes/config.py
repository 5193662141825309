from __future__ import annotations

import os


def _flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sweepstakes.db")
LOG_LEVEL = os.getenv("SWEEPSTAKES_LOG_LEVEL", "INFO").upper()

# Off in production: a rule set missing a category must fail loudly.
RULE_FALLBACK_ENABLED = _flag("SWEEPSTAKES_RULE_FALLBACK")
