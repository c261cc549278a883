# config.py: sane config with loud failures

import os

# Hard requirements. Fail fast if any are missing.
REQUIRED = [
    "SUPABASE_URL",
    "SUPABASE_KEY",
]

# Optional knobs with defaults that won't sandbag you at runtime.
DEFAULTS = {
    # Role store access
    "ROLE_STORE_TIMEOUT_MS": 2000,
    "ROLE_STORE_RETRY_ATTEMPTS": 2,

    # Role sessions held in memory (least recently used evicted beyond this)
    "ROLE_SESSION_MAX": 10000,

    # Access guard
    "GUARD_SHOW_LOADING": True,

    # Operator role preview ("preview as ..."); off in production
    "ROLE_OVERRIDE_ENABLED": False,
    "OPERATOR_API_KEY": None,

    "LOG_LEVEL": "INFO",
}

_BOOL_KEYS = {"GUARD_SHOW_LOADING", "ROLE_OVERRIDE_ENABLED"}
_POSITIVE_INT_KEYS = {"ROLE_STORE_TIMEOUT_MS", "ROLE_STORE_RETRY_ATTEMPTS", "ROLE_SESSION_MAX"}
_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _as_bool(val) -> bool:
    return val.lower() in ('true', '1', 'yes', 'on') if isinstance(val, str) else bool(val)


def load_config():
    """
    Load env config, erroring clearly if anything critical is missing.
    Returns a dict of required + defaults (with types normalized).
    """
    missing = [k for k in REQUIRED if not os.getenv(k)]
    if missing:
        missing_list = ', '.join(missing)
        raise RuntimeError(
            f"Missing required environment variables: {missing_list}. "
            f"Please check your .env file and ensure all required variables are set."
        )

    cfg = {k: os.getenv(k) for k in REQUIRED}

    for k, v in DEFAULTS.items():
        val = os.getenv(k, v)

        if k in _BOOL_KEYS:
            val = _as_bool(val)
        elif k in _POSITIVE_INT_KEYS:
            try:
                val = int(val)
                if val <= 0:
                    raise ValueError(f"{k} must be a positive integer")
            except (ValueError, TypeError):
                raise RuntimeError(f"{k} must be a positive integer, got: {val}")
        elif k == "OPERATOR_API_KEY":
            val = val or None
        elif k == "LOG_LEVEL":
            val = (val or "INFO").upper()
            if val not in _LOG_LEVELS:
                raise RuntimeError(f"LOG_LEVEL must be one of {_LOG_LEVELS}, got: {val}")

        cfg[k] = val

    # An enabled override without an operator key would be unreachable.
    if cfg["ROLE_OVERRIDE_ENABLED"] and not cfg["OPERATOR_API_KEY"]:
        raise RuntimeError(
            "ROLE_OVERRIDE_ENABLED requires OPERATOR_API_KEY to be set"
        )

    return cfg


def get_debug_config():
    """
    Get configuration for debug endpoint.
    Returns sanitized config (no secrets).
    """
    import time

    cfg = load_config()

    sanitized = {
        k: v for k, v in cfg.items()
        if not any(secret in k.upper() for secret in ["KEY", "SECRET", "PASSWORD", "TOKEN"])
    }

    sanitized["_metadata"] = {
        "environment": os.getenv("ENVIRONMENT", "development"),
        "loaded_at": time.time()
    }

    return sanitized
