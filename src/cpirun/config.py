from __future__ import annotations

import os

PLUGIN_CONFIG_ENV = "CPIRUN_PLUGIN_CONFIG"
LOG_PLAIN_ENV = "CPIRUN_LOG_PLAIN"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def env_flag(var_name: str, default: bool = False) -> bool:
    """Interpret boolean-ish environment variables such as `CPIRUN_LOG_PLAIN`, which
    switches `cpirun.log` to plain output when an orchestrator captures our stderr.
    Unrecognized values fall back to `default`."""
    raw = os.environ.get(var_name)
    if raw is None:
        return default
    norm = raw.strip().lower()
    if norm in _TRUTHY:
        return True
    if norm in _FALSY:
        return False
    return default
