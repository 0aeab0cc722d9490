import os, copy
from typing import Dict, Any, Optional
import yaml

from .errors import FatalInputError

DEFAULT_CONFIG_PATH = os.path.join("config", "wdi.yaml")

DEFAULTS: Dict[str, Any] = {
    "api": {
        "base_url": "https://api.worldbank.org/v2",
        "per_page": 25000,
        "catalog_per_page": 25000,
        "timeout": 30.0,
    },
    "fetch": {
        "max_workers": 8,
    },
}

# env var -> (section, key, cast)
ENV_OVERRIDES = {
    "WDI_BASE_URL": ("api", "base_url", str),
    "WDI_PER_PAGE": ("api", "per_page", int),
    "WDI_TIMEOUT": ("api", "timeout", float),
    "WDI_MAX_WORKERS": ("fetch", "max_workers", int),
}

def load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}

def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out

def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Defaults, then the YAML file (if any), then WDI_* environment variables."""
    cfg = copy.deepcopy(DEFAULTS)
    path = path or os.getenv("WDI_CONFIG") or DEFAULT_CONFIG_PATH
    if os.path.exists(path):
        cfg = _merge(cfg, load_yaml(path))
    for var, (section, key, cast) in ENV_OVERRIDES.items():
        raw = os.getenv(var)
        if raw is None or raw == "":
            continue
        try:
            cfg[section][key] = cast(raw)
        except ValueError:
            raise FatalInputError(f"{var}={raw!r} is not a valid {cast.__name__}")
    if cfg["fetch"]["max_workers"] < 1:
        raise FatalInputError("fetch.max_workers must be >= 1")
    return cfg
