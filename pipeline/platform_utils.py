# Module: platform_utils
# License: MIT (Listing Studio project)
# Description: Settings loading (YAML + environment) and structured logging setup.
# Platform: Server + Client
# Dependencies: yaml, os, pathlib

"""
Platform Utilities
==================
Resolves runtime configuration and configures logging. All other modules
import from here.

Configuration sources, lowest to highest precedence:
    1. Built-in defaults
    2. YAML file (configs/studio.yaml, or the path in STUDIO_CONFIG)
    3. Environment variables
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

logger = logging.getLogger("studio.platform")

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "configs" / "studio.yaml"

MIB = 1024 * 1024

# Settings field -> environment variable
ENV_KEYS = {
    "openai_api_key": "OPENAI_API_KEY",
    "text_model": "TEXT_MODEL",
    "image_model": "IMAGE_MODEL",
    "reasoning_effort": "REASONING_EFFORT",
    "image_size": "IMAGE_SIZE",
    "max_body_bytes": "MAX_BODY_BYTES",
    "listing_language": "LISTING_LANGUAGE",
    "marketplace": "MARKETPLACE",
    "currency": "CURRENCY",
    "allowed_origins": "ALLOWED_ORIGINS",
    "public_dir": "PUBLIC_DIR",
    "log_level": "LOG_LEVEL",
    "log_format": "LOG_FORMAT",
}

_ENV_REF_RE = re.compile(r"\$\{(\w+)\}")

# Settings where an explicit empty value means "off" instead of "unset"
BLANK_ALLOWED = {"reasoning_effort"}
OFF_VALUES = {"", "none", "off"}


@dataclass(frozen=True)
class Settings:
    openai_api_key: Optional[str] = None
    text_model: str = "gpt-5"
    image_model: str = "gpt-image-1"
    reasoning_effort: str = "low"
    image_size: str = "1024x1024"
    max_body_bytes: int = 80 * MIB
    listing_language: str = "English"
    marketplace: str = "Vinted"
    currency: str = "€"
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    public_dir: str = str(PROJECT_ROOT / "public")
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def has_key(self) -> bool:
        return bool(self.openai_api_key)

    def with_overrides(self, **overrides: Any) -> "Settings":
        return replace(self, **overrides)


def _expand_env(raw: str, env: Mapping[str, str]) -> str:
    """Replace ${VAR} references with values from ``env`` (empty when unset)."""
    return _ENV_REF_RE.sub(lambda m: env.get(m.group(1), ""), raw)


def _coerce(name: str, value: Any) -> Any:
    if name == "max_body_bytes":
        return int(value)
    if name == "allowed_origins":
        if isinstance(value, str):
            return [o.strip() for o in value.split(",") if o.strip()]
        return [str(o).strip() for o in value if str(o).strip()]
    if name in BLANK_ALLOWED:
        # YAML 1.1 reads a bare `off` as False
        value = "" if value is None or value is False else str(value).strip()
        return "" if value.lower() in OFF_VALUES else value
    if name == "openai_api_key":
        value = str(value).strip()
        return value or None
    return str(value)


def load_config(config_path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> dict:
    """
    Load the YAML configuration file with environment variable expansion.

    Args:
        config_path: Path to the YAML file. If None, uses STUDIO_CONFIG or
            configs/studio.yaml, and a missing default file yields {}.
        env: Environment mapping used for ${VAR} expansion.

    Returns:
        dict: Parsed configuration (possibly empty).

    Raises:
        FileNotFoundError: if an explicitly requested file does not exist.
    """
    env = os.environ if env is None else env
    explicit = config_path is not None or bool(env.get("STUDIO_CONFIG"))

    path = Path(config_path or env.get("STUDIO_CONFIG") or DEFAULT_CONFIG_PATH)
    if not path.exists():
        if explicit:
            raise FileNotFoundError(f"Config file not found: {path}")
        return {}

    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()

    config = yaml.safe_load(_expand_env(raw, env)) or {}
    if not isinstance(config, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return config


def load_settings(
    config_path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build Settings from defaults, the YAML file and the environment.

    Empty values are ignored so that an unset ${VAR} in the YAML file does
    not clobber a default. reasoning_effort is the exception: empty, "none" or
    "off" disable it.
    """
    env = os.environ if env is None else env
    known = {f.name for f in fields(Settings)}
    values: Dict[str, Any] = {}

    for key, value in load_config(config_path, env).items():
        if key not in known:
            logger.warning("Ignoring unknown config key: %s", key)
            continue
        if value is None or (value == "" and key not in BLANK_ALLOWED):
            continue
        values[key] = _coerce(key, value)

    for name, env_key in ENV_KEYS.items():
        raw = env.get(env_key)
        if raw is None or (raw.strip() == "" and name not in BLANK_ALLOWED):
            continue
        values[name] = _coerce(name, raw)

    return Settings(**values)


# ── Logging ────────────────────────────────────────────────────────────


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if hasattr(record, "run_id"):
            log_entry["run_id"] = record.run_id
        if hasattr(record, "stage"):
            log_entry["stage"] = record.stage
        if hasattr(record, "latency_ms"):
            log_entry["latency_ms"] = record.latency_ms
        if record.exc_info and record.exc_info[1]:
            log_entry["error"] = str(record.exc_info[1])
        return json.dumps(log_entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    """
    Configure logging for the studio.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        fmt: 'json' for one JSON object per line, anything else for text.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    logging.basicConfig(level=log_level, handlers=[handler], force=True)
