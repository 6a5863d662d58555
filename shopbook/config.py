from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import streamlit as st

CONFIG_FILE_NAME = "settings.json"
DB_FILE_NAME = "shop.sqlite"
ENV_DATA_DIR = "SHOPBOOK_DATA_DIR"
ENV_CURRENCY = "SHOPBOOK_CURRENCY"
ENV_LOG_LEVEL = "SHOPBOOK_LOG_LEVEL"
SESSION_KEY = "shopbook_data_dir"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    currency: str = "DA"
    log_level: str = "INFO"


def _default_data_dir() -> Path:
    return Path.home() / ".shopbook"


def _load_persisted_settings(data_dir: Path) -> dict:
    cfg = data_dir / CONFIG_FILE_NAME
    if cfg.exists():
        try:
            return json.loads(cfg.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logging.getLogger(__name__).warning("Ignoring unreadable %s", cfg)
            return {}
    return {}


def persist_data_dir(data_dir_str: str) -> None:
    data_dir = Path(data_dir_str).expanduser().resolve()
    data_dir.mkdir(parents=True, exist_ok=True)

    # Remembered in the default folder so the next start finds it.
    default_dir = _default_data_dir()
    default_dir.mkdir(parents=True, exist_ok=True)
    cfg = default_dir / CONFIG_FILE_NAME
    payload = {**_load_persisted_settings(default_dir), "data_dir": str(data_dir)}
    cfg.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    # Update session for immediate effect
    st.session_state[SESSION_KEY] = str(data_dir)


def load_settings(data_dir_override: Optional[str] = None) -> Settings:
    # Priority order:
    # 1) Explicit override (session state in the UI)
    # 2) Environment variable
    # 3) Persisted settings in default folder
    # 4) Default folder
    default_dir = _default_data_dir()
    persisted = _load_persisted_settings(default_dir)

    if data_dir_override:
        data_dir = Path(data_dir_override).expanduser().resolve()
    elif os.getenv(ENV_DATA_DIR):
        data_dir = Path(os.getenv(ENV_DATA_DIR, "")).expanduser().resolve()
    else:
        data_dir = Path(persisted.get("data_dir", default_dir)).expanduser().resolve()

    currency = os.getenv(ENV_CURRENCY) or persisted.get("currency") or Settings.currency
    log_level = (os.getenv(ENV_LOG_LEVEL) or persisted.get("log_level") or Settings.log_level).upper()

    data_dir.mkdir(parents=True, exist_ok=True)
    return Settings(
        data_dir=data_dir,
        db_path=data_dir / DB_FILE_NAME,
        currency=str(currency),
        log_level=log_level,
    )


@st.cache_resource
def get_settings() -> Settings:
    settings = load_settings(st.session_state.get(SESSION_KEY))
    configure_logging(settings.log_level)
    return settings


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("shopbook").setLevel(level)
