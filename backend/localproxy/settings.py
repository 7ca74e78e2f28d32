import os
from pathlib import Path

DEFAULTS = {
    "DATA_DIR": "./data",
    "DB_FILENAME": "local-proxy.db",
    "BUSY_TIMEOUT_MS": "5000",
    "LOG_QUEUE_SIZE": "1000",
    "LOG_STAMP_ON_ENQUEUE": "false",  # false: rows carry write time
    "LOG_SLOW_WRITE_MS": "250",
    "LOG_DRAIN_TIMEOUT": "10",        # seconds; empty means wait for the full drain
    "BACKEND_LOG_LEVEL": "INFO",
}

def parse_bool(v: str) -> bool:
    return str(v).lower() in ("1","true","yes","on")

def load_settings_from_env():
    return {k: os.getenv(k, v) for k, v in DEFAULTS.items()}

def db_path(settings: dict) -> Path:
    return Path(settings["DATA_DIR"]) / settings["DB_FILENAME"]

def drain_timeout(settings: dict):
    raw = str(settings.get("LOG_DRAIN_TIMEOUT", "")).strip()
    return float(raw) if raw else None
