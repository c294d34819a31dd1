# --- START OF FULL tools/logger.py ---
import os
import sys
import traceback
from datetime import datetime, timezone

import pytz

# === Config (read once at import; set env before importing) ===
DEBUG_MODE = os.getenv("DEBUG_MODE", "True").strip().lower() in ("true", "1", "t", "yes", "y")
LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_FILE = os.path.join(LOG_DIR, "artifact_extractor.log")  # warnings/errors when DEBUG_MODE is off

_tz_name = os.getenv("LOG_TIMEZONE", "UTC")
try:
    LOG_TZ = pytz.timezone(_tz_name)
except pytz.UnknownTimeZoneError:
    sys.stderr.write(f"[logger] Unknown LOG_TIMEZONE '{_tz_name}', using UTC.\n")
    LOG_TZ = pytz.utc

if not DEBUG_MODE:
    try:
        os.makedirs(LOG_DIR, exist_ok=True)
    except OSError as mkdir_err:
        sys.stderr.write(f"[{datetime.now(timezone.utc):%Y-%m-%d %H:%M:%S} UTC] [ERROR] [logger:init] Cannot create '{LOG_DIR}': {mkdir_err}\n")


def _stamp() -> str:
    return datetime.now(LOG_TZ).strftime("%Y-%m-%d %H:%M:%S %Z")


def _emit(level: str, module: str, func: str, message: str, exception: Exception | None, to_file: bool):
    # Line format: [YYYY-MM-DD HH:MM:SS TZ] [LEVEL] [module:func] message
    line = f"[{_stamp()}] [{level}] [{module}:{func}] {message}"
    details = traceback.format_exc() if exception is not None else None
    if details and details.startswith("NoneType: None"):
        details = f"{type(exception).__name__}: {exception}"
    # Messages may echo client input; lone surrogates would break print() and the file sink
    line = line.encode("utf-8", "backslashreplace").decode("utf-8")
    if details:
        details = details.encode("utf-8", "backslashreplace").decode("utf-8")

    if DEBUG_MODE:
        print(line)
        if details:
            print(details)
        return
    if not to_file:
        return
    try:
        with open(LOG_FILE, "a", encoding="utf-8") as log_fh:
            log_fh.write(line + "\n")
            if details:
                log_fh.write(details.rstrip("\n") + "\n")
    except OSError as write_err:
        # The file sink itself failed, fall back to stderr
        sys.stderr.write(f"[{_stamp()}] [CRITICAL] [logger:{level.lower()}] Cannot write {LOG_FILE}: {write_err}\n{line}\n")


def log_info(module: str, func: str, message: str):
    """Progress messages; only shown in DEBUG_MODE."""
    _emit("INFO", module, func, message, None, to_file=False)


def log_warning(module: str, func: str, message: str, exception: Exception = None):
    """Recoverable problems. Logged to file outside DEBUG_MODE."""
    _emit("WARNING", module, func, message, exception, to_file=True)


def log_error(module: str, func: str, message: str, exception: Exception = None):
    """Failures, with the active traceback when an exception is passed."""
    _emit("ERROR", module, func, message, exception, to_file=True)

# --- END OF FULL tools/logger.py ---
