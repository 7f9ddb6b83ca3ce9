from .database import (
    db,
    Key,
    KeySystem,
    KeyLoan,
    KeyBundle,
    Receipt,
    KeyEvent,
    KeyNote,
    Signature,
    Log,
    log_activity,
    utc_now,
)
from .logger import setup_logger

__all__ = [
    "db",
    "Key",
    "KeySystem",
    "KeyLoan",
    "KeyBundle",
    "Receipt",
    "KeyEvent",
    "KeyNote",
    "Signature",
    "Log",
    "setup_logger",
    "log_activity",
    "utc_now",
]
