# Core modules for Script2Video
from .config import Settings, get_settings
from .database import SCHEMA_VERSION, Base, Database
from .errors import (
    ExportError,
    MediaFetchError,
    SaveCancelled,
    Script2VideoError,
    StoreTransactionError,
    StructuralError,
    UnsupportedFormatError,
)
from .logging import configure_logging

__all__ = [
    "Settings",
    "get_settings",
    "SCHEMA_VERSION",
    "Base",
    "Database",
    "configure_logging",
    "Script2VideoError",
    "StructuralError",
    "MediaFetchError",
    "UnsupportedFormatError",
    "ExportError",
    "StoreTransactionError",
    "SaveCancelled",
]
