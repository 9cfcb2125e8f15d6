"""Ambient infrastructure: configuration, errors, logging, clocks, database."""

from .clock import Clock, ManualClock, SystemClock
from .config import CoreSettings, clear_config_cache, get_config
from .exceptions import (
    ConfigException,
    ConflictError,
    DuplicateIdentityError,
    DuplicateScoreError,
    DuplicateTrustError,
    NotFoundError,
    NotTrustedError,
    PersistenceError,
    TransportError,
    UnknownIdentityError,
    UnreachableError,
    ValidationError,
    WotException,
)

__all__ = [
    "Clock",
    "ConfigException",
    "ConflictError",
    "CoreSettings",
    "DuplicateIdentityError",
    "DuplicateScoreError",
    "DuplicateTrustError",
    "ManualClock",
    "NotFoundError",
    "NotTrustedError",
    "PersistenceError",
    "SystemClock",
    "TransportError",
    "UnknownIdentityError",
    "UnreachableError",
    "ValidationError",
    "WotException",
    "clear_config_cache",
    "get_config",
]
