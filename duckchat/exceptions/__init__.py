#!/usr/bin/env python3
"""
duckchat Exceptions Package

Unified exception hierarchy for the duckchat client.
"""

# Base exceptions
from .base import DuckChatError

# Protocol exceptions
from .protocol import (
    DecodeWarning,
    ExhaustedRetries,
    InvalidTokenError,
    ProtocolError,
    TokenAcquisitionError,
    TransientChallenge,
    TransportError,
)

# Persistence exceptions
from .persistence import PersistenceError

# Config exceptions
from .config import ConfigError


__all__ = [
    # Base
    "DuckChatError",
    # Protocol
    "ProtocolError",
    "TokenAcquisitionError",
    "TransientChallenge",
    "InvalidTokenError",
    "ExhaustedRetries",
    "TransportError",
    "DecodeWarning",
    # Persistence
    "PersistenceError",
    # Config
    "ConfigError",
]
