#!/usr/bin/env python3
"""
Configuration Exception Definitions for duckchat

All configuration-related exceptions inherit from DuckChatError.
"""

from .base import DuckChatError


class ConfigError(DuckChatError):
    """Raised when settings are invalid or a config file cannot be read."""

    def __init__(self, message, field_name=None, invalid_value=None):
        super().__init__(message)
        self.field_name = field_name
        self.invalid_value = invalid_value
