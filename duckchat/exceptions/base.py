#!/usr/bin/env python3
"""
Base Exception Contract for duckchat

Provides the single source of truth for the duckchat error contract.
All domain-specific exceptions must inherit from DuckChatError.
"""

from typing import Optional


class DuckChatError(Exception):
    """
    The Base Contract for all duckchat errors.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        user_hint: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.user_hint = user_hint or "An internal error occurred."
        self.details = details or {}
