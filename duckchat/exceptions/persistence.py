#!/usr/bin/env python3
"""
Persistence Exception Definitions for duckchat

Raised by the history store. Callers log them; a chat turn never fails
because a snapshot could not be written.
"""

from .base import DuckChatError


class PersistenceError(DuckChatError):
    """Raised when a session snapshot cannot be saved or loaded."""

    def __init__(self, message, file_path=None, operation=None, original_error=None):
        super().__init__(message, original_error=original_error)
        self.file_path = file_path
        self.operation = operation
        self.user_hint = "Conversation history could not be read or written."
