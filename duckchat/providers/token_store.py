"""
Session token bookkeeping for the chat backend.

The backend hands out an opaque token (VQD) on bootstrap and a fresh one
on every successful chat response. Tokens only ever move forward: once a
token has been superseded it is never adopted again.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class AuxHeaders:
    """Anti-automation values sent alongside the token."""

    fe_signals: str = ""
    fe_version: str = ""
    vqd_hash_1: str = ""
    user_agent: str = ""
    sec_ch_ua: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "AuxHeaders":
        return cls(
            fe_signals=str(data.get("fe_signals", "")),
            fe_version=str(data.get("fe_version", "")),
            vqd_hash_1=str(data.get("vqd_hash_1", "")),
            user_agent=str(data.get("user_agent", "")),
            sec_ch_ua=str(data.get("sec_ch_ua", "")),
        )

    def as_request_headers(self) -> Dict[str, str]:
        headers = {
            "x-fe-signals": self.fe_signals,
            "x-fe-version": self.fe_version,
        }
        if self.vqd_hash_1:
            headers["x-vqd-hash-1"] = self.vqd_hash_1
        return headers


class TokenStore:
    """
    Current/previous token pair plus the retry window counter.
    """

    def __init__(self, aux_headers: Optional[AuxHeaders] = None):
        self.current: Optional[str] = None
        self.previous: Optional[str] = None
        self.aux_headers = aux_headers or AuxHeaders()
        self.retry_count = 0
        self._retired: Set[str] = set()

    @property
    def has_token(self) -> bool:
        return bool(self.current)

    def is_retired(self, token: str) -> bool:
        return token in self._retired

    def rotate(self, token: Optional[str]) -> bool:
        """
        Adopt ``token`` as the current one.

        Empty tokens, the current token and any superseded token are
        ignored. Returns True when the store actually moved forward.
        """
        if not token or token == self.current:
            return False
        if token in self._retired:
            logger.warning("Ignoring superseded session token")
            return False

        if self.current:
            self._retired.add(self.current)
        self.previous = self.current
        self.current = token
        return True

    def set_aux_headers(self, aux_headers: AuxHeaders) -> None:
        self.aux_headers = aux_headers

    # --- Retry window ---

    def record_retry(self) -> int:
        self.retry_count += 1
        return self.retry_count

    def reset_retries(self) -> None:
        self.retry_count = 0
