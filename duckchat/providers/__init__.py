from .challenge import ChallengeDetector, ChallengeKind
from .duckduckgo import SessionProtocolManager, SessionState, build_header_provider
from .headers import HeaderProvider, PageHeaderProvider, StaticHeaderProvider
from .sse import ChatStream
from .token_store import AuxHeaders, TokenStore

__all__ = [
    "AuxHeaders",
    "ChallengeDetector",
    "ChallengeKind",
    "ChatStream",
    "HeaderProvider",
    "PageHeaderProvider",
    "SessionProtocolManager",
    "SessionState",
    "StaticHeaderProvider",
    "TokenStore",
    "build_header_provider",
]
