from enum import Enum


class EventTypes(str, Enum):
    """
    Canonical event names carried by the EventBus.
    Using an Enum prevents typo bugs (e.g., 'token_refresh' vs 'token_refreshed').
    """

    # 1. System Events
    WARNING = "warning"
    ERROR = "error"

    # 2. Conversation Events (Downstream)
    STREAM_CHUNK = "stream_chunk"
    RESPONSE_COMPLETE = "response_complete"
    CHAT_INTERACTION = "chat_interaction"
    MESSAGE_RECORDED = "message_recorded"

    # 3. Protocol Events
    CHALLENGE_DETECTED = "challenge_detected"
    TOKEN_REFRESHED = "token_refreshed"
    HEADERS_REFRESHED = "headers_refreshed"

    # 4. Command/Config Events
    MODEL_SWITCHED = "model_switched"
    SESSION_CLEARED = "session_cleared"

    # 5. Context Events
    CONTEXT_OPTIMIZED = "context_optimized"
