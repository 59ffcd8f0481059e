"""
Domain exceptions.

Each exception carries a user-facing message; ``main.py`` maps them to HTTP
responses.
"""
from typing import Optional


ERROR_MESSAGES = {
    "ai_service": "Otagon is having trouble thinking right now. Please try again.",
    "network": "I'm having trouble connecting to the AI service. Check your internet connection and try again.",
    "rate_limit": "I'm getting too many requests right now. Please wait a moment before trying again.",
    "conversation": "There was a problem saving your conversation. Your progress might not be saved.",
    "unknown": "Something unexpected happened. Please try again or refresh the page.",
}


class OtagonError(Exception):
    """Base class for errors surfaced to API clients."""

    code = "unknown"
    status_code = 500

    def __init__(self, detail: str, message: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.message = message or ERROR_MESSAGES.get(self.code, ERROR_MESSAGES["unknown"])

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, "detail": self.detail}


class ConversationNotFoundError(OtagonError):
    code = "conversation_not_found"
    status_code = 404

    def __init__(self, conversation_id: str):
        super().__init__(
            f"Conversation {conversation_id} not found",
            message="That conversation no longer exists.",
        )
        self.conversation_id = conversation_id


class ConversationConflictError(OtagonError):
    """A conversation changed underneath a read-modify-write."""

    code = "conversation_conflict"
    status_code = 409

    def __init__(self, detail: str):
        super().__init__(detail, message=ERROR_MESSAGES["conversation"])


class ConversationLimitError(OtagonError):
    code = "conversation_limit"
    status_code = 403

    def __init__(self, reason: str):
        super().__init__(reason, message=reason)


class QuotaExceededError(OtagonError):
    code = "quota_exceeded"
    status_code = 429

    def __init__(self, query_type: str, used: int, limit: int, reason: str):
        super().__init__(reason, message=reason)
        self.query_type = query_type
        self.used = used
        self.limit = limit

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"query_type": self.query_type, "used": self.used, "limit": self.limit})
        return data


class TrialError(OtagonError):
    code = "trial_unavailable"
    status_code = 400

    def __init__(self, reason: str):
        super().__init__(reason, message=reason)


class AIServiceError(OtagonError):
    code = "ai_service"
    status_code = 502

    def __init__(self, detail: str, kind: str = "ai_service"):
        super().__init__(detail, message=ERROR_MESSAGES.get(kind, ERROR_MESSAGES["ai_service"]))
        self.kind = kind


class InvalidPairingCodeError(OtagonError):
    code = "invalid_pairing_code"
    status_code = 400

    def __init__(self, code: str):
        super().__init__(
            f"Invalid pairing code: {code!r}",
            message="Invalid code format. Please enter a 4-digit code.",
        )
