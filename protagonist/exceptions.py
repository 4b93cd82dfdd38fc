"""
Error taxonomy shared by the generation core and the route layer.

Provider failures stay inside their chain; only exhaustion of a whole chain
surfaces as ``GenerationFailed``.
"""
from enum import Enum
from typing import List, Optional, Tuple


class ProtagonistError(Exception):
    """Base class for all errors raised by this package"""
    pass


class ConfigurationError(ProtagonistError):
    """Provider credentials or settings are missing or invalid"""
    pass


class ProviderError(ProtagonistError):
    """An external AI call failed (non-2xx, network failure or timeout)"""

    def __init__(self, provider: str, message: str):
        super().__init__(f"[{provider}] {message}")
        self.provider = provider


class ProviderTimeoutError(ProviderError):
    """An external AI call did not finish within its time budget"""
    pass


class ParseError(ProtagonistError):
    """A provider response lacks its expected structural markers"""
    pass


class NotFoundError(ProtagonistError):
    """Unknown template, arc, episode or user"""

    def __init__(self, kind: str, identifier):
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class StateReason(str, Enum):
    ARC_INACTIVE = "arc_inactive"
    ARC_COMPLETED = "arc_completed"
    ARC_DAY_EXCEEDED = "arc_day_exceeded"
    DAY_OUT_OF_SEQUENCE = "day_out_of_sequence"
    DAILY_QUOTA_EXCEEDED = "daily_quota_exceeded"
    ACTIVE_ARC_EXISTS = "active_arc_exists"
    INVALID_FEEDBACK = "invalid_feedback"


class StateError(ProtagonistError):
    """The arc or user is not in a state that allows the operation"""

    def __init__(self, reason: StateReason, message: Optional[str] = None):
        super().__init__(message or reason.value)
        self.reason = reason


class GenerationFailed(ProtagonistError):
    """Every provider in a chain failed"""

    def __init__(self, chain: str, errors: List[Tuple[str, Exception]]):
        details = "; ".join(f"{name}: {err}" for name, err in errors) or "no providers configured"
        super().__init__(f"{chain} generation failed ({details})")
        self.chain = chain
        self.errors = errors
