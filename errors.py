"""
Error vocabulary shared by the session, linking and contract layers.

Everything derives from VotingClientError so page boundaries can catch the
whole family and turn it into feedback without swallowing real bugs.
"""
from enum import Enum


class ErrorKind(str, Enum):
    ALREADY_VOTED = "already_voted"
    VOTING_NOT_ACTIVE = "voting_not_active"
    INVALID_CANDIDATE = "invalid_candidate"
    USER_DECLINED = "user_declined"
    UNKNOWN = "unknown"


class VotingClientError(Exception):
    """Base class; ``message`` is safe to show to the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(VotingClientError):
    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class ProviderUnavailable(VotingClientError):
    pass


class ProviderRejected(VotingClientError):
    pass


class RemoteVerificationFailure(VotingClientError):
    def __init__(self, message: str, payload: dict | None = None):
        super().__init__(message)
        self.payload = payload or {}


class NetworkFailure(VotingClientError):
    """Raised once every route to the API has failed; ``causes`` keeps each attempt's error."""

    def __init__(self, message: str, causes: list | None = None):
        super().__init__(message)
        self.causes = list(causes or [])


class ContractCallFailure(VotingClientError):
    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN, cause: Exception | None = None):
        super().__init__(message)
        self.kind = kind
        self.cause = cause


class ContractInitializationFailed(VotingClientError):
    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class ProgrammerPrecondition(VotingClientError):
    pass


class ContractNotInitialized(ProgrammerPrecondition):
    pass
