import time
import logging
from dataclasses import dataclass

from config import CONTRACT_ERROR_MAP, CONTRACT_INIT_MAX_ATTEMPTS, CONTRACT_INIT_RETRY_DELAY
from context import ClientContext
from errors import ContractCallFailure, ContractInitializationFailed, ContractNotInitialized, ErrorKind

logger = logging.getLogger("evote.guard.contract")

# remote reason substring -> kind; matched case-insensitively
DEFAULT_ERROR_MAP = {
    "AlreadyVoted": ErrorKind.ALREADY_VOTED,
    "VotingNotActive": ErrorKind.VOTING_NOT_ACTIVE,
    "InvalidCandidate": ErrorKind.INVALID_CANDIDATE,
    "user denied": ErrorKind.USER_DECLINED,
    "user rejected": ErrorKind.USER_DECLINED,
}

ERROR_MESSAGES = {
    ErrorKind.ALREADY_VOTED: "You have already voted",
    ErrorKind.VOTING_NOT_ACTIVE: "Voting is not currently active",
    ErrorKind.INVALID_CANDIDATE: "Invalid candidate selection",
    ErrorKind.USER_DECLINED: "Transaction rejected. Please confirm in MetaMask.",
}

_NO_FALLBACK = object()


def build_error_map(overrides: dict | None = None) -> dict:
    table = dict(DEFAULT_ERROR_MAP)
    for reason, kind in (overrides or {}).items():
        table[reason] = ErrorKind(kind)
    return table


def classify(error: Exception, table: dict) -> ErrorKind:
    text = str(error).lower()
    for reason, kind in table.items():
        if reason.lower() in text:
            return kind
    return ErrorKind.UNKNOWN


@dataclass
class ContractInitState:
    initialized: bool = False
    error: Exception | None = None
    attempts: int = 0
    max_attempts: int = CONTRACT_INIT_MAX_ATTEMPTS


class ContractGuard:
    """
    Owns the contract handle for a page load.

    ``factory(signer)`` builds the contract object (a VotingContract in
    production); initialization probes it with ``has_voted(signer)`` before
    any guarded call is allowed through.
    """

    def __init__(self, context: ClientContext, factory, max_attempts: int = CONTRACT_INIT_MAX_ATTEMPTS,
                 retry_delay: float = CONTRACT_INIT_RETRY_DELAY, error_map: dict | None = None, sleep=time.sleep):
        self.context = context
        self.factory = factory
        self.retry_delay = retry_delay
        self.sleep = sleep
        self.error_map = build_error_map(CONTRACT_ERROR_MAP if error_map is None else error_map)
        self.state = ContractInitState(max_attempts=max_attempts)

    @property
    def contract(self):
        return self.context.contract

    def initialize(self):
        state = self.state
        signer = self.context.signer
        if state.attempts >= state.max_attempts and not state.initialized:
            # exhausted; only reinitialize() starts a new round
            raise ContractInitializationFailed(
                f"Failed to initialize voting contract: {state.error}", attempts=state.attempts)
        while True:
            state.attempts += 1
            logger.info("Attempting to initialize contract (Attempt %d/%d)", state.attempts, state.max_attempts)
            try:
                if not signer:
                    raise RuntimeError("Signer not initialized. Please connect your wallet first.")
                contract = self.factory(signer)
                contract.has_voted(signer)
            except Exception as e:
                logger.warning("Contract initialization error: %s", e)
                state.error = e
                if state.attempts < state.max_attempts:
                    self.sleep(self.retry_delay)
                    continue
                self.context.events.feedback(f"Failed to initialize voting contract: {e}", error=True)
                raise ContractInitializationFailed(
                    f"Failed to initialize voting contract: {e}", attempts=state.attempts) from e
            self.context.contract = contract
            state.initialized = True
            state.error = None
            logger.info("Contract initialized successfully")
            return contract

    def reinitialize(self, signer=None):
        """Re-derive the contract for the current (or given) signer; safe to call repeatedly."""
        if signer is not None:
            self.context.signer = signer
        self.context.contract = None
        self.state = ContractInitState(max_attempts=self.state.max_attempts)
        return self.initialize()

    def ensure(self):
        if self.context.contract is None or not self.state.initialized:
            raise ContractNotInitialized(
                "Voting contract not properly initialized. Please refresh the page and try again.")

    def call(self, fn, fallback=_NO_FALLBACK, error_message: str = "Contract operation failed"):
        self.ensure()
        try:
            return fn(self.context.contract)
        except Exception as e:
            logger.error("%s: %s", error_message, e)
            kind = classify(e, self.error_map)
            if kind in ERROR_MESSAGES:
                raise ContractCallFailure(ERROR_MESSAGES[kind], kind=kind, cause=e) from e
            if fallback is not _NO_FALLBACK:
                return fallback
            raise ContractCallFailure(f"{error_message}: {e}", cause=e) from e
