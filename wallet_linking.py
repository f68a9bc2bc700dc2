"""
National ID to wallet linking wizard.

Four forward-only steps: verify the ID (server issues a challenge), connect
the wallet, sign the challenge and link, then show the confirmation. Each
public method is one transition; it returns True when the wizard advanced and
otherwise leaves the step untouched and reports why through a feedback event.
"""
import logging
from dataclasses import dataclass
from enum import IntEnum

from api_client import ApiClient
from config import INSTALL_WALLET_URL
from context import ClientContext
from errors import (
    NetworkFailure, ProgrammerPrecondition, ProviderRejected, ProviderUnavailable,
    RemoteVerificationFailure, ValidationError, VotingClientError,
)
from offline import (
    CHECK_WALLET_LINKAGE, LINK_WALLET, OFFLINE_BANNER, VERIFY_NATIONAL_ID, OfflineLinkingApi, is_offline,
)
from wallet_provider import ProviderError

logger = logging.getLogger("evote.linking")

MIN_NATIONAL_ID_LENGTH = 6
COUNTRY_CODE_PREFIX = "+"


class LinkingStep(IntEnum):
    ID_VERIFICATION = 1
    WALLET_CONNECTION = 2
    MESSAGE_SIGNING = 3
    CONFIRMATION = 4


@dataclass
class LinkingState:
    national_id: str = ""
    mobile_number: str = ""
    wallet_address: str = ""
    challenge: str = ""
    signature: str = ""
    verification_hash: str = ""
    current_step: LinkingStep = LinkingStep.ID_VERIFICATION


FEEDBACK_TARGETS = {
    LinkingStep.ID_VERIFICATION: "id-verification-feedback",
    LinkingStep.WALLET_CONNECTION: "wallet-connection-feedback",
    LinkingStep.MESSAGE_SIGNING: "message-signing-feedback",
}


class WalletLinkingWorkflow:
    def __init__(self, context: ClientContext, api: ApiClient, provider=None, offline_api=None):
        self.context = context
        self.api = api
        self.provider = provider if provider is not None else context.provider
        self.offline_api = offline_api or OfflineLinkingApi()
        self.state = LinkingState()

    @property
    def step(self) -> LinkingStep:
        return self.state.current_step

    @property
    def offline(self) -> bool:
        return is_offline(self.context.local)

    def start(self):
        if self.offline:
            self.context.events.emit("banner", message=OFFLINE_BANNER)
        if self.provider is None:
            self._feedback(LinkingStep.ID_VERIFICATION,
                           "MetaMask is not installed. You need MetaMask to link your wallet.", error=True)
            self.context.events.emit("install_wallet", href=INSTALL_WALLET_URL)
        self.context.events.emit("step", step=int(self.step))

    # --- plumbing ---
    def _feedback(self, step, message, error=False):
        self.context.events.feedback(message, error=error, target=FEEDBACK_TARGETS.get(step, "feedback"))

    def _advance(self, to: LinkingStep):
        if to != self.state.current_step + 1:
            raise ProgrammerPrecondition(f"Cannot move from step {int(self.step)} to {int(to)}")
        self.state.current_step = to
        logger.info("linking wizard advanced to step %d", int(to))
        self.context.events.emit("step", step=int(to))

    def _require_step(self, step: LinkingStep):
        if self.step != step:
            raise ProgrammerPrecondition(f"Wizard is at step {int(self.step)}, not {int(step)}")

    def _post(self, path: str, payload: dict):
        if self.offline:
            return self.offline_api.respond(path, payload)
        return self.api.call("POST", path, payload)

    # --- step 1 ---
    def _validate_identity(self, national_id: str, mobile_number: str):
        if not national_id or not mobile_number:
            raise ValidationError("Please fill in all fields.")
        if len(national_id) < MIN_NATIONAL_ID_LENGTH:
            raise ValidationError("Please enter a valid National ID.", field="national-id")
        if not mobile_number.startswith(COUNTRY_CODE_PREFIX):
            raise ValidationError("Mobile number should include country code (e.g., +254).", field="mobile-number")

    def verify_identity(self, national_id: str, mobile_number: str) -> bool:
        step = LinkingStep.ID_VERIFICATION
        national_id = (national_id or "").strip()
        mobile_number = (mobile_number or "").strip()
        try:
            self._require_step(step)
            self._validate_identity(national_id, mobile_number)
            resp = self._post(VERIFY_NATIONAL_ID, {"national_id": national_id, "mobile_number": mobile_number})
            challenge = resp.data.get("challenge")
            if not (resp.ok and resp.data.get("success") and challenge):
                raise RemoteVerificationFailure(
                    resp.data.get("message")
                    or "National ID verification failed. Please check your information and try again.",
                    payload=resp.data,
                )
        except VotingClientError as e:
            logger.info("ID verification failed: %s", e.message)
            self._feedback(step, e.message, error=True)
            return False
        self.state.national_id = national_id
        self.state.mobile_number = mobile_number
        self.state.challenge = challenge
        self._feedback(step, "National ID verified successfully! Please connect your wallet in the next step.")
        self._advance(LinkingStep.WALLET_CONNECTION)
        return True

    # --- step 2 ---
    def connect_wallet(self) -> bool:
        step = LinkingStep.WALLET_CONNECTION
        try:
            self._require_step(step)
            if self.provider is None:
                raise ProviderUnavailable("MetaMask is not installed. Please install MetaMask to continue.")
            try:
                accounts = self.provider.request("eth_requestAccounts")
            except ProviderError as e:
                logger.warning("Error connecting to wallet: %s", e)
                if e.user_rejected:
                    raise ProviderRejected(
                        "Wallet connection rejected. Please approve the connection in MetaMask.") from e
                raise VotingClientError("Error connecting to wallet. Please try again.") from e
            if not accounts:
                raise VotingClientError("No accounts found in MetaMask. Please unlock your wallet.")
        except VotingClientError as e:
            self._feedback(step, e.message, error=True)
            if isinstance(e, ProviderUnavailable):
                self.context.events.emit("install_wallet", href=INSTALL_WALLET_URL)
            return False
        self.state.wallet_address = accounts[0]
        self.context.events.emit("wallet_connected", address=self.state.wallet_address)
        self._feedback(step, "Wallet connected successfully! Please sign the verification message in the next step.")
        self.context.events.emit("challenge", message=self.state.challenge)
        self._advance(LinkingStep.MESSAGE_SIGNING)
        return True

    # --- step 3 ---
    def sign_and_link(self) -> bool:
        step = LinkingStep.MESSAGE_SIGNING
        state = self.state
        if not state.wallet_address or not state.challenge:
            self._feedback(step, "Missing wallet address or challenge message. Please go back and try again.",
                           error=True)
            return False
        try:
            self._require_step(step)
            try:
                signature = self.provider.request("personal_sign", [state.challenge, state.wallet_address])
            except ProviderError as e:
                logger.warning("Error signing message: %s", e)
                if e.user_rejected:
                    raise ProviderRejected(
                        "Signature request rejected. Please approve the signature in MetaMask.") from e
                raise VotingClientError("Error during signature. Please try again.") from e
            state.signature = signature
            self.context.events.emit("signature", preview=f"{signature[:20]}...{signature[-20:]}")
            resp = self._post(LINK_WALLET, {
                "national_id": state.national_id,
                "wallet_address": state.wallet_address,
                "signature": signature,
                "challenge": state.challenge,
            })
            verification_hash = resp.data.get("verification_hash")
            if not (resp.ok and resp.data.get("success") and verification_hash):
                raise RemoteVerificationFailure(
                    resp.data.get("message") or "Signature verification failed. Please try again.",
                    payload=resp.data,
                )
        except VotingClientError as e:
            self._feedback(step, e.message, error=True)
            return False
        state.verification_hash = verification_hash
        self.context.events.emit(
            "confirmation",
            national_id=state.national_id,
            wallet_address=state.wallet_address,
            verification_hash=verification_hash,
        )
        self._feedback(step, "Signature verified! Your National ID has been successfully linked to your wallet.")
        self._advance(LinkingStep.CONFIRMATION)
        return True

    def check_linkage(self, wallet_address: str | None = None) -> bool:
        address = wallet_address or self.state.wallet_address
        try:
            resp = self._post(CHECK_WALLET_LINKAGE, {"wallet_address": address})
        except NetworkFailure:
            logger.warning("wallet linkage check failed for %s", address)
            return False
        return bool(resp.ok and resp.data.get("isLinked"))
