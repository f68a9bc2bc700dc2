import pytest

from offline import CHECK_WALLET_LINKAGE, LINK_WALLET, VERIFY_NATIONAL_ID
from storage import OFFLINE_MODE
from wallet_linking import LinkingStep, WalletLinkingWorkflow
from wallet_provider import LocalAccountProvider, verify_wallet_signature

from conftest import API
from fakes import FakeResponse

NATIONAL_ID = "12345678"
MOBILE = "+254712345678"


@pytest.fixture
def provider():
    return LocalAccountProvider.create()


@pytest.fixture
def wizard(context, api, provider):
    return WalletLinkingWorkflow(context, api, provider=provider)


def _feedback(context):
    return context.events.last("feedback")


def _verified(http, challenge="IEBC-Verify-x-1"):
    http.add("POST", f"{API}{VERIFY_NATIONAL_ID}",
             FakeResponse(data={"success": True, "message": "ok", "challenge": challenge}))


def test_verify_identity_success(wizard, http, context):
    _verified(http, challenge="X")

    assert wizard.verify_identity(NATIONAL_ID, MOBILE) is True
    assert wizard.step is LinkingStep.WALLET_CONNECTION
    assert wizard.state.challenge == "X"
    assert http.calls[0][2]["json"] == {"national_id": NATIONAL_ID, "mobile_number": MOBILE}
    assert context.events.last("step")["step"] == 2


def test_verify_identity_server_rejection(wizard, http, context):
    http.add("POST", f"{API}{VERIFY_NATIONAL_ID}",
             FakeResponse(status=400, data={"success": False, "message": "bad id"}))

    assert wizard.verify_identity(NATIONAL_ID, MOBILE) is False
    assert wizard.step is LinkingStep.ID_VERIFICATION
    assert wizard.state.national_id == ""
    fb = _feedback(context)
    assert (fb["message"], fb["error"], fb["target"]) == ("bad id", True, "id-verification-feedback")


def test_verify_identity_success_without_challenge_is_failure(wizard, http, context):
    http.add("POST", f"{API}{VERIFY_NATIONAL_ID}", FakeResponse(data={"success": True}))

    assert wizard.verify_identity(NATIONAL_ID, MOBILE) is False
    assert _feedback(context)["message"].startswith("National ID verification failed")


@pytest.mark.parametrize("national_id, mobile, message", [
    ("", MOBILE, "Please fill in all fields."),
    (NATIONAL_ID, "  ", "Please fill in all fields."),
    ("12345", MOBILE, "Please enter a valid National ID."),
    (NATIONAL_ID, "0712345678", "Mobile number should include country code (e.g., +254)."),
])
def test_verify_identity_validation_makes_no_request(wizard, http, context, national_id, mobile, message):
    assert wizard.verify_identity(national_id, mobile) is False
    assert http.calls == []
    assert _feedback(context)["message"] == message


def test_verify_identity_network_failure(wizard, context):
    assert wizard.verify_identity(NATIONAL_ID, MOBILE) is False
    assert _feedback(context)["message"] == "An error occurred. Please try again later."
    assert wizard.step is LinkingStep.ID_VERIFICATION


def test_connect_wallet_before_verification_is_refused(wizard, context):
    assert wizard.connect_wallet() is False
    assert wizard.step is LinkingStep.ID_VERIFICATION


def test_connect_wallet_without_provider(context, api, http):
    wizard = WalletLinkingWorkflow(context, api, provider=None)
    wizard.start()
    assert context.events.last("install_wallet")

    _verified(http)
    wizard.verify_identity(NATIONAL_ID, MOBILE)
    assert wizard.connect_wallet() is False
    assert wizard.step is LinkingStep.WALLET_CONNECTION
    assert _feedback(context)["message"] == "MetaMask is not installed. Please install MetaMask to continue."


def test_connect_wallet_rejected(context, api, http):
    wizard = WalletLinkingWorkflow(context, api, provider=LocalAccountProvider.create(approve=lambda m, p: False))
    _verified(http)
    wizard.verify_identity(NATIONAL_ID, MOBILE)

    assert wizard.connect_wallet() is False
    assert wizard.step is LinkingStep.WALLET_CONNECTION
    fb = _feedback(context)
    assert fb["message"] == "Wallet connection rejected. Please approve the connection in MetaMask."
    assert fb["target"] == "wallet-connection-feedback"


def test_connect_wallet_with_no_accounts(context, api, http):
    wizard = WalletLinkingWorkflow(context, api, provider=LocalAccountProvider(keys=[]))
    _verified(http)
    wizard.verify_identity(NATIONAL_ID, MOBILE)

    assert wizard.connect_wallet() is False
    assert "No accounts found" in _feedback(context)["message"]


def test_full_flow_reaches_confirmation(wizard, http, context, provider):
    _verified(http, challenge="IEBC-Verify-abc-123")
    http.add("POST", f"{API}{LINK_WALLET}",
             FakeResponse(data={"success": True, "message": "linked", "verification_hash": "0xhash"}))

    assert wizard.verify_identity(NATIONAL_ID, MOBILE)
    assert wizard.connect_wallet()
    assert wizard.state.wallet_address == provider.addresses[0]
    assert context.events.last("challenge")["message"] == "IEBC-Verify-abc-123"
    assert wizard.sign_and_link()

    assert wizard.step is LinkingStep.CONFIRMATION
    body = http.calls[-1][2]["json"]
    assert body["national_id"] == NATIONAL_ID
    assert body["challenge"] == "IEBC-Verify-abc-123"
    assert verify_wallet_signature(body["wallet_address"], body["challenge"], body["signature"])
    confirmation = context.events.last("confirmation")
    assert confirmation["verification_hash"] == "0xhash"
    assert confirmation["wallet_address"] == provider.addresses[0]
    assert [e["step"] for e in context.events.history if e["kind"] == "step"] == [2, 3, 4]


def test_rejected_signature_can_be_retried(context, api, http):
    answers = iter([True, False, True])
    provider = LocalAccountProvider.create(approve=lambda m, p: next(answers))
    wizard = WalletLinkingWorkflow(context, api, provider=provider)
    _verified(http, challenge="C")
    http.add("POST", f"{API}{LINK_WALLET}", FakeResponse(data={"success": True, "verification_hash": "h"}))
    wizard.verify_identity(NATIONAL_ID, MOBILE)
    wizard.connect_wallet()

    assert wizard.sign_and_link() is False
    assert wizard.step is LinkingStep.MESSAGE_SIGNING
    assert _feedback(context)["message"] == "Signature request rejected. Please approve the signature in MetaMask."
    assert http.urls() == [f"{API}{VERIFY_NATIONAL_ID}"]

    assert wizard.sign_and_link() is True
    assert wizard.state.challenge == "C"
    assert wizard.step is LinkingStep.CONFIRMATION


def test_server_refuses_link(wizard, http, context):
    _verified(http)
    http.add("POST", f"{API}{LINK_WALLET}", FakeResponse(status=400, data={"success": False}))
    wizard.verify_identity(NATIONAL_ID, MOBILE)
    wizard.connect_wallet()

    assert wizard.sign_and_link() is False
    assert wizard.step is LinkingStep.MESSAGE_SIGNING
    assert _feedback(context)["message"] == "Signature verification failed. Please try again."
    assert wizard.state.verification_hash == ""


def test_sign_without_state(wizard, context):
    assert wizard.sign_and_link() is False
    assert _feedback(context)["message"].startswith("Missing wallet address or challenge message")


def test_completed_wizard_cannot_repeat_steps(wizard, http):
    _verified(http)
    http.add("POST", f"{API}{LINK_WALLET}", FakeResponse(data={"success": True, "verification_hash": "h"}))
    wizard.verify_identity(NATIONAL_ID, MOBILE)
    wizard.connect_wallet()
    wizard.sign_and_link()
    calls = len(http.calls)

    assert wizard.verify_identity(NATIONAL_ID, MOBILE) is False
    assert wizard.connect_wallet() is False
    assert wizard.sign_and_link() is False
    assert wizard.step is LinkingStep.CONFIRMATION
    assert len(http.calls) == calls


def test_offline_mode_runs_without_network(context, api, http, provider):
    context.local.set_item(OFFLINE_MODE, "true")
    wizard = WalletLinkingWorkflow(context, api, provider=provider)
    wizard.start()
    assert context.events.last("banner")

    assert wizard.verify_identity(NATIONAL_ID, MOBILE)
    assert wizard.state.challenge.startswith("IEBC-Verify-")
    assert wizard.connect_wallet()
    assert wizard.sign_and_link()
    assert wizard.state.verification_hash.startswith("mock-hash-")
    assert wizard.check_linkage() is True
    assert wizard.check_linkage("0x0000000000000000000000000000000000000001") is False
    assert http.calls == []


def test_check_linkage_online(wizard, http):
    http.add("POST", f"{API}{CHECK_WALLET_LINKAGE}", FakeResponse(data={"success": True, "isLinked": True}))
    assert wizard.check_linkage("0xabc") is True
    assert http.calls[0][2]["json"] == {"wallet_address": "0xabc"}


def test_check_linkage_unreachable(wizard):
    assert wizard.check_linkage("0xabc") is False
