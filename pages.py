import time
import logging
from dataclasses import dataclass
from datetime import datetime
from concurrent.futures import ThreadPoolExecutor

from api_client import ApiClient
from config import INDEX_PAGE
from context import ClientContext
from contract import Candidate, VotingContract
from contract_guard import ContractGuard
from errors import ContractInitializationFailed, NetworkFailure, ValidationError, VotingClientError
from offline import MOCK_CANDIDATES, mock_voting_dates
from session_guard import GuardOutcome, SessionGuard
from storage import WALLET_ADDRESS, WALLET_CONNECTION_TIME, SessionState
from wallet_provider import ProviderError

logger = logging.getLogger("evote.pages")


@dataclass
class ActionResult:
    success: bool
    message: str
    # False when the chain accepted the change but the API mirror did not
    synced: bool = True


def voting_status(start: float, end: float, now: float | None = None) -> str:
    now = time.time() if now is None else now
    if now < start:
        return "not_started"
    if now > end:
        return "ended"
    return "active"


STATUS_MESSAGES = {
    "not_started": "Voting has not started yet. Please check back later.",
    "active": "Voting is currently active. Select a candidate and cast your vote!",
    "ended": "Voting has ended. Results are displayed below.",
}


def format_address(address: str) -> str:
    if not address:
        return ""
    if address.startswith("0x"):
        return f"{address[:6]}...{address[-4:]}"
    return f"0x{address[:4]}...{address[-4:]}"


def wallet_display(context: ClientContext):
    address = context.local.get_item(WALLET_ADDRESS)
    if address:
        return context.events.emit("wallet_display", text=format_address(address), title=address)
    voter_id = SessionState.load(context.local).voter_id
    if voter_id:
        text = f"{voter_id[:6]}...{voter_id[-4:]}" if len(voter_id) > 10 else voter_id
        return context.events.emit("wallet_display", text=text, title=voter_id)
    return None


def to_timestamp(value) -> int:
    """Epoch seconds from a datetime, a number, or a ``datetime-local`` style string."""
    if isinstance(value, datetime):
        return int(value.timestamp())
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    try:
        return int(datetime.fromisoformat(str(value).strip()).timestamp())
    except (TypeError, ValueError):
        raise ValidationError("Please select valid dates")


class _Page:
    def __init__(self, context: ClientContext, api: ApiClient, guard: ContractGuard):
        self.context = context
        self.api = api
        self.guard = guard

    @property
    def events(self):
        return self.context.events

    def fetch_voting_dates(self) -> dict:
        if self.api.use_mock_data:
            return mock_voting_dates()
        return self.api.request("/voting/dates")

    def fetch_candidates(self, error_message="Failed to load candidates") -> list[Candidate]:
        if self.api.use_mock_data and self.context.contract is None:
            return [Candidate.from_row(c) for c in MOCK_CANDIDATES]
        return self.guard.call(lambda c: c.get_all_candidates(), [], error_message)

    def _mirror(self, path: str, payload: dict, what: str) -> bool:
        try:
            self.api.request(path, "POST", payload)
            return True
        except NetworkFailure as e:
            logger.warning("API %s failed, but blockchain transaction succeeded: %s", what, e)
            return False


class VoterPage(_Page):
    @property
    def voter_address(self):
        return self.context.signer

    def has_voted(self) -> bool:
        return self.guard.call(lambda c: c.has_voted(self.voter_address), False, "Failed to check vote status")

    def load_voting_dates(self) -> str:
        self.guard.ensure()
        data = self.fetch_voting_dates()
        start, end = data["start_date"], data["end_date"]
        status = voting_status(start, end)
        self.events.emit("dates", target="datesDisplay", start=start, end=end)
        self.events.emit("status", status=status, message=STATUS_MESSAGES[status], vote_enabled=status == "active")
        return status

    def load_candidates(self) -> list[Candidate]:
        self.guard.ensure()
        candidates = self.fetch_candidates()
        voted = self.has_voted()
        self.events.emit("candidates", target="candidateList",
                         candidates=[c.to_dict() for c in candidates], selectable=not voted)
        if voted:
            self.events.emit("vote_button", enabled=False, label="You have already voted")
            self.events.feedback("You have already cast your vote in this election")
        return candidates

    def check_vote_status(self) -> bool:
        self.guard.ensure()
        voted = self.has_voted()
        if voted:
            self.events.emit("vote_button", enabled=False, label="You have already voted")
            self.events.feedback("You have already cast your vote")
        return voted

    def initialize(self) -> dict:
        try:
            self.guard.ensure()
        except VotingClientError as e:
            self.events.feedback(f"Failed to initialize voting page: {e.message}", error=True)
            return {}
        self.events.feedback("Loading voting information...")
        loads = {
            "dates": (self.load_voting_dates, "Failed to load voting dates"),
            "candidates": (self.load_candidates, "Failed to load candidates"),
            "vote_status": (self.check_vote_status, "Failed to check vote status"),
        }
        results = {}
        with ThreadPoolExecutor(max_workers=len(loads)) as pool:
            futures = {name: pool.submit(fn) for name, (fn, _) in loads.items()}
            for name, future in futures.items():
                try:
                    results[name] = future.result()
                except (VotingClientError, KeyError, TypeError) as e:
                    logger.error("Error loading %s: %s", name, e)
                    results[name] = e
                    self.events.feedback(loads[name][1], error=True, target=name)
        return results

    def cast_vote(self, candidate_id) -> ActionResult:
        try:
            self.guard.ensure()
            try:
                candidate_id = int(candidate_id)
            except (TypeError, ValueError):
                raise ValidationError("Please select a candidate")
            if self.has_voted():
                self.events.emit("vote_button", enabled=False, label="Already Voted")
                self.events.feedback("You have already voted")
                return ActionResult(False, "You have already voted")
            self.guard.call(lambda c: c.vote(candidate_id), error_message="Vote transaction failed")
        except ValidationError as e:
            self.events.feedback(e.message, error=True)
            return ActionResult(False, e.message)
        except VotingClientError as e:
            self.events.feedback(f"Vote failed: {e.message}", error=True)
            return ActionResult(False, e.message)
        synced = self._mirror("/vote", {"candidate_id": candidate_id}, "vote recording")
        message = "Your vote has been successfully recorded!"
        self.events.feedback(message)
        if not synced:
            self.events.emit("warning", message="Vote is on chain but the election server did not record it.")
        self.events.emit("vote_button", enabled=False, label="Vote Cast Successfully")
        return ActionResult(True, message, synced=synced)


class AdminPage(_Page):
    def allowed(self) -> bool:
        if SessionState.load(self.context.local).role != "admin":
            self.context.navigator.navigate(INDEX_PAGE)
            return False
        return True

    def initialize(self) -> bool:
        if not self.allowed():
            return False
        self.load_candidates()
        return True

    def load_candidates(self) -> list[Candidate]:
        try:
            candidates = self.fetch_candidates()
        except VotingClientError as e:
            self.events.feedback(f"Failed to load candidates: {e.message}", error=True, target="candidateFeedback")
            return []
        self.events.emit("candidates", target="candidateList", candidates=[c.to_dict() for c in candidates])
        return candidates

    def load_voting_dates(self) -> dict | None:
        try:
            data = self.fetch_voting_dates()
        except NetworkFailure as e:
            self.events.emit("dates", target="currentDatesDisplay", text="Failed to load voting dates")
            self.events.feedback(f"Error loading voting dates: {e.message}", error=True, target="datesFeedback")
            return None
        if not isinstance(data, dict):
            data = {}
        start, end = data.get("start_date"), data.get("end_date")
        if not (start and end):
            self.events.emit("dates", target="currentDatesDisplay", text="No voting dates have been set")
            return None
        self.events.emit("dates", target="currentDatesDisplay", start=start, end=end,
                         status=voting_status(start, end))
        return data

    def add_candidate(self, name: str, party: str) -> ActionResult:
        name, party = (name or "").strip(), (party or "").strip()
        try:
            if not name or not party:
                raise ValidationError("Please fill out all fields")
            self.guard.call(lambda c: c.add_candidate(name, party), error_message="Failed to add candidate")
        except VotingClientError as e:
            self.events.feedback(f"Error adding candidate: {e.message}", error=True, target="candidateFeedback")
            return ActionResult(False, e.message)
        synced = self._mirror("/candidates", {"name": name, "party": party}, "candidate submission")
        self.events.feedback("Candidate added successfully!", target="candidateFeedback")
        self.load_candidates()
        return ActionResult(True, "Candidate added successfully!", synced=synced)

    def _write_dates(self, start, end, write, path: str, labels: tuple) -> ActionResult:
        failed, error_prefix, done = labels
        try:
            start_ts, end_ts = to_timestamp(start), to_timestamp(end)
            if end_ts <= start_ts:
                raise ValidationError("End date must be after start date")
            self.guard.call(lambda c: write(c, start_ts, end_ts), error_message=failed)
        except VotingClientError as e:
            self.events.feedback(f"{error_prefix}: {e.message}", error=True, target="datesFeedback")
            return ActionResult(False, e.message)
        synced = self._mirror(path, {"start_date": start_ts, "end_date": end_ts}, path)
        self.events.feedback(done, target="datesFeedback")
        self.load_voting_dates()
        return ActionResult(True, done, synced=synced)

    def set_dates(self, start, end) -> ActionResult:
        return self._write_dates(
            start, end, lambda c, s, e: c.set_voting_dates(s, e), "/voting/set-dates",
            ("Failed to set voting dates", "Error setting dates", "Voting dates set successfully!"))

    def update_dates(self, start, end) -> ActionResult:
        return self._write_dates(
            start, end, lambda c, s, e: c.update_voting_dates(s, e), "/voting/update-dates",
            ("Failed to update voting dates", "Error updating dates", "Voting dates updated successfully!"))

    def load_results(self) -> list[dict]:
        try:
            candidates = self.fetch_candidates("Failed to load election results")
        except VotingClientError as e:
            self.events.feedback(e.message, error=True, target="resultsFeedback")
            return []
        total = sum(c.vote_count for c in candidates)
        results_list = []
        for c in sorted(candidates, key=lambda c: c.vote_count, reverse=True):
            pct = round((c.vote_count / total * 100.0), 2) if total else 0.0
            results_list.append({"name": c.name, "party": c.party, "count": c.vote_count, "percent": pct})
        self.events.emit("results", results=results_list, total_votes=total)
        return results_list


def connect_wallet(context: ClientContext) -> str | None:
    provider = context.provider
    if provider is None:
        context.events.feedback("MetaMask not installed. Please install MetaMask to use this application.", error=True)
        return None
    try:
        accounts = provider.request("eth_requestAccounts")
    except ProviderError as e:
        logger.error("MetaMask connection error: %s", e)
        context.events.feedback(f"MetaMask connection failed: {e.message}", error=True)
        return None
    if not accounts:
        context.events.feedback("MetaMask connection failed: No accounts found in MetaMask. Please unlock your wallet.",
                                error=True)
        return None
    address = accounts[0]
    logger.info("Connected to wallet with address %s", address)
    context.local.set_item(WALLET_ADDRESS, address)
    context.local.set_item(WALLET_CONNECTION_TIME, int(time.time() * 1000))
    context.signer = address
    wallet_display(context)
    return address


def watch_wallet(context: ClientContext, guard: ContractGuard):
    provider = context.provider

    def on_accounts_changed(accounts):
        logger.info("wallet accounts changed: %s", accounts)
        if not accounts:
            context.events.feedback("MetaMask wallet disconnected. Please reconnect.", error=True)
            return
        address = accounts[0]
        context.local.set_item(WALLET_ADDRESS, address)
        context.local.set_item(WALLET_CONNECTION_TIME, int(time.time() * 1000))
        wallet_display(context)
        try:
            guard.reinitialize(address)
        except ContractInitializationFailed:
            logger.exception("Error updating contract connection")
            return
        context.events.feedback(f"Wallet changed to: {address[:6]}...")

    def on_chain_changed(chain_id):
        logger.info("wallet network changed: %s", chain_id)
        context.navigator.reload()

    provider.on("accountsChanged", on_accounts_changed)
    provider.on("chainChanged", on_chain_changed)

    def unsubscribe():
        provider.remove_listener("accountsChanged", on_accounts_changed)
        provider.remove_listener("chainChanged", on_chain_changed)
    return unsubscribe


def init_app(context: ClientContext, contract_factory=VotingContract.connect, page: str = "voter",
             api: ApiClient | None = None):
    """
    Page bootstrap: session gate, API probe, wallet, contract, then the page.

    Returns the initialized page controller, or None when the load stopped
    early (redirected, recovery panel, no wallet, or contract failure).
    """
    if SessionGuard(context).check() is not GuardOutcome.PROCEED:
        return None
    api = api or ApiClient(context)
    api.probe()
    if not connect_wallet(context):
        return None
    guard = ContractGuard(context, contract_factory)
    try:
        guard.initialize()
    except ContractInitializationFailed:
        return None
    watch_wallet(context, guard)
    controller = (AdminPage if page == "admin" else VoterPage)(context, api, guard)
    controller.initialize()
    return controller
