import logging

from eth_account import Account
from eth_account.messages import encode_defunct

logger = logging.getLogger("evote.wallet")

# EIP-1193 provider error codes
USER_REJECTED = 4001
UNAUTHORIZED = 4100
UNSUPPORTED_METHOD = 4200
DISCONNECTED = 4900
CHAIN_DISCONNECTED = 4901


class ProviderError(Exception):
    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def user_rejected(self) -> bool:
        return self.code == USER_REJECTED


def verify_wallet_signature(address: str, message: str, signature: str) -> bool:
    try:
        msg = encode_defunct(text=message)
        recovered = Account.recover_message(msg, signature=signature)
        return recovered.lower() == address.lower()
    except Exception:
        return False


class WalletProvider:
    """Injected-wallet surface: ``request(method, params)`` plus event subscriptions."""

    def __init__(self):
        self._listeners = {}

    def request(self, method: str, params=None):
        raise ProviderError(UNSUPPORTED_METHOD, f"Unsupported method: {method}")

    def on(self, event: str, handler):
        self._listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler):
        handlers = self._listeners.get(event) or []
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, *args):
        for handler in list(self._listeners.get(event) or []):
            try:
                handler(*args)
            except Exception:
                logger.exception("wallet %s handler failed", event)


class LocalAccountProvider(WalletProvider):
    """
    A wallet backed by locally held eth_account keys.

    ``approve(method, params)`` stands in for the user's confirmation dialog;
    returning False behaves like pressing "Reject" (code 4001).
    """

    def __init__(self, keys=None, chain_id: int = 1337, approve=None):
        super().__init__()
        self.accounts = [Account.from_key(k) for k in (keys or [])]
        self.chain_id = chain_id
        self.approve = approve or (lambda method, params: True)
        self.connected = False

    @classmethod
    def create(cls, **kwargs):
        return cls(keys=[Account.create().key], **kwargs)

    @property
    def addresses(self):
        return [a.address for a in self.accounts]

    def _confirm(self, method, params):
        if not self.approve(method, params):
            raise ProviderError(USER_REJECTED, "User rejected the request.")

    def _account_for(self, address: str):
        for acct in self.accounts:
            if acct.address.lower() == (address or "").lower():
                return acct
        raise ProviderError(UNAUTHORIZED, f"Unknown account {address}")

    def request(self, method: str, params=None):
        params = list(params or [])
        if method == "eth_requestAccounts":
            self._confirm(method, params)
            self.connected = True
            return self.addresses
        if method == "eth_accounts":
            return self.addresses if self.connected else []
        if method == "eth_chainId":
            return hex(self.chain_id)
        if method == "personal_sign":
            if not self.connected:
                raise ProviderError(UNAUTHORIZED, "Account access has not been granted.")
            message, address = params[0], params[1]
            acct = self._account_for(address)
            self._confirm(method, params)
            signed = acct.sign_message(encode_defunct(text=message))
            return "0x" + signed.signature.hex().removeprefix("0x")
        return super().request(method, params)

    def switch_account(self, key=None):
        """Make ``key`` (or no account at all) the active one and notify subscribers."""
        self.accounts = [Account.from_key(key)] if key is not None else []
        self.emit("accountsChanged", self.addresses)

    def switch_chain(self, chain_id: int):
        self.chain_id = chain_id
        self.emit("chainChanged", hex(chain_id))
