import logging
import threading
from typing import Callable, List, Optional

from eth_account import Account
from web3 import Web3

import config
from disperse.session import (
    NetworkMismatchError,
    SessionEvent,
    UserRejectedError,
    WalletNotConnectedError,
    WalletSession,
)

logger = logging.getLogger(__name__)


def mask_key(key: str) -> str:
    return f"{key[:6]}...{key[-4:]}" if len(key) > 12 else "****"


class Subscription:
    def __init__(self, gateway: "LocalWalletGateway", callback: Callable[[SessionEvent], None]):
        self._gateway = gateway
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._gateway._remove(self)
            self.active = False


class LocalSigner:
    """
    Signs with a locally held key. ``confirm(description)`` plays the role of
    the wallet's signature prompt; returning False raises UserRejectedError.
    """

    def __init__(self, account, w3: Web3, confirm: Optional[Callable[[str], bool]] = None):
        self._account = account
        self._w3 = w3
        self._confirm = confirm

    @property
    def address(self) -> str:
        return self._account.address

    def send_transaction(self, tx: dict, description: str = "transaction") -> str:
        if self._confirm is not None and not self._confirm(description):
            raise UserRejectedError(f"{description} was rejected by user")
        signed = self._account.sign_transaction(tx)
        tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)


class LocalWalletGateway:
    """
    Wallet session backed by a private key and a Web3Helper.

    Account and chain changes are announced to subscribers; every change
    invalidates the session as a whole.
    """

    def __init__(self, web3h, private_key: Optional[str] = None,
                 confirm: Optional[Callable[[str], bool]] = None,
                 network_prompt: Optional[Callable[[int], bool]] = None):
        self.web3h = web3h
        self.confirm = confirm
        self.network_prompt = network_prompt
        self._account = Account.from_key(private_key) if private_key else None
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()
        self._watcher: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._last_chain_id: Optional[int] = None

    @property
    def address(self) -> Optional[str]:
        return self._account.address if self._account else None

    def connect(self) -> WalletSession:
        if self._account is None:
            raise WalletNotConnectedError("No signing key loaded")
        chain_id = int(self.web3h.w3.eth.chain_id)
        self._last_chain_id = chain_id
        logger.info("Connected %s on chain %s", self._account.address, chain_id)
        return WalletSession(address=self._account.address, chain_id=chain_id)

    def ensure_network(self, expected_chain_id: int) -> None:
        actual = int(self.web3h.w3.eth.chain_id)
        if actual == int(expected_chain_id):
            return
        target = config.chain_by_id(expected_chain_id)
        if target is None or self.network_prompt is None or not self.network_prompt(int(expected_chain_id)):
            raise NetworkMismatchError(int(expected_chain_id), actual)
        self.web3h.switch_chain(target)
        actual = int(self.web3h.w3.eth.chain_id)
        if actual != int(expected_chain_id):
            raise NetworkMismatchError(int(expected_chain_id), actual)
        self._last_chain_id = actual
        self._emit(SessionEvent("chain", address=self.address, chain_id=actual))

    def get_signer(self) -> LocalSigner:
        if self._account is None:
            raise WalletNotConnectedError("No signing key loaded")
        return LocalSigner(self._account, self.web3h.w3, confirm=self.confirm)

    # ---------- change notifications ----------
    def subscribe(self, callback: Callable[[SessionEvent], None]) -> Subscription:
        sub = Subscription(self, callback)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def _emit(self, event: SessionEvent) -> None:
        with self._lock:
            subs = list(self._subscriptions)
        for sub in subs:
            sub.callback(event)

    def switch_account(self, private_key: str) -> None:
        try:
            account = Account.from_key(private_key)
        except Exception as exc:
            raise WalletNotConnectedError(f"Invalid private key {mask_key(private_key)}") from exc
        self._account = account
        self._emit(SessionEvent("accounts", address=account.address, chain_id=self._last_chain_id))

    def disconnect(self) -> None:
        self._account = None
        self._emit(SessionEvent("disconnect"))

    def poll_chain(self) -> Optional[int]:
        """Reads the RPC chain id and announces a change if it moved."""
        chain_id = int(self.web3h.w3.eth.chain_id)
        if self._last_chain_id is not None and chain_id != self._last_chain_id:
            logger.warning("Chain changed from %s to %s", self._last_chain_id, chain_id)
            self._last_chain_id = chain_id
            self._emit(SessionEvent("chain", address=self.address, chain_id=chain_id))
        self._last_chain_id = chain_id
        return chain_id

    def start_watcher(self, interval: float = 5.0) -> None:
        if self._watcher is not None and self._watcher.is_alive():
            return
        self._stop.clear()

        def _run():
            while not self._stop.wait(interval):
                try:
                    self.poll_chain()
                except Exception as exc:
                    logger.warning("Chain watcher poll failed: %s", exc)

        self._watcher = threading.Thread(target=_run, name="chain-watcher", daemon=True)
        self._watcher.start()

    def stop_watcher(self) -> None:
        self._stop.set()
        if self._watcher is not None:
            self._watcher.join(timeout=1)
            self._watcher = None
