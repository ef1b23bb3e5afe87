"""
MultisenderEngine ties the components into one distribution pipeline:

    Idle -> WalletRequired -> Validating -> (NFT: OwnershipCheck)
         -> Approving? -> Submitting -> Confirming -> Succeeded | Failed

Progress is a single PipelineState value. Every failure leaves the recipient
text and mode untouched so the user can correct and resubmit.
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .approval import ApprovalOrchestrator
from .asset_mode import AssetMetadata, AssetMode, AssetModeController, GenerationCounter
from .balance import BalanceService, BalanceSnapshot
from .errors import (
    ErrorClassifier,
    InputError,
    InsufficientBalanceError,
    MultisenderError,
    WalletError,
)
from .executor import DisperseTransactionExecutor, TransactionRecord, explorer_link
from .recipients import POLICIES, POLICY_REJECT, DistributionRequest, build_request

logger = logging.getLogger(__name__)


class PipelineStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    WALLET_REQUIRED = "wallet_required"
    VALIDATING = "validating"
    OWNERSHIP_CHECK = "ownership_check"
    APPROVING = "approving"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


BUSY_STATUSES = (
    PipelineStatus.OWNERSHIP_CHECK,
    PipelineStatus.APPROVING,
    PipelineStatus.SUBMITTING,
    PipelineStatus.CONFIRMING,
)


@dataclass(frozen=True)
class PipelineState:
    status: PipelineStatus
    error: Optional[MultisenderError] = None
    transaction: Optional[TransactionRecord] = None

    @property
    def busy(self) -> bool:
        return self.status in BUSY_STATUSES


class MultisenderEngine:
    def __init__(self, gateway, chain, chain_config, invalid_line_policy: str = POLICY_REJECT,
                 classifier: Optional[ErrorClassifier] = None, receipt_timeout: int = 300,
                 logo_resolver: Optional[Callable[[str], str]] = None):
        if invalid_line_policy not in POLICIES:
            raise ValueError(f"invalid_line_policy must be one of {POLICIES}")
        if not chain_config.DISPERSE_ADDRESS:
            raise ValueError(f"No disperse contract configured for {chain_config.CHAIN_NAME}")

        self.gateway = gateway
        self.chain = chain
        self.chain_config = chain_config
        self.invalid_line_policy = invalid_line_policy
        self.classifier = classifier or ErrorClassifier(chain_config.NATIVE_SYMBOL)

        self.generation = GenerationCounter()
        self.assets = AssetModeController(chain_config, self.generation, self.classifier, logo_resolver)
        self.balances = BalanceService(chain, self.classifier)
        self.approvals = ApprovalOrchestrator(chain, chain_config.DISPERSE_ADDRESS, chain_config.EXPLORER_URL,
                                              self.classifier, receipt_timeout)
        self.executor = DisperseTransactionExecutor(chain, self.balances, chain_config.DISPERSE_ADDRESS,
                                                    chain_config.EXPLORER_URL, self.classifier, receipt_timeout)

        self.session = None
        self.recipient_text = ""
        self.balance = BalanceSnapshot()
        self.transactions: List[TransactionRecord] = []
        self.state = PipelineState(PipelineStatus.WALLET_REQUIRED)

        self._lock = threading.RLock()
        self._busy = threading.Lock()
        self._subscription = None
        self._listeners: List[Callable[[PipelineState], None]] = []

    # ---------- lifetime ----------
    def start(self) -> "MultisenderEngine":
        if self._subscription is None:
            self._subscription = self.gateway.subscribe(self._on_session_event)
        return self

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.close()

    def add_listener(self, callback: Callable[[PipelineState], None]) -> None:
        self._listeners.append(callback)

    def _set_state(self, status: PipelineStatus, error: Optional[MultisenderError] = None,
                   transaction: Optional[TransactionRecord] = None) -> None:
        with self._lock:
            self.state = PipelineState(status, error, transaction)
        for callback in list(self._listeners):
            callback(self.state)

    # ---------- session ----------
    def connect(self):
        self._set_state(PipelineStatus.CONNECTING)
        try:
            session = self.gateway.connect()
            self.gateway.ensure_network(self.chain_config.CHAIN_ID)
            if session.chain_id != self.chain_config.CHAIN_ID:
                # switched while connecting
                session = self.gateway.connect()
        except Exception as exc:
            error = self.classifier.classify(exc, stage="network")
            self._set_state(PipelineStatus.WALLET_REQUIRED, error)
            raise error from exc
        with self._lock:
            self.session = session
            self.balance = BalanceSnapshot()
            self.generation.bump("connect")
        self._set_state(PipelineStatus.IDLE)
        self.refresh_balance()
        return session

    def _on_session_event(self, event) -> None:
        with self._lock:
            logger.warning("Wallet %s changed; discarding session state", event.kind)
            self.session = None
            self.balance = BalanceSnapshot()
            self.generation.bump(f"session {event.kind}")
        if not self.state.busy:
            self._set_state(PipelineStatus.WALLET_REQUIRED)

    # ---------- inputs ----------
    @property
    def mode(self) -> AssetMode:
        return self.assets.mode

    @property
    def metadata(self) -> AssetMetadata:
        return self.assets.metadata

    def select_mode(self, mode: AssetMode) -> AssetMetadata:
        with self._lock:
            metadata = self.assets.select(mode)
            self.recipient_text = ""
            self.balance = BalanceSnapshot()
        self._set_state(PipelineStatus.IDLE if self.session else PipelineStatus.WALLET_REQUIRED)
        if self.assets.ready:
            self.refresh_balance()
        return metadata

    def load_token(self, address: str) -> Optional[AssetMetadata]:
        with self._lock:
            self.balance = BalanceSnapshot()
        metadata = self.assets.load(address, self.chain)
        if metadata is not None:
            self.refresh_balance()
        return metadata

    def set_recipients(self, text: str) -> DistributionRequest:
        with self._lock:
            self.recipient_text = text or ""
            request = self.request
        if not self.state.busy and self.session is not None:
            self._set_state(PipelineStatus.VALIDATING)
        return request

    @property
    def request(self) -> DistributionRequest:
        meta = self.assets.metadata
        return build_request(self.recipient_text, self.assets.mode, meta.address, meta.decimals,
                             self.balance.amount)

    def refresh_balance(self) -> BalanceSnapshot:
        """Reads the balance; results of a superseded read are dropped."""
        session = self.session
        if session is None or not self.assets.ready:
            return self.balance
        tag = self.generation.current()
        meta = self.assets.metadata
        try:
            snapshot = self.balances.get_balance(self.assets.mode, session.address, meta.address, meta.decimals)
        except MultisenderError as exc:
            logger.warning("Balance refresh failed: %s", exc.message)
            with self._lock:
                if self.generation.is_current(tag):
                    self.balance = BalanceSnapshot(self.balance.amount, self.balance.units, stale=True)
            return self.balance
        with self._lock:
            if not self.generation.is_current(tag):
                logger.debug("Discarding superseded balance read")
                return self.balance
            self.balance = snapshot
        return snapshot

    def submit_blockers(self) -> List[str]:
        blockers: List[str] = []
        request = self.request
        if self.state.busy or self._busy.locked():
            blockers.append("A distribution is already in progress")
        if self.session is None:
            blockers.append("Wallet not connected")
        if self.assets.requires_address and not self.assets.ready:
            blockers.append("Load a valid token contract first")
        if request.errors and self.invalid_line_policy == POLICY_REJECT:
            blockers.append(f"{len(request.errors)} invalid recipient line(s)")
        if not request.entries:
            blockers.append("Please enter at least one recipient")
        remaining = request.aggregate.remaining
        if remaining is not None and remaining < 0:
            blockers.append("Total exceeds balance")
        return blockers

    def can_submit(self) -> bool:
        return not self.submit_blockers()

    def explorer_link(self, tx_hash: str) -> str:
        return explorer_link(self.chain_config.EXPLORER_URL, tx_hash)

    # ---------- pipeline ----------
    def submit(self, on_submitted: Optional[Callable[[TransactionRecord], None]] = None) -> TransactionRecord:
        if not self._busy.acquire(blocking=False):
            raise WalletError("A distribution is already in progress", kind="busy")
        try:
            return self._run(on_submitted)
        except MultisenderError as exc:
            self._set_state(PipelineStatus.FAILED, exc, self.state.transaction)
            raise
        except Exception as exc:
            error = self.classifier.classify(exc, stage="submit")
            self._set_state(PipelineStatus.FAILED, error, self.state.transaction)
            raise error from exc
        finally:
            self._busy.release()

    def _track(self, on_submitted):
        def _submitted(record: TransactionRecord) -> None:
            self.transactions.append(record)
            self._set_state(self.state.status, transaction=record)
            if on_submitted is not None:
                on_submitted(record)
        return _submitted

    def _ensure_current(self, tag: int) -> None:
        if not self.generation.is_current(tag):
            raise WalletError("Wallet session or asset selection changed; submission aborted",
                              kind="session_changed")

    def _run(self, on_submitted) -> TransactionRecord:
        session = self.session
        if session is None:
            self._set_state(PipelineStatus.WALLET_REQUIRED)
            raise WalletError("Please connect your wallet first", kind="not_connected")
        try:
            self.gateway.ensure_network(self.chain_config.CHAIN_ID)
        except Exception as exc:
            raise self.classifier.classify(exc, stage="network") from exc
        if self.session is not session:
            raise WalletError("Network switched; reconnect the wallet before sending", kind="session_changed")
        tag = self.generation.current()

        self._set_state(PipelineStatus.VALIDATING)
        request = self.request
        meta = self.assets.metadata
        if self.assets.requires_address and not self.assets.ready:
            raise InputError("Load a valid token contract first")
        if request.errors and self.invalid_line_policy == POLICY_REJECT:
            raise InputError.from_lines(request.errors)
        if not request.entries:
            raise InputError("Please enter at least one recipient")
        remaining = request.aggregate.remaining
        if remaining is not None and remaining < 0:
            raise InsufficientBalanceError(f"Insufficient {meta.symbol} balance",
                                           required=request.total_units, available=self.balance.units)

        signer = self.gateway.get_signer()
        track = self._track(on_submitted)

        if request.mode == AssetMode.NFT:
            self._set_state(PipelineStatus.OWNERSHIP_CHECK)
            self.approvals.check_ownership(request.asset_address, session.address, request.values)
            self._ensure_current(tag)

        if request.mode != AssetMode.NATIVE:
            self._set_state(PipelineStatus.APPROVING)
            self.approvals.ensure(request, signer, session.address, on_submitted=track)
            self._ensure_current(tag)

        self._set_state(PipelineStatus.SUBMITTING)
        self.executor.revalidate_balance(request, session.address, meta.symbol)
        self._ensure_current(tag)
        record = self.executor.submit(request, signer, session.address, on_submitted=track)

        self._set_state(PipelineStatus.CONFIRMING, transaction=record)
        self.executor.await_confirmation(record)
        self._set_state(PipelineStatus.SUCCEEDED, transaction=record)
        logger.info("Distributed to %d recipient(s): %s", request.count, record.link)
        self.refresh_balance()
        return record
