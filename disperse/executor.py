import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .asset_mode import AssetMode
from .balance import BalanceService
from .errors import ErrorClassifier, InsufficientBalanceError, TransactionError
from .recipients import DistributionRequest, format_amount

logger = logging.getLogger(__name__)


class TxStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


def explorer_link(explorer_url: str, tx_hash: str) -> str:
    return f"{explorer_url.rstrip('/')}/tx/{tx_hash}"


@dataclass
class TransactionRecord:
    hash: str
    kind: str = "disperse"  # "approval" or "disperse"
    explorer_url: str = ""
    status: TxStatus = TxStatus.PENDING
    block_number: Optional[int] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def link(self) -> str:
        return explorer_link(self.explorer_url, self.hash) if self.explorer_url else self.hash

    @property
    def terminal(self) -> bool:
        return self.status != TxStatus.PENDING

    def settle(self, status: TxStatus, block_number: Optional[int] = None) -> None:
        with self._lock:
            if self.terminal:
                raise RuntimeError(f"Transaction {self.hash} already {self.status.value}")
            self.status = status
            self.block_number = block_number


def await_receipt(chain, record: TransactionRecord, classifier: ErrorClassifier, timeout: int = 300) -> TransactionRecord:
    """Waits for one confirmation. Never resubmits."""
    try:
        receipt = chain.wait_for_receipt(record.hash, timeout=timeout)
    except Exception as exc:
        # still pending on chain; the record stays inspectable via its link
        raise classifier.classify(exc, stage="confirm", tx_hash=record.hash, link=record.link) from exc
    status = receipt.get("status", 0) if receipt else 0
    block = receipt.get("blockNumber") if receipt else None
    if status == 1:
        record.settle(TxStatus.CONFIRMED, block)
        logger.info("%s %s confirmed in block %s", record.kind, record.hash, block)
    else:
        record.settle(TxStatus.FAILED, block)
        logger.error("%s %s failed in block %s", record.kind, record.hash, block)
    return record


class DisperseTransactionExecutor:
    """Builds, submits and tracks the disperse call for the active mode."""

    def __init__(self, chain, balances: BalanceService, disperse_address: str, explorer_url: str,
                 classifier: Optional[ErrorClassifier] = None, receipt_timeout: int = 300):
        self.chain = chain
        self.balances = balances
        self.disperse_address = disperse_address
        self.explorer_url = explorer_url
        self.classifier = classifier or ErrorClassifier()
        self.receipt_timeout = receipt_timeout

    def call_for(self, request: DistributionRequest):
        """Returns (function name, args, value) of the disperse call."""
        if request.mode == AssetMode.NATIVE:
            return "disperseEther", [request.recipients, request.values], request.total_units
        if request.mode == AssetMode.FUNGIBLE:
            return "disperseToken", [request.asset_address, request.recipients, request.values], 0
        return "disperseNFT", [request.asset_address, request.recipients, request.values], 0

    def revalidate_balance(self, request: DistributionRequest, owner: str, symbol: str = "") -> None:
        if request.mode == AssetMode.NFT:
            return
        snapshot = self.balances.get_balance(request.mode, owner, request.asset_address, request.decimals)
        if snapshot.units < request.total_units:
            raise InsufficientBalanceError(
                f"Insufficient {symbol or 'token'} balance: need {format_amount(request.total)}, "
                f"have {format_amount(snapshot.amount)}",
                required=request.total_units, available=snapshot.units,
            )

    def submit(self, request: DistributionRequest, signer, owner: str,
               on_submitted: Optional[Callable[[TransactionRecord], None]] = None) -> TransactionRecord:
        fn_name, args, value = self.call_for(request)
        try:
            tx = self.chain.build_disperse_tx(fn_name, args, owner, value=value)
        except Exception as exc:
            raise self.classifier.classify(exc, stage="estimate", call=fn_name) from exc
        try:
            tx_hash = signer.send_transaction(tx, description=f"{fn_name} to {request.count} recipients")
        except Exception as exc:
            raise self.classifier.classify(exc, stage="submit", call=fn_name) from exc

        record = TransactionRecord(tx_hash, kind="disperse", explorer_url=self.explorer_url)
        logger.info("%s submitted: %s", fn_name, record.link)
        if on_submitted is not None:
            on_submitted(record)
        return record

    def await_confirmation(self, record: TransactionRecord) -> TransactionRecord:
        await_receipt(self.chain, record, self.classifier, self.receipt_timeout)
        if record.status == TxStatus.FAILED:
            raise TransactionError("Transaction reverted on chain", kind="reverted_on_chain",
                                   tx_hash=record.hash, link=record.link)
        return record

    def execute(self, request: DistributionRequest, signer, owner: str, symbol: str = "",
                on_submitted: Optional[Callable[[TransactionRecord], None]] = None) -> TransactionRecord:
        self.revalidate_balance(request, owner, symbol)
        record = self.submit(request, signer, owner, on_submitted)
        return self.await_confirmation(record)
