import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .asset_mode import AssetMode
from .errors import ApprovalError, ErrorClassifier, OwnershipError
from .executor import TransactionRecord, TxStatus, await_receipt
from .recipients import DistributionRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalState:
    required: bool
    granted: bool


class ApprovalOrchestrator:
    """
    Makes sure the disperse contract may move the assets before transfer.
    State is always read fresh from the chain, never cached.
    """

    def __init__(self, chain, spender: str, explorer_url: str = "",
                 classifier: Optional[ErrorClassifier] = None, receipt_timeout: int = 300):
        self.chain = chain
        self.spender = spender
        self.explorer_url = explorer_url
        self.classifier = classifier or ErrorClassifier()
        self.receipt_timeout = receipt_timeout

    def check_ownership(self, nft: str, owner: str, token_ids: Iterable[int]) -> None:
        ids: List[int] = list(token_ids)
        try:
            owners = self.chain.get_nft_owners(nft, ids)
        except Exception as exc:
            raise self.classifier.classify(exc, stage="read", token=nft) from exc
        for token_id, current in zip(ids, owners):
            if not current or current.lower() != owner.lower():
                raise OwnershipError(token_id, current)
        logger.info("Ownership verified for %d token id(s)", len(ids))

    def check(self, request: DistributionRequest, owner: str) -> ApprovalState:
        try:
            if request.mode == AssetMode.FUNGIBLE:
                allowance = int(self.chain.get_allowance(request.asset_address, owner, self.spender))
                return ApprovalState(required=True, granted=allowance >= request.total_units)
            if request.mode == AssetMode.NFT:
                approved = bool(self.chain.is_approved_for_all(request.asset_address, owner, self.spender))
                return ApprovalState(required=True, granted=approved)
        except Exception as exc:
            raise self.classifier.classify(exc, stage="read", token=request.asset_address) from exc
        return ApprovalState(required=False, granted=True)

    def ensure(self, request: DistributionRequest, signer, owner: str,
               on_submitted: Optional[Callable[[TransactionRecord], None]] = None) -> ApprovalState:
        if request.mode == AssetMode.NATIVE:
            return ApprovalState(required=False, granted=True)

        state = self.check(request, owner)
        if state.granted:
            logger.info("Approval already granted to %s", self.spender)
            return state

        if request.mode == AssetMode.FUNGIBLE:
            build = lambda: self.chain.build_approve_tx(request.asset_address, self.spender,
                                                        request.total_units, owner)
            description = f"approve {self.spender} for {request.total_units} units"
        else:
            build = lambda: self.chain.build_set_approval_for_all_tx(request.asset_address, self.spender, owner)
            description = f"setApprovalForAll({self.spender})"

        try:
            tx = build()
            tx_hash = signer.send_transaction(tx, description=description)
        except Exception as exc:
            raise self.classifier.classify(exc, stage="approval", token=request.asset_address) from exc

        record = TransactionRecord(tx_hash, kind="approval", explorer_url=self.explorer_url)
        logger.info("Approval submitted: %s", record.link)
        if on_submitted is not None:
            on_submitted(record)
        try:
            await_receipt(self.chain, record, self.classifier, self.receipt_timeout)
        except Exception as exc:
            raise self.classifier.classify(exc, stage="approval", tx_hash=record.hash) from exc
        if record.status != TxStatus.CONFIRMED:
            raise ApprovalError("Approval transaction failed", tx_hash=record.hash, link=record.link)
        return ApprovalState(required=True, granted=True)
