import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .asset_mode import AssetMode
from .errors import ErrorClassifier, InputError
from .recipients import from_base_units

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceSnapshot:
    amount: Optional[Decimal] = None
    units: Optional[int] = None
    stale: bool = False

    @property
    def known(self) -> bool:
        return self.amount is not None


class BalanceService:
    """Reads the connected account's balance of the active asset."""

    def __init__(self, chain, classifier: Optional[ErrorClassifier] = None):
        self.chain = chain
        self.classifier = classifier or ErrorClassifier()

    def get_balance(self, mode: AssetMode, owner: str, address: Optional[str] = None,
                    decimals: int = 18) -> BalanceSnapshot:
        if mode != AssetMode.NATIVE and not address:
            raise InputError("Load a token contract before reading its balance")
        try:
            if mode == AssetMode.NATIVE:
                units = int(self.chain.get_native_balance(owner))
            elif mode == AssetMode.FUNGIBLE:
                units = int(self.chain.get_token_balance(address, owner))
            else:
                units = int(self.chain.get_nft_balance(address, owner))
                decimals = 0
        except Exception as exc:
            raise self.classifier.classify(exc, stage="read", asset=address or mode.value) from exc
        amount = from_base_units(units, decimals)
        logger.debug("balance %s %s = %s", mode.value, address or "native", amount)
        return BalanceSnapshot(amount=amount, units=units)
