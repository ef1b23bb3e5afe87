"""
What the engine expects from a wallet gateway.

A gateway offers ``connect() -> WalletSession``, ``ensure_network(chain_id)``,
``get_signer()`` and ``subscribe(callback) -> subscription``; its signer offers
``send_transaction(tx, description) -> tx_hash``. Gateways raise the
exceptions below so the classifier can map them without knowing the gateway.
"""
from dataclasses import dataclass
from typing import Optional


class UserRejectedError(Exception):
    """The holder declined to sign."""


class WalletNotConnectedError(Exception):
    pass


class NetworkMismatchError(Exception):
    def __init__(self, expected: int, actual: Optional[int]):
        super().__init__(f"Connected to chain {actual}, expected chain {expected}")
        self.expected = expected
        self.actual = actual


@dataclass(frozen=True)
class WalletSession:
    address: str
    chain_id: int


@dataclass(frozen=True)
class SessionEvent:
    kind: str  # "accounts", "chain" or "disconnect"
    address: Optional[str] = None
    chain_id: Optional[int] = None
