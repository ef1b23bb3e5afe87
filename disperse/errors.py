"""
Error taxonomy for the distribution pipeline and the classifier that maps
low-level failures (wallet, web3, RPC transport) onto it.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests
from web3 import Web3
from web3.exceptions import (
    ContractCustomError,
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    Web3RPCError,
)

from .session import NetworkMismatchError, UserRejectedError, WalletNotConnectedError

logger = logging.getLogger(__name__)

DISPERSE_ERROR_MESSAGES = {
    "InsufficientEther()": "Insufficient {symbol} balance",
    "MismatchArrayLength()": "Recipients and amounts arrays length mismatch",
}

REJECTION_CODES = (4001, "ACTION_REJECTED")
REJECTION_HINTS = ("user rejected", "user denied", "rejected by user", "action_rejected")
INSUFFICIENT_FUNDS_HINTS = ("insufficient funds",)
NETWORK_HINTS = ("connection refused", "max retries exceeded", "failed to establish", "name or service not known")


class MultisenderError(Exception):
    category = "transaction"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def __str__(self) -> str:
        return self.message


class InputError(MultisenderError):
    """A malformed recipient line or an unusable request. Never auto-corrected."""
    category = "input"

    def __init__(self, message: str, line_number: Optional[int] = None, line: Optional[str] = None,
                 line_errors: Optional[Sequence["InputError"]] = None, **context: Any):
        super().__init__(message, line_number=line_number, line=line, **context)
        self.line_number = line_number
        self.line = line
        self.line_errors: List["InputError"] = list(line_errors or [])

    @classmethod
    def from_lines(cls, errors: Sequence["InputError"]) -> "InputError":
        if len(errors) == 1:
            return errors[0]
        numbers = ", ".join(str(e.line_number) for e in errors)
        return cls(f"{len(errors)} invalid recipient lines (lines {numbers})", line_errors=errors)


class WalletError(MultisenderError):
    category = "wallet"

    def __init__(self, message: str, kind: str = "not_connected", **context: Any):
        super().__init__(message, kind=kind, **context)
        self.kind = kind


class InsufficientBalanceError(MultisenderError):
    category = "insufficient_balance"


class OwnershipError(MultisenderError):
    category = "ownership"

    def __init__(self, token_id: int, owner: Optional[str] = None, **context: Any):
        if owner:
            message = f"You do not own token id {token_id} (owner: {owner})"
        else:
            message = f"You do not own token id {token_id} (owner could not be read)"
        super().__init__(message, token_id=token_id, owner=owner, **context)
        self.token_id = token_id
        self.owner = owner


class ApprovalError(MultisenderError):
    category = "approval"


class TransactionError(MultisenderError):
    category = "transaction"

    def __init__(self, message: str, kind: str = "unknown", **context: Any):
        super().__init__(message, kind=kind, **context)
        self.kind = kind


class NetworkError(MultisenderError):
    category = "network"


def _raw_message(exc: BaseException) -> str:
    msg = getattr(exc, "message", None)
    if isinstance(msg, str) and msg:
        return msg
    if exc.args and isinstance(exc.args[0], dict):
        return str(exc.args[0].get("message", exc.args[0]))
    return str(exc) or exc.__class__.__name__


def _error_code(exc: BaseException):
    code = getattr(exc, "code", None)
    if code is not None:
        return code
    rpc = getattr(exc, "rpc_response", None)
    if isinstance(rpc, dict):
        return (rpc.get("error") or {}).get("code")
    if exc.args and isinstance(exc.args[0], dict):
        return exc.args[0].get("code")
    return None


class ErrorClassifier:
    """
    Maps raw failures into the closed MultisenderError taxonomy.

    ``stage`` refines the result: ``read``, ``network``, ``approval``,
    ``estimate``, ``submit`` or ``confirm``. Anything unrecognised becomes a
    TransactionError(kind="unknown") carrying the raw text in context["raw"].
    """

    def __init__(self, native_symbol: str = "CORE"):
        self.native_symbol = native_symbol
        self.custom_errors = {
            Web3.to_hex(Web3.keccak(text=signature)[:4]): message.format(symbol=native_symbol)
            for signature, message in DISPERSE_ERROR_MESSAGES.items()
        }

    def classify(self, exc: BaseException, stage: str = "submit", **context: Any) -> MultisenderError:
        if isinstance(exc, MultisenderError):
            if stage == "approval" and isinstance(exc, (TransactionError, WalletError)):
                return ApprovalError(f"Approval failed: {exc.message}", **exc.context)
            return exc
        result = self._classify(exc, stage, raw=_raw_message(exc), **context)
        if stage == "approval" and isinstance(result, (TransactionError, WalletError)):
            result = ApprovalError(f"Approval failed: {result.message}", **result.context)
        logger.warning("%s failure during %s: %s", result.category, stage, result.message)
        return result

    def _classify(self, exc: BaseException, stage: str, raw: str, **context: Any) -> MultisenderError:
        lowered = raw.lower()

        if isinstance(exc, UserRejectedError) or _error_code(exc) in REJECTION_CODES \
                or any(h in lowered for h in REJECTION_HINTS):
            return WalletError("Transaction was rejected by user", kind="rejected", raw=raw, **context)
        if isinstance(exc, WalletNotConnectedError):
            return WalletError("Please connect your wallet first", kind="not_connected", raw=raw, **context)
        if isinstance(exc, NetworkMismatchError):
            return WalletError(f"Please switch to chain {exc.expected}", kind="wrong_network",
                               expected=exc.expected, actual=exc.actual, **context)

        if isinstance(exc, ContractCustomError):
            data = str(getattr(exc, "data", "") or raw).lower()
            for selector, message in self.custom_errors.items():
                if data.startswith(selector):
                    return TransactionError(message, kind="revert", raw=raw, **context)

        if any(h in lowered for h in INSUFFICIENT_FUNDS_HINTS):
            return InsufficientBalanceError("Insufficient funds for gas and value", raw=raw, **context)

        if isinstance(exc, ContractLogicError):
            if stage == "estimate":
                return TransactionError("Transaction would likely fail (check token approvals)",
                                        kind="gas_estimation", raw=raw, **context)
            return TransactionError(f"Transaction reverted: {raw}", kind="revert", raw=raw, **context)

        if isinstance(exc, TimeExhausted) or (stage == "confirm" and isinstance(exc, TimeoutError)):
            return TransactionError("Transaction was not confirmed in time; check the explorer link",
                                    kind="confirmation_timeout", raw=raw, **context)

        if isinstance(exc, (ProviderConnectionError, requests.exceptions.RequestException,
                            ConnectionError, TimeoutError)) \
                or any(h in lowered for h in NETWORK_HINTS):
            return NetworkError("RPC endpoint unreachable; data shown may be stale", raw=raw, **context)

        if isinstance(exc, Web3RPCError):
            if stage == "estimate":
                return TransactionError("Transaction would likely fail (check token approvals)",
                                        kind="gas_estimation", raw=raw, **context)
            return TransactionError(raw, kind="rpc", raw=raw, **context)

        return TransactionError("Transaction failed", kind="unknown", raw=raw, **context)
