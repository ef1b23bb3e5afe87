import pytest
import requests
from web3 import Web3
from web3.exceptions import ContractCustomError, ContractLogicError, TimeExhausted, Web3RPCError

from disperse import (
    ApprovalError,
    ErrorClassifier,
    InputError,
    InsufficientBalanceError,
    NetworkError,
    NetworkMismatchError,
    OwnershipError,
    TransactionError,
    UserRejectedError,
    WalletError,
    WalletNotConnectedError,
)


@pytest.fixture
def classifier():
    return ErrorClassifier("CORE")


def selector(signature):
    return Web3.to_hex(Web3.keccak(text=signature)[:4])


def test_rejection_variants(classifier):
    class ProviderError(Exception):
        code = 4001

    for exc in (UserRejectedError("no"), ProviderError("denied"), Exception("MetaMask: User rejected the request")):
        err = classifier.classify(exc, stage="submit")
        assert isinstance(err, WalletError)
        assert err.kind == "rejected"
        assert err.message == "Transaction was rejected by user"


def test_rejection_during_approval_is_approval_error(classifier):
    err = classifier.classify(UserRejectedError("no"), stage="approval")
    assert isinstance(err, ApprovalError)
    assert err.category == "approval"


def test_already_classified_errors_pass_through(classifier):
    original = OwnershipError(2, "0xabc")
    assert classifier.classify(original, stage="read") is original
    timeout = TransactionError("slow", kind="confirmation_timeout")
    assert isinstance(classifier.classify(timeout, stage="approval"), ApprovalError)


def test_wallet_state_errors(classifier):
    assert classifier.classify(WalletNotConnectedError("x")).kind == "not_connected"
    err = classifier.classify(NetworkMismatchError(1116, 1))
    assert err.kind == "wrong_network"
    assert err.context["expected"] == 1116


def test_custom_error_selectors(classifier):
    err = classifier.classify(ContractCustomError("0x", data=selector("InsufficientEther()")), stage="estimate")
    assert isinstance(err, TransactionError)
    assert err.kind == "revert"
    assert err.message == "Insufficient CORE balance"

    err = classifier.classify(ContractCustomError("0x", data=selector("MismatchArrayLength()")), stage="estimate")
    assert err.message == "Recipients and amounts arrays length mismatch"


def test_insufficient_funds(classifier):
    err = classifier.classify(Web3RPCError("insufficient funds for gas * price + value"), stage="estimate")
    assert isinstance(err, InsufficientBalanceError)
    assert err.message == "Insufficient funds for gas and value"


def test_logic_error_during_estimation(classifier):
    exc = ContractLogicError("execution reverted: ERC20: insufficient allowance")
    err = classifier.classify(exc, stage="estimate")
    assert err.kind == "gas_estimation"
    assert err.message == "Transaction would likely fail (check token approvals)"
    assert classifier.classify(exc, stage="submit").kind == "revert"


def test_confirmation_timeout(classifier):
    err = classifier.classify(TimeExhausted("not mined"), stage="confirm", tx_hash="0x01")
    assert err.kind == "confirmation_timeout"
    assert err.context["tx_hash"] == "0x01"


def test_network_errors(classifier):
    for exc in (requests.exceptions.ConnectionError("boom"), ConnectionError("reset"),
                requests.exceptions.HTTPError("502 Server Error: Bad Gateway for url: https://rpc.coredao.org"),
                requests.exceptions.HTTPError("429 Client Error: Too Many Requests"),
                Exception("Max retries exceeded with url")):
        assert isinstance(classifier.classify(exc, stage="read"), NetworkError)


def test_unknown_keeps_raw_message(classifier):
    err = classifier.classify(RuntimeError("weird thing"))
    assert err.kind == "unknown"
    assert err.message == "Transaction failed"
    assert err.context["raw"] == "weird thing"


def test_input_error_aggregation():
    one = InputError("Invalid address in line 2: 0x1", line_number=2)
    assert InputError.from_lines([one]) is one
    two = InputError("Invalid value in line 5: x", line_number=5)
    merged = InputError.from_lines([one, two])
    assert merged.line_errors == [one, two]
    assert "lines 2, 5" in merged.message
    assert merged.category == "input"
