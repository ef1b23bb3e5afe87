import pytest
from web3.exceptions import ContractLogicError, TimeExhausted

from disperse import (
    AssetMode,
    BalanceService,
    DisperseTransactionExecutor,
    InsufficientBalanceError,
    TransactionError,
    TransactionRecord,
    TxStatus,
    WalletError,
    build_request,
    explorer_link,
)

from conftest import ALICE, BOB, DISPERSE, FakeSigner, NFT, OWNER, TOKEN, WEI


@pytest.fixture
def executor(chain):
    return DisperseTransactionExecutor(chain, BalanceService(chain), DISPERSE, "https://scan.coredao.org/")


def test_call_shapes(executor):
    native = build_request(f"{ALICE}=1\n{BOB}=2", AssetMode.NATIVE, None, 18)
    assert executor.call_for(native) == ("disperseEther", [[ALICE, BOB], [WEI, 2 * WEI]], 3 * WEI)

    token = build_request(f"{ALICE}=1", AssetMode.FUNGIBLE, TOKEN, 6)
    assert executor.call_for(token) == ("disperseToken", [TOKEN, [ALICE], [10 ** 6]], 0)

    nft = build_request(f"{ALICE}=5\n{ALICE}=6", AssetMode.NFT, NFT, 0)
    assert executor.call_for(nft) == ("disperseNFT", [NFT, [ALICE, ALICE], [5, 6]], 0)


def test_execute_confirms(executor, chain):
    request = build_request(f"{ALICE}=1", AssetMode.NATIVE, None, 18)
    signer = FakeSigner()
    seen = []
    record = executor.execute(request, signer, OWNER, "CORE", on_submitted=seen.append)
    assert record.status == TxStatus.CONFIRMED
    assert record.block_number == 100
    assert seen == [record]
    assert signer.sent[0]["value"] == WEI
    assert record.link == f"https://scan.coredao.org/tx/{record.hash}"


def test_balance_revalidated_before_submit(executor, chain):
    chain.native[OWNER] = WEI // 2
    signer = FakeSigner()
    with pytest.raises(InsufficientBalanceError, match="Insufficient CORE balance"):
        executor.execute(build_request(f"{ALICE}=1", AssetMode.NATIVE, None, 18), signer, OWNER, "CORE")
    assert signer.sent == []


def test_estimation_failure(executor, chain):
    chain.fail["build_disperse_tx"] = ContractLogicError("execution reverted")
    with pytest.raises(TransactionError) as info:
        executor.submit(build_request(f"{ALICE}=1", AssetMode.FUNGIBLE, TOKEN, 18), FakeSigner(), OWNER)
    assert info.value.kind == "gas_estimation"


def test_rejected_signature(executor):
    with pytest.raises(WalletError) as info:
        executor.submit(build_request(f"{ALICE}=1", AssetMode.NATIVE, None, 18), FakeSigner(reject=True), OWNER)
    assert info.value.kind == "rejected"


def test_reverted_on_chain(executor, chain):
    chain.receipts["0x" + format(1, "064x")] = {"status": 0, "blockNumber": 9}
    with pytest.raises(TransactionError) as info:
        executor.execute(build_request(f"{ALICE}=1", AssetMode.NATIVE, None, 18), FakeSigner(), OWNER)
    assert info.value.kind == "reverted_on_chain"
    assert info.value.context["link"].endswith(info.value.context["tx_hash"])


def test_timeout_leaves_record_pending(executor, chain):
    chain.fail["wait_for_receipt"] = TimeExhausted("slow")
    record = executor.submit(build_request(f"{ALICE}=1", AssetMode.NATIVE, None, 18), FakeSigner(), OWNER)
    with pytest.raises(TransactionError) as info:
        executor.await_confirmation(record)
    assert info.value.kind == "confirmation_timeout"
    assert record.status == TxStatus.PENDING
    assert chain.names().count("build_disperse_tx") == 1


def test_record_settles_once():
    record = TransactionRecord("0xabc", explorer_url="https://scan.coredao.org")
    record.settle(TxStatus.CONFIRMED, 1)
    with pytest.raises(RuntimeError):
        record.settle(TxStatus.FAILED, 2)
    assert record.status == TxStatus.CONFIRMED


def test_explorer_link():
    assert explorer_link("https://scan.coredao.org/", "0x12") == "https://scan.coredao.org/tx/0x12"
