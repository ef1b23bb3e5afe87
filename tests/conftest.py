from types import SimpleNamespace

import pytest
from web3 import Web3

from disperse.session import NetworkMismatchError, SessionEvent, UserRejectedError, WalletSession

OWNER = Web3.to_checksum_address("0x" + "a1" * 20)
ALICE = Web3.to_checksum_address("0x" + "b2" * 20)
BOB = Web3.to_checksum_address("0x" + "c3" * 20)
STRANGER = Web3.to_checksum_address("0x" + "d4" * 20)
TOKEN = Web3.to_checksum_address("0x" + "e5" * 20)
NFT = Web3.to_checksum_address("0x" + "f6" * 20)
DISPERSE = Web3.to_checksum_address("0x17ded2350848bddbb7642046f73400ff979ef23d")

WEI = 10 ** 18


class FakeChain:
    """In-memory chain client with the same read/build/wait surface as Web3Helper."""

    def __init__(self):
        self.native = {OWNER: 10 * WEI}
        self.token_balances = {(TOKEN, OWNER): 100 * WEI}
        self.decimals = {TOKEN: 18}
        self.symbols = {TOKEN: "USDT", NFT: "PUNK"}
        self.allowances = {}
        self.nft_owners = {NFT: {1: OWNER, 2: STRANGER, 3: OWNER}}
        self.nft_balances = {(NFT, OWNER): 2}
        self.approved_for_all = set()
        self.receipts = {}
        self.fail = {}
        self.calls = []

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise self.fail[name]

    def names(self):
        return [c[0] for c in self.calls]

    def get_native_balance(self, owner):
        self._call("get_native_balance", owner)
        return self.native.get(owner, 0)

    def get_token_balance(self, token, owner):
        self._call("get_token_balance", token, owner)
        return self.token_balances.get((token, owner), 0)

    def get_token_decimals(self, token):
        self._call("get_token_decimals", token)
        return self.decimals[token]

    def get_token_symbol(self, token):
        self._call("get_token_symbol", token)
        return self.symbols.get(token)

    def get_allowance(self, token, owner, spender):
        self._call("get_allowance", token, owner, spender)
        return self.allowances.get((token, owner, spender), 0)

    def get_nft_balance(self, nft, owner):
        self._call("get_nft_balance", nft, owner)
        return self.nft_balances.get((nft, owner), 0)

    def get_nft_owners(self, nft, token_ids):
        self._call("get_nft_owners", nft, list(token_ids))
        return [self.nft_owners.get(nft, {}).get(t) for t in token_ids]

    def is_approved_for_all(self, nft, owner, operator):
        self._call("is_approved_for_all", nft, owner, operator)
        return (nft, owner, operator) in self.approved_for_all

    def build_approve_tx(self, token, spender, amount, sender):
        self._call("build_approve_tx", token, spender, amount, sender)
        return {"fn": "approve", "to": token, "amount": amount}

    def build_set_approval_for_all_tx(self, nft, operator, sender):
        self._call("build_set_approval_for_all_tx", nft, operator, sender)
        return {"fn": "setApprovalForAll", "to": nft}

    def build_disperse_tx(self, fn_name, args, sender, value=0):
        self._call("build_disperse_tx", fn_name, args, sender, value)
        return {"fn": fn_name, "args": args, "value": value}

    def wait_for_receipt(self, tx_hash, timeout=300):
        self._call("wait_for_receipt", tx_hash)
        return self.receipts.get(tx_hash, {"status": 1, "blockNumber": 100})


class FakeSigner:
    def __init__(self, reject=False):
        self.reject = reject
        self.sent = []

    def send_transaction(self, tx, description="transaction"):
        if self.reject:
            raise UserRejectedError(f"{description} was rejected by user")
        self.sent.append(tx)
        return "0x" + format(len(self.sent), "064x")


class FakeGateway:
    def __init__(self, address=OWNER, chain_id=1116):
        self.address = address
        self.chain_id = chain_id
        self.signer = FakeSigner()
        self.callbacks = []
        self.allow_switch = False

    def connect(self):
        return WalletSession(self.address, self.chain_id)

    def ensure_network(self, expected):
        if self.chain_id == expected:
            return
        if not self.allow_switch:
            raise NetworkMismatchError(expected, self.chain_id)
        self.chain_id = expected
        self.emit("chain", chain_id=expected)

    def get_signer(self):
        return self.signer

    def subscribe(self, callback):
        self.callbacks.append(callback)
        return SimpleNamespace(unsubscribe=lambda: self.callbacks.remove(callback))

    def emit(self, kind, **kwargs):
        for cb in list(self.callbacks):
            cb(SessionEvent(kind, **kwargs))


@pytest.fixture
def chain_config():
    return SimpleNamespace(
        CHAIN_ID=1116,
        CHAIN_NAME="core",
        EXPLORER_URL="https://scan.coredao.org",
        NATIVE_SYMBOL="CORE",
        NATIVE_DECIMALS=18,
        NATIVE_LOGO="https://example.org/core.png",
        DISPERSE_ADDRESS=DISPERSE,
    )


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def make_engine(gateway, chain, chain_config):
    from disperse import MultisenderEngine

    def _make(**kwargs):
        engine = MultisenderEngine(gateway, chain, chain_config, **kwargs).start()
        engine.connect()
        return engine
    return _make
