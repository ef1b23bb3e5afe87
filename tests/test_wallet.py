from unittest.mock import MagicMock

import pytest
from eth_account import Account

import config
from utils.wallet import (
    LocalSigner,
    LocalWalletGateway,
    NetworkMismatchError,
    UserRejectedError,
    WalletNotConnectedError,
    mask_key,
)

KEY = "0x" + "4c" * 32
OTHER_KEY = "0x" + "5d" * 32


def make_web3h(chain_id=1116):
    web3h = MagicMock()
    web3h.w3.eth.chain_id = chain_id
    web3h.w3.eth.send_raw_transaction.return_value = bytes.fromhex("ab" * 32)
    return web3h


def test_connect_reports_address_and_chain():
    gateway = LocalWalletGateway(make_web3h(), KEY)
    session = gateway.connect()
    assert session.address == Account.from_key(KEY).address
    assert session.chain_id == 1116


def test_connect_without_key():
    with pytest.raises(WalletNotConnectedError):
        LocalWalletGateway(make_web3h()).connect()


def test_declined_network_switch():
    gateway = LocalWalletGateway(make_web3h(chain_id=1), KEY, network_prompt=lambda chain_id: False)
    with pytest.raises(NetworkMismatchError) as info:
        gateway.ensure_network(1116)
    assert (info.value.expected, info.value.actual) == (1116, 1)


def test_accepted_network_switch_emits_chain_event():
    web3h = make_web3h(chain_id=1)

    def switch(cfg):
        web3h.w3.eth.chain_id = cfg.CHAIN_ID

    web3h.switch_chain.side_effect = switch
    gateway = LocalWalletGateway(web3h, KEY, network_prompt=lambda chain_id: True)
    events = []
    gateway.subscribe(events.append)

    gateway.ensure_network(1116)

    web3h.switch_chain.assert_called_once_with(config.CORE)
    assert [e.kind for e in events] == ["chain"]


def test_account_switch_and_unsubscribe():
    gateway = LocalWalletGateway(make_web3h(), KEY)
    events = []
    sub = gateway.subscribe(events.append)
    gateway.switch_account(OTHER_KEY)
    sub.unsubscribe()
    gateway.disconnect()
    assert [e.kind for e in events] == ["accounts"]
    assert events[0].address == Account.from_key(OTHER_KEY).address
    assert gateway.address is None


def test_poll_chain_announces_change():
    web3h = make_web3h()
    gateway = LocalWalletGateway(web3h, KEY)
    gateway.connect()
    events = []
    gateway.subscribe(events.append)
    assert gateway.poll_chain() == 1116
    web3h.w3.eth.chain_id = 56
    gateway.poll_chain()
    assert [(e.kind, e.chain_id) for e in events] == [("chain", 56)]


def test_signer_confirms_before_signing():
    web3h = make_web3h()
    tx = {
        "to": Account.from_key(OTHER_KEY).address, "value": 1, "gas": 21000, "nonce": 0,
        "chainId": 1116, "maxFeePerGas": 10 ** 9, "maxPriorityFeePerGas": 10 ** 9,
    }
    signer = LocalSigner(Account.from_key(KEY), web3h.w3, confirm=lambda description: False)
    with pytest.raises(UserRejectedError):
        signer.send_transaction(tx, "disperseEther")
    web3h.w3.eth.send_raw_transaction.assert_not_called()

    signer = LocalSigner(Account.from_key(KEY), web3h.w3, confirm=lambda description: True)
    assert signer.send_transaction(tx) == "0x" + "ab" * 32
    web3h.w3.eth.send_raw_transaction.assert_called_once()


def test_mask_key():
    assert mask_key(KEY) == "0x4c4c...4c4c"
    assert mask_key("short") == "****"
