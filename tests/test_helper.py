from unittest.mock import MagicMock

import pytest
from eth_abi import encode
from eth_account import Account

import config
from utils.helper import FileHelper, Web3Helper
from utils.rpc_provider import RotatingHTTPProvider

from conftest import ALICE, BOB, NFT


@pytest.fixture
def helper():
    return Web3Helper(config.CORE)


def test_rpc_urls_include_configured_endpoint(helper):
    assert helper.rpc_urls[0] == config.CORE.RPC_URL
    assert isinstance(helper.provider, RotatingHTTPProvider)
    assert helper.disperse.address.lower() == config.CORE.DISPERSE_ADDRESS.lower()


def test_nft_owners_in_one_multicall(helper):
    helper.multicall = MagicMock()
    helper.multicall.functions.aggregate3.return_value.call.return_value = [
        (True, encode(["address"], [ALICE])),
        (False, b""),
        (True, encode(["address"], [BOB])),
    ]
    assert helper.get_nft_owners(NFT, [1, 2, 3]) == [ALICE, None, BOB]
    helper.multicall.functions.aggregate3.assert_called_once()
    calls = helper.multicall.functions.aggregate3.call_args[0][0]
    assert len(calls) == 3
    assert all(c["allowFailure"] for c in calls)


def test_multicall_falls_back_to_eth_call(helper):
    helper.multicall = MagicMock()
    helper.multicall.functions.aggregate3.return_value.call.side_effect = ValueError("no multicall")
    helper.w3 = MagicMock()
    helper.w3.to_checksum_address.side_effect = lambda a: a
    helper.w3.eth.call.side_effect = [encode(["address"], [ALICE]), ValueError("reverted")]
    assert helper._aggregate3([(NFT, b"\x01"), (NFT, b"\x02")]) == [(True, encode(["address"], [ALICE])), (False, b"")]


def test_decode_string_like(helper):
    assert helper._decode_string_like(encode(["string"], ["USDT"])) == "USDT"
    assert helper._decode_string_like(b"MKR".ljust(32, b"\x00")) == "MKR"
    assert helper._decode_string_like(b"") is None


def test_private_key_parsing(helper):
    key = "4c" * 32
    blob = f"# comment\n0x{key}\n{key.upper()}, not-a-key\n"
    keys, addrs = helper._store_keys(blob)
    assert keys == ["0x" + key]
    assert addrs == [Account.from_key("0x" + key).address]


def test_private_keys_from_file(helper, tmp_path):
    path = tmp_path / "wallet.txt"
    path.write_text("0x" + "5d" * 32 + "\n", encoding="utf-8")
    keys, _ = helper.load_privatekeys_file(str(path))
    assert keys == ["0x" + "5d" * 32]
    assert helper.load_privatekeys_file(str(tmp_path / "missing.txt")) == ([], [])


def test_recipients_file_keeps_line_numbers(tmp_path):
    path = tmp_path / "core" / "recipients.txt"
    FileHelper.ensure_placeholder(str(path), "recipients")
    assert path.exists()
    assert FileHelper.read_text(str(path)).strip() == ""

    path.write_text(f"# header\n{ALICE}=1 # first\n\n{BOB}=2\n", encoding="utf-8")
    lines = FileHelper.read_text(str(path)).split("\n")
    assert lines[1] == f"{ALICE}=1"
    assert lines[3] == f"{BOB}=2"
    assert FileHelper.load_lines(str(path)) == [f"{ALICE}=1", f"{BOB}=2"]


def test_token_logo_falls_back(helper, monkeypatch):
    import requests

    def boom(*args, **kwargs):
        raise requests.exceptions.ConnectionError("offline")

    monkeypatch.setattr(requests, "get", boom)
    logo = helper.fetch_token_logo(ALICE.lower())
    assert logo == config.TOKEN_LOGO_FALLBACK.format(address=ALICE)


def test_token_logo_from_api(helper, monkeypatch):
    import requests

    response = MagicMock()
    response.json.return_value = {"data": {"attributes": {"image_url": "https://img/x.png"}}}
    monkeypatch.setattr(requests, "get", lambda *a, **k: response)
    assert helper.fetch_token_logo(ALICE) == "https://img/x.png"


def test_gas_api_fees(helper, monkeypatch):
    import requests

    response = MagicMock()
    response.json.return_value = {"medium": {"suggestedMaxFeePerGas": "30", "suggestedMaxPriorityFeePerGas": "1.5"}}
    monkeypatch.setattr(requests, "get", lambda *a, **k: response)
    assert helper.fetch_suggested_fees("https://gas.example/api") == (30 * 10 ** 9, 15 * 10 ** 8)


def test_provider_never_retries_raw_send(monkeypatch):
    provider = RotatingHTTPProvider(["http://a.invalid", "http://b.invalid"])
    calls = []

    def fail(self, method, params):
        calls.append(self.endpoint_uri)
        raise ConnectionError("down")

    monkeypatch.setattr("web3.HTTPProvider.make_request", fail)
    with pytest.raises(ConnectionError):
        provider.make_request("eth_sendRawTransaction", ["0x00"])
    assert calls == ["http://a.invalid"]

    calls.clear()
    with pytest.raises(ConnectionError):
        provider.make_request("eth_chainId", [])
    assert calls == ["http://a.invalid", "http://b.invalid"]
