import os
import re
import json
import time
import logging
from typing import List, Optional, Tuple

import requests
from eth_abi import decode as abi_decode
from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound

import config
from .rpc_provider import RotatingHTTPProvider
from .wallet import mask_key

logger = logging.getLogger(__name__)

_PRIV_RE = re.compile(r"^(?:0x)?([0-9a-fA-F]{64})$")


class Web3Helper:
    """
    Chain client for the multisender: RPC rotation, multicall wiring,
    ERC-20 / ERC-721 reads, disperse tx building, fees and receipts.

    This class owns a rotating provider and a Web3 instance.
    """

    def __init__(self, chain_config):
        self.private_keys: list[str] = []
        self.pk_addresses: list[str] = []
        self.switch_chain(chain_config)

    # ---------- RPC ----------
    def _build_rpc_urls(self, chain_config) -> List[str]:
        urls: List[str] = []
        base = getattr(chain_config, "RPC_URL", None)
        if base:
            urls.append(str(base))
        urls.extend(config.EXTRA_RPC_URLS)

        dedup = list(dict.fromkeys(u for u in urls if u))
        if not dedup:
            raise RuntimeError("No RPC URLs configured. Set CORE_RPC_URL or EXTRA_RPC_URLS in .env")
        return dedup

    def switch_chain(self, chain_config) -> None:
        """Re-points the provider and contracts at another configured chain."""
        self.cfg = chain_config
        self.rpc_urls: List[str] = self._build_rpc_urls(chain_config)
        self.provider = RotatingHTTPProvider(self.rpc_urls)
        self.w3 = Web3(self.provider)

        self.multicall = self.w3.eth.contract(
            address=self.w3.to_checksum_address(self.cfg.MULTICALL3_ADDRESS),
            abi=json.loads(self.cfg.MULTICALL3_ABI))
        self.erc20_abi = json.loads(self.cfg.TOKEN_ABI)
        self.nft_abi = json.loads(self.cfg.NFT_ABI)
        self.disperse = None
        if self.cfg.DISPERSE_ADDRESS:
            self.disperse = self.w3.eth.contract(
                address=self.w3.to_checksum_address(self.cfg.DISPERSE_ADDRESS),
                abi=json.loads(self.cfg.DISPERSE_ABI))
        logger.info("Using %s (chain id %s) via %s", self.cfg.CHAIN_NAME, self.cfg.CHAIN_ID, self.rpc_urls[0])

    # ---------- Multicall ----------
    def _aggregate3(self, calls: List[Tuple[str, bytes]], allow_failure: bool = True) -> List[Tuple[bool, bytes]]:
        """
        Execute Multicall3.aggregate3. Each call is (target, calldata).
        Returns [(success, returnData), ...]; falls back to single eth_calls.
        """
        if not calls:
            return []
        try:
            call3 = [{"target": self.w3.to_checksum_address(t), "allowFailure": allow_failure, "callData": d}
                     for t, d in calls]
            results = self.multicall.functions.aggregate3(call3).call()
            return [(bool(r[0]), bytes(r[1])) for r in results]
        except Exception as e:
            logger.warning("aggregate3 failed, falling back to eth_call: %s", e)
        out: List[Tuple[bool, bytes]] = []
        for target, data in calls:
            try:
                ret = self.w3.eth.call({"to": self.w3.to_checksum_address(target), "data": data})
                out.append((True, bytes(ret)))
            except Exception as e:
                logger.debug("eth_call to %s failed: %s", target, e)
                out.append((False, b""))
        return out

    def _decode_string_like(self, data: bytes) -> Optional[str]:
        """Decode string or bytes32 -> str (handles non-standard tokens)."""
        if not data:
            return None
        try:
            return abi_decode(["string"], data)[0]
        except Exception:
            pass
        try:
            b32 = abi_decode(["bytes32"], data)[0]
            return bytes(b32).rstrip(b"\x00").decode("utf-8", errors="ignore") or None
        except Exception:
            return None

    # ---------- Reads ----------
    def _erc20(self, token_address: str):
        return self.w3.eth.contract(address=self.w3.to_checksum_address(token_address), abi=self.erc20_abi)

    def _nft(self, nft_address: str):
        return self.w3.eth.contract(address=self.w3.to_checksum_address(nft_address), abi=self.nft_abi)

    def get_native_balance(self, owner: str) -> int:
        return int(self.w3.eth.get_balance(self.w3.to_checksum_address(owner)))

    def get_token_balance(self, token_address: str, owner: str) -> int:
        return int(self._erc20(token_address).functions.balanceOf(self.w3.to_checksum_address(owner)).call())

    def get_token_decimals(self, token_address: str) -> int:
        return int(self._erc20(token_address).functions.decimals().call())

    def get_token_symbol(self, token_address: str) -> Optional[str]:
        target = self.w3.to_checksum_address(token_address)
        data = self._erc20(target).encode_abi("symbol", args=[])
        ok, ret = self._aggregate3([(target, data)])[0]
        return self._decode_string_like(ret) if ok else None

    def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        return int(self._erc20(token_address).functions.allowance(
            self.w3.to_checksum_address(owner),
            self.w3.to_checksum_address(spender)
        ).call())

    def get_nft_balance(self, nft_address: str, owner: str) -> int:
        return int(self._nft(nft_address).functions.balanceOf(self.w3.to_checksum_address(owner)).call())

    def get_nft_owners(self, nft_address: str, token_ids: List[int]) -> List[Optional[str]]:
        """ownerOf for every id in one aggregate3 round trip; None where the call reverted."""
        target = self.w3.to_checksum_address(nft_address)
        nft = self._nft(target)
        calls = [(target, nft.encode_abi("ownerOf", args=[int(t)])) for t in token_ids]
        owners: List[Optional[str]] = []
        for ok, ret in self._aggregate3(calls):
            if not ok or len(ret) < 32:
                owners.append(None)
                continue
            owners.append(Web3.to_checksum_address(abi_decode(["address"], ret)[0]))
        return owners

    def is_approved_for_all(self, nft_address: str, owner: str, operator: str) -> bool:
        return bool(self._nft(nft_address).functions.isApprovedForAll(
            self.w3.to_checksum_address(owner),
            self.w3.to_checksum_address(operator)
        ).call())

    # ---------- Gas ----------
    def fetch_suggested_fees(self, api_url: Optional[str] = None, tier: str = "medium") -> Tuple[Optional[int], Optional[int]]:
        api_url = api_url if api_url is not None else getattr(self.cfg, "GAS_API_URL", None)
        if api_url:
            try:
                response = requests.get(api_url, timeout=10)
                response.raise_for_status()
                gas_data = response.json()
                if tier not in gas_data:
                    raise KeyError(f"Gas tier '{tier}' not found in response")
                max_fee = float(gas_data[tier]["suggestedMaxFeePerGas"])
                max_prio = float(gas_data[tier]["suggestedMaxPriorityFeePerGas"])
                logger.info("Fetched gas fees - max fee %s Gwei, priority %s Gwei", max_fee, max_prio)
                return Web3.to_wei(max_fee, "gwei"), Web3.to_wei(max_prio, "gwei")
            except requests.exceptions.RequestException as err:
                logger.warning("Gas API request failed: %s", err)
            except (KeyError, ValueError, TypeError) as err:
                logger.warning("Invalid gas fee data format: %s", err)

        try:
            base_fee = self.w3.eth.get_block("latest").get("baseFeePerGas")
            if base_fee is not None:
                tip = self.w3.eth.max_priority_fee
                return int(base_fee * 2 + tip), int(tip)
        except Exception as err:
            logger.debug("EIP-1559 fee lookup failed: %s", err)
        return int(self.w3.eth.gas_price), None

    # ---------- Tx building ----------
    def _tx_params(self, sender: str, value: int = 0) -> dict:
        sender = self.w3.to_checksum_address(sender)
        max_fee, max_prio = self.fetch_suggested_fees()
        params = {
            "from": sender,
            "chainId": int(self.cfg.CHAIN_ID),
            "nonce": self.w3.eth.get_transaction_count(sender, "pending"),
        }
        if value:
            params["value"] = int(value)
        if max_prio is None:
            params["gasPrice"] = max_fee
        else:
            params.update({"type": 2, "maxFeePerGas": max_fee, "maxPriorityFeePerGas": max_prio})
        return params

    def build_approve_tx(self, token_address: str, spender: str, amount: int, sender: str) -> dict:
        fn = self._erc20(token_address).functions.approve(self.w3.to_checksum_address(spender), int(amount))
        return fn.build_transaction(self._tx_params(sender))

    def build_set_approval_for_all_tx(self, nft_address: str, operator: str, sender: str) -> dict:
        fn = self._nft(nft_address).functions.setApprovalForAll(self.w3.to_checksum_address(operator), True)
        return fn.build_transaction(self._tx_params(sender))

    def build_disperse_tx(self, fn_name: str, args: list, sender: str, value: int = 0) -> dict:
        """Build (and gas-estimate) disperseEther / disperseToken / disperseNFT."""
        if self.disperse is None:
            raise RuntimeError(f"No disperse contract configured for {self.cfg.CHAIN_NAME}")
        fn = getattr(self.disperse.functions, fn_name)(*args)
        return fn.build_transaction(self._tx_params(sender, value))

    # ---------- Tx lifecycle ----------
    def wait_for_receipt(self, tx_hash, timeout: int = 300, start_delay: float = 2, max_delay: float = 8):
        start = time.time()
        delay = start_delay
        while True:
            try:
                return self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                pass
            if time.time() - start > timeout:
                raise TimeExhausted(f"Transaction {tx_hash} is not in the chain after {timeout} seconds")
            time.sleep(delay)
            delay = min(max_delay, delay * 1.5)

    # ---------- Display metadata ----------
    def fetch_token_logo(self, token_address: str) -> str:
        address = self.w3.to_checksum_address(token_address)
        url = config.TOKEN_LOGO_API.format(network=self.cfg.CHAIN_NAME, address=address.lower())
        try:
            response = requests.get(url, headers={"Accept": "application/json"}, timeout=10)
            response.raise_for_status()
            image = ((response.json().get("data") or {}).get("attributes") or {}).get("image_url")
            if image and "missing" not in image:
                return image
        except requests.exceptions.RequestException as err:
            logger.debug("Logo lookup failed for %s: %s", address, err)
        except ValueError as err:
            logger.debug("Logo response for %s was not JSON: %s", address, err)
        return config.TOKEN_LOGO_FALLBACK.format(address=address)

    # ---------- Private keys ----------
    def _parse_privatekeys_blob(self, blob: str) -> list[str]:
        """
        Private keys: hex with/without 0x, 64 hex chars. Returns normalized '0x' + lowercase, unique.
        """
        if not blob:
            return []
        out, seen = [], set()
        for raw in blob.splitlines():
            line = raw.split("#", 1)[0].strip()
            if not line:
                continue
            for tok in re.split(r"[\s,;]+", line):
                if not tok:
                    continue
                m = _PRIV_RE.match(tok)
                if not m:
                    logger.warning("private key: invalid, skipped: %s", mask_key(tok))
                    continue
                key = "0x" + m.group(1).lower()
                if key not in seen:
                    seen.add(key)
                    out.append(key)
        return out

    def _derive_addresses_from_private_keys(self, keys: list[str]) -> tuple[list[str], list[str]]:
        filtered_keys: list[str] = []
        derived: list[str] = []
        for k in keys:
            try:
                derived.append(Account.from_key(k).address)
                filtered_keys.append(k)
            except ValueError as e:
                logger.warning("Skipping invalid private key %s: %s", mask_key(k), e)
        return filtered_keys, derived

    def _store_keys(self, blob: str) -> tuple[list[str], list[str]]:
        keys, addrs = self._derive_addresses_from_private_keys(self._parse_privatekeys_blob(blob or ""))
        self.private_keys = keys
        self.pk_addresses = addrs
        return keys, addrs

    def load_privatekeys_file(self, key_file: str) -> tuple[list[str], list[str]]:
        try:
            with open(key_file, "r", encoding="utf-8-sig") as f:
                blob = f.read()
        except OSError as e:
            logger.error("Failed to read private keys file %s: %s", key_file, e)
            return self._store_keys("")
        return self._store_keys(blob)

    def load_privatekeys_cli(self) -> tuple[list[str], list[str]]:
        import questionary as q
        blob = q.password("Paste private key (hex; with or without 0x):").ask()
        return self._store_keys(blob or "")

    def load_privatekeys_gui(self) -> tuple[list[str], list[str]]:
        from .gui_input import ask_text, show_info
        blob = ask_text("Private key Input", "Add Private key",
                        "Enter private keys\nYou can separate them with commas, spaces, or newlines",
                        submit_text="Import Private keys", icon="🔑")
        keys, addrs = self._store_keys(blob)
        if keys:
            show_info("Success", f"Successfully imported {len(keys)} pk addresses")
        return keys, addrs

    # ---------- Recipients ----------
    def load_recipients_file(self, recipients_file: str) -> str:
        return FileHelper.read_text(recipients_file)

    def load_recipients_cli(self) -> str:
        import questionary as q
        text = q.text("Recipients, one per line (address=value); Alt+Enter to finish:", multiline=True).ask()
        return text or ""

    def load_recipients_gui(self) -> str:
        from .gui_input import ask_text
        return ask_text("Recipients Input", "Add Recipients",
                        "One recipient per line: address=value, address value or address-value\n"
                        "Ctrl+Enter to submit", submit_text="Use Recipients", icon="📋")


class FileHelper:
    """
    Basic file helpers to ensure placeholders and load simple lists.
    """

    TEMPLATES = {
        "wallets": "# Enter your private key here (one per line). Supports 0x-prefixed or raw hex.\n",
        "recipients": (
            "# One recipient per line: <address>=<amount or token id>\n"
            "# 0x1234...abcd=1.5\n"
            "# 0x1234...abcd 2\n"
        ),
    }

    @staticmethod
    def ensure_placeholder(file_path: str, kind: str) -> None:
        if not os.path.exists(file_path):
            os.makedirs(os.path.dirname(file_path) or ".", exist_ok=True)
            with open(file_path, "w", encoding="utf-8") as f:
                f.write(FileHelper.TEMPLATES.get(kind, ""))

    @staticmethod
    def _strip_comment(line: str) -> str:
        s = line.strip()
        if not s or s.startswith("#"):
            return ""
        if "#" in s:
            s = s.split("#", 1)[0].strip()
        return s

    @staticmethod
    def load_lines(file_path: str) -> List[str]:
        if not os.path.exists(file_path):
            return []
        with open(file_path, "r", encoding="utf-8") as f:
            return [s for s in (FileHelper._strip_comment(line) for line in f) if s]

    @staticmethod
    def read_text(file_path: str) -> str:
        """File text with comments blanked, so line numbers still match the file."""
        if not os.path.exists(file_path):
            return ""
        with open(file_path, "r", encoding="utf-8-sig") as f:
            return "\n".join(FileHelper._strip_comment(line) for line in f)
