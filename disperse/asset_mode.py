import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, Tuple

from web3 import Web3

from .errors import ErrorClassifier, InputError

logger = logging.getLogger(__name__)


class AssetMode(str, Enum):
    NATIVE = "native"
    FUNGIBLE = "token"
    NFT = "nft"


@dataclass(frozen=True)
class AssetMetadata:
    address: Optional[str]
    symbol: str
    decimals: int
    icon: str
    resolved: bool


class GenerationCounter:
    """
    Versions the mode + address + connection state. Async reads capture the
    current tag and their results are applied only while the tag is current.
    """

    def __init__(self):
        self._value = 0
        self._lock = threading.Lock()

    def current(self) -> int:
        with self._lock:
            return self._value

    def bump(self, reason: str = "") -> int:
        with self._lock:
            self._value += 1
            value = self._value
        logger.debug("generation -> %s (%s)", value, reason)
        return value

    def is_current(self, tag: int) -> bool:
        with self._lock:
            return tag == self._value


class AssetModeController:
    """Holds the active asset class and its metadata."""

    def __init__(self, chain_config, generation: GenerationCounter,
                 classifier: Optional[ErrorClassifier] = None,
                 logo_resolver: Optional[Callable[[str], str]] = None):
        self.chain_config = chain_config
        self.generation = generation
        self.classifier = classifier or ErrorClassifier(chain_config.NATIVE_SYMBOL)
        self.logo_resolver = logo_resolver
        self.mode = AssetMode.NATIVE
        self.metadata = self.defaults(AssetMode.NATIVE)

    def defaults(self, mode: AssetMode) -> AssetMetadata:
        if mode == AssetMode.NATIVE:
            return AssetMetadata(None, self.chain_config.NATIVE_SYMBOL, int(self.chain_config.NATIVE_DECIMALS),
                                 self.chain_config.NATIVE_LOGO, resolved=True)
        if mode == AssetMode.FUNGIBLE:
            return AssetMetadata(None, "TOKEN", 18, "", resolved=False)
        return AssetMetadata(None, "NFT", 0, "", resolved=False)

    @property
    def requires_address(self) -> bool:
        return self.mode != AssetMode.NATIVE

    @property
    def ready(self) -> bool:
        return self.metadata.resolved

    def select(self, mode: AssetMode) -> AssetMetadata:
        mode = AssetMode(mode)
        previous = self.mode
        self.mode = mode
        self.metadata = self.defaults(mode)
        self.generation.bump(f"mode {previous.value} -> {mode.value}")
        logger.info("Asset mode: %s -> %s", previous.value, mode.value)
        return self.metadata

    def begin_load(self, address: str) -> Tuple[int, str]:
        if not self.requires_address:
            raise InputError("Native mode has no contract address")
        candidate = (address or "").strip()
        if not candidate.startswith("0x") or not Web3.is_address(candidate):
            self.metadata = self.defaults(self.mode)
            raise InputError(f"Invalid token address: {candidate or '<empty>'}")
        checksum = Web3.to_checksum_address(candidate)
        self.metadata = replace(self.defaults(self.mode), address=checksum)
        tag = self.generation.bump(f"load {checksum}")
        return tag, checksum

    def load(self, address: str, chain) -> Optional[AssetMetadata]:
        """
        Fetches symbol and decimals for a token or NFT contract. Returns the
        applied metadata, or None when the load was superseded.
        """
        tag, checksum = self.begin_load(address)
        mode = self.mode
        try:
            if mode == AssetMode.FUNGIBLE:
                decimals = int(chain.get_token_decimals(checksum))
                try:
                    symbol = chain.get_token_symbol(checksum)
                except Exception as exc:
                    logger.warning("symbol() failed for %s: %s", checksum, exc)
                    symbol = "TOKEN"
            else:
                decimals = 0
                try:
                    symbol = chain.get_token_symbol(checksum)
                except Exception as exc:
                    logger.warning("symbol() failed for NFT %s: %s", checksum, exc)
                    symbol = "NFT"
        except Exception as exc:
            raise self.classifier.classify(exc, stage="read", token=checksum) from exc

        icon = ""
        if self.logo_resolver is not None:
            icon = self.logo_resolver(checksum)
        return self.apply(tag, AssetMetadata(checksum, symbol or self.defaults(mode).symbol, decimals, icon, resolved=True))

    def apply(self, tag: int, metadata: AssetMetadata) -> Optional[AssetMetadata]:
        if not self.generation.is_current(tag):
            logger.debug("Discarding superseded metadata for %s", metadata.address)
            return None
        self.metadata = metadata
        logger.info("Loaded %s %s (decimals %s)", metadata.symbol, metadata.address, metadata.decimals)
        return metadata
