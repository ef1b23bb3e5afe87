"""
Recipient list parsing and aggregate computation.

Each non-blank line is ``<address><separator><value>``. Separator priority:
``=`` first, then a whitespace run, then ``-``; the line is split once on the
first occurrence of the chosen separator. A dash touching that whitespace run
on either side counts as part of the separator.
"""
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import List, Optional, Tuple, Union

from web3 import Web3

from .asset_mode import AssetMode
from .errors import InputError

POLICY_REJECT = "reject"
POLICY_SKIP = "skip"
POLICIES = (POLICY_REJECT, POLICY_SKIP)

DISPLAY_QUANT = Decimal("0.00001")

_WHITESPACE_RE = re.compile(r"\s+")
_AMOUNT_RE = re.compile(r"^(?:\d+(?:\.\d*)?|\.\d+)$", re.ASCII)
_TOKEN_ID_RE = re.compile(r"^\d+$", re.ASCII)


@dataclass(frozen=True)
class RecipientEntry:
    address: str
    value: Union[Decimal, int]  # amount, or token id in NFT mode
    units: int                  # base units, or the token id
    source_line: str
    line_number: int


@dataclass(frozen=True)
class ParseResult:
    entries: Tuple[RecipientEntry, ...]
    errors: Tuple[InputError, ...]

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class Aggregate:
    count: int
    total: Optional[Decimal]
    total_units: int
    balance: Optional[Decimal]
    remaining: Optional[Decimal]

    @property
    def total_display(self) -> str:
        return format_amount(self.total) if self.total is not None else ""

    @property
    def remaining_display(self) -> str:
        return format_amount(self.remaining) if self.remaining is not None else ""


@dataclass(frozen=True)
class DistributionRequest:
    mode: AssetMode
    asset_address: Optional[str]
    decimals: int
    entries: Tuple[RecipientEntry, ...]
    errors: Tuple[InputError, ...]
    aggregate: Aggregate

    @property
    def count(self) -> int:
        return self.aggregate.count

    @property
    def total(self) -> Optional[Decimal]:
        return self.aggregate.total

    @property
    def total_units(self) -> int:
        return self.aggregate.total_units

    @property
    def recipients(self) -> List[str]:
        return [e.address for e in self.entries]

    @property
    def values(self) -> List[int]:
        return [e.units for e in self.entries]


def format_amount(value: Decimal) -> str:
    pretty = value.quantize(DISPLAY_QUANT, rounding=ROUND_HALF_UP)
    return f"{pretty:.5f}"


def to_base_units(value: Decimal, decimals: int) -> int:
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = value.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"more than {decimals} decimal places")
        return int(scaled)


def from_base_units(units: int, decimals: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = 100
        return Decimal(int(units)).scaleb(-int(decimals))


def split_line(line: str) -> Tuple[str, str]:
    stripped = line.strip()
    if "=" in stripped:
        address, _, value = stripped.partition("=")
    elif _WHITESPACE_RE.search(stripped):
        address, value = _WHITESPACE_RE.split(stripped, maxsplit=1)
        # "<address>- <value>" and "<address> - <value>"
        if address.endswith("-"):
            address = address[:-1]
        elif len(value) > 1 and value[0] == "-" and value[1].isspace():
            value = value[1:]
    elif "-" in stripped:
        address, _, value = stripped.partition("-")
    else:
        raise ValueError("missing separator")
    return address.strip(), value.strip()


def parse_line(line: str, line_number: int, mode: AssetMode, decimals: int = 18) -> RecipientEntry:
    try:
        address_part, value_part = split_line(line)
    except ValueError:
        raise InputError(f"Invalid format in line {line_number}: {line.strip()}", line_number, line)
    if not address_part or not value_part:
        raise InputError(f"Invalid format in line {line_number}: {line.strip()}", line_number, line)

    if not address_part.startswith("0x") or not Web3.is_address(address_part):
        raise InputError(f"Invalid address in line {line_number}: {address_part}", line_number, line)
    address = Web3.to_checksum_address(address_part)

    if mode == AssetMode.NFT:
        if not _TOKEN_ID_RE.match(value_part):
            raise InputError(f"Invalid token ID in line {line_number}: {value_part}", line_number, line)
        token_id = int(value_part)
        return RecipientEntry(address, token_id, token_id, line, line_number)

    if not _AMOUNT_RE.match(value_part):
        if value_part.startswith("-") and _AMOUNT_RE.match(value_part[1:]):
            raise InputError(f"Amount must be positive in line {line_number}: {value_part}", line_number, line)
        raise InputError(f"Invalid value in line {line_number}: {value_part}", line_number, line)
    try:
        amount = Decimal(value_part)
    except InvalidOperation:
        raise InputError(f"Invalid value in line {line_number}: {value_part}", line_number, line)
    if amount <= 0:
        raise InputError(f"Amount must be positive in line {line_number}: {value_part}", line_number, line)
    try:
        units = to_base_units(amount, decimals)
    except ValueError as exc:
        raise InputError(f"Invalid value in line {line_number}: {value_part} has {exc}", line_number, line)
    return RecipientEntry(address, amount, units, line, line_number)


def parse_recipients(text: str, mode: AssetMode, decimals: int = 18) -> ParseResult:
    """
    Parses every non-blank line independently. Valid entries keep input
    order; duplicates are kept. Bad lines are reported, never dropped silently.
    """
    entries: List[RecipientEntry] = []
    errors: List[InputError] = []
    for number, line in enumerate((text or "").splitlines(), start=1):
        if not line.strip():
            continue
        try:
            entries.append(parse_line(line, number, mode, decimals))
        except InputError as err:
            errors.append(err)
    return ParseResult(tuple(entries), tuple(errors))


def calculate_aggregate(entries, mode: AssetMode, balance: Optional[Decimal] = None) -> Aggregate:
    count = len(entries)
    if mode == AssetMode.NFT:
        return Aggregate(count, None, 0, balance, None)
    total = sum((e.value for e in entries), Decimal(0))
    total_units = sum(e.units for e in entries)
    remaining = balance - total if balance is not None else None
    return Aggregate(count, total, total_units, balance, remaining)


def build_request(text: str, mode: AssetMode, asset_address: Optional[str], decimals: int,
                  balance: Optional[Decimal] = None) -> DistributionRequest:
    parsed = parse_recipients(text, mode, decimals)
    aggregate = calculate_aggregate(parsed.entries, mode, balance)
    return DistributionRequest(mode, asset_address, decimals, parsed.entries, parsed.errors, aggregate)
