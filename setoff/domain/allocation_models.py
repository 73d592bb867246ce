"""
Data models for the set-off allocation engine.

Defines the value objects shared by the recalculator, the allocators,
the manual-edit validator and the totals aggregation. Every model is
immutable; operations return new instances via ``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple

from setoff.core.config import Config
from setoff.utils.decimal_helpers import ZERO, round_down, round_half_up, sign


class AllocationError(Exception):
    """Raised when a caller breaks the engine contract (unknown row, bad reorder)."""

    pass


class AllocationMode(Enum):
    """How a settlement consumes its outstanding documents."""

    NETTING = "NETTING"  # document set-off, AR/AP contra
    AMOUNT = "AMOUNT"  # receipt, payment, refund


@dataclass(frozen=True)
class DecimalPolicy:
    """
    Rounding precision for one allocation session.

    Attributes:
        amount_decimals: Places for document/settlement currency amounts
        local_amount_decimals: Places for local currency amounts
        exchange_rate_decimals: Places for exchange rates
        city_amount_decimals: Places for the secondary (city) local currency
    """

    amount_decimals: int = 2
    local_amount_decimals: int = 2
    exchange_rate_decimals: int = 6
    city_amount_decimals: int = 2

    def __post_init__(self) -> None:
        for name in (
            "amount_decimals",
            "local_amount_decimals",
            "exchange_rate_decimals",
            "city_amount_decimals",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

    @classmethod
    def from_config(cls) -> "DecimalPolicy":
        """Build the policy from environment configuration."""
        return cls(
            amount_decimals=Config.AMOUNT_DECIMALS,
            local_amount_decimals=Config.LOCAL_AMOUNT_DECIMALS,
            exchange_rate_decimals=Config.EXCHANGE_RATE_DECIMALS,
            city_amount_decimals=Config.CITY_AMOUNT_DECIMALS,
        )

    def round_amount(self, value: Decimal) -> Decimal:
        return round_half_up(value, self.amount_decimals)

    def round_local(self, value: Decimal) -> Decimal:
        return round_half_up(value, self.local_amount_decimals)

    def round_city(self, value: Decimal) -> Decimal:
        return round_half_up(value, self.city_amount_decimals)

    def truncate_amount(self, value: Decimal) -> Decimal:
        """Round toward zero; never exceeds the unrounded magnitude."""
        return round_down(value, self.amount_decimals)

    def round_rate(self, value: Decimal) -> Decimal:
        return round_half_up(value, self.exchange_rate_decimals)


@dataclass(frozen=True)
class DocumentRef:
    """Opaque identity of the document being settled."""

    transaction_id: int
    document_id: str
    document_no: str
    reference_no: Optional[str] = None


@dataclass(frozen=True)
class OutstandingLine:
    """
    One outstanding document inside a settlement.

    Sign convention: a positive ``document_balance`` is a debit item
    (invoice, debit note), a negative one a credit item (credit note,
    refund). The balance sign never changes during allocation.

    Attributes:
        line_no: Identity of the line inside the collection
        document_ref: Source document identity
        document_currency_exchange_rate: Rate of the document at capture time
        document_balance: Outstanding balance in document currency
        document_balance_local: Outstanding balance in local currency
        allocated_amount: Portion of the settlement applied to this line
        allocated_amount_local: allocated_amount at the settlement rate
        allocated_amount_city: allocated_amount in the city currency
        document_allocated_local: allocated_amount at the document's own rate
        exchange_gain_loss: document_allocated_local - allocated_amount_local
        cent_difference: Residual local rounding kept on a fully allocated line
        edit_version: Optimistic-concurrency counter, passed through
    """

    line_no: int
    document_ref: DocumentRef
    document_currency_exchange_rate: Decimal
    document_balance: Decimal
    document_balance_local: Decimal = ZERO
    allocated_amount: Decimal = ZERO
    allocated_amount_local: Decimal = ZERO
    allocated_amount_city: Decimal = ZERO
    document_allocated_local: Decimal = ZERO
    exchange_gain_loss: Decimal = ZERO
    cent_difference: Decimal = ZERO
    edit_version: int = 0
    document_currency_code: Optional[str] = None
    document_total: Optional[Decimal] = None
    document_total_local: Optional[Decimal] = None
    account_date: Optional[str] = None
    due_date: Optional[str] = None

    @property
    def is_debit(self) -> bool:
        return self.document_balance > ZERO

    @property
    def is_credit(self) -> bool:
        return self.document_balance < ZERO

    @property
    def balance_sign(self) -> int:
        return sign(self.document_balance)

    @property
    def open_balance(self) -> Decimal:
        """Balance left on the document after this allocation."""
        return self.document_balance - self.allocated_amount

    def with_allocation(self, amount: Decimal) -> "OutstandingLine":
        """Return a copy with a new allocated amount (derived fields untouched)."""
        return replace(self, allocated_amount=amount)


@dataclass(frozen=True)
class SettlementHeader:
    """
    Header (settlement) fields owned by the caller.

    Attributes:
        settlement_balance: Total amount available to allocate
        settlement_exchange_rate: Rate of the settlement currency
        settlement_city_exchange_rate: Optional secondary local currency rate
        settlement_balance_local: settlement_balance in local currency
        allocated_total: Net allocated amount (see NetTotals)
        allocated_total_local: Sum of line local allocations
        unallocated_total: settlement_balance - allocated_total
        unallocated_total_local: settlement_balance_local - allocated_total_local
        total_exchange_gain_loss: Sum of line exchange gain/loss
    """

    settlement_balance: Decimal = ZERO
    settlement_exchange_rate: Decimal = Decimal("1")
    settlement_city_exchange_rate: Optional[Decimal] = None
    settlement_balance_local: Decimal = ZERO
    allocated_total: Decimal = ZERO
    allocated_total_local: Decimal = ZERO
    unallocated_total: Decimal = ZERO
    unallocated_total_local: Decimal = ZERO
    total_exchange_gain_loss: Decimal = ZERO

    def with_totals(self, totals: "AllocationTotals") -> "SettlementHeader":
        """Store a totals record into the derived header fields."""
        return replace(
            self,
            allocated_total=totals.allocated_total,
            allocated_total_local=totals.allocated_total_local,
            unallocated_total=totals.unallocated_total,
            unallocated_total_local=(
                totals.unallocated_total_local
                if totals.unallocated_total_local is not None
                else self.unallocated_total_local
            ),
            total_exchange_gain_loss=totals.exchange_gain_loss_total,
        )


@dataclass(frozen=True)
class AllocationTotals:
    """Header aggregates derived from the line collection."""

    allocated_total: Decimal = ZERO
    allocated_total_local: Decimal = ZERO
    exchange_gain_loss_total: Decimal = ZERO
    unallocated_total: Decimal = ZERO
    positive_sum: Decimal = ZERO
    negative_abs_sum: Decimal = ZERO
    unallocated_total_local: Optional[Decimal] = None

    def as_dict(self) -> Dict[str, Decimal]:
        return {
            "allocated_total": self.allocated_total,
            "allocated_total_local": self.allocated_total_local,
            "exchange_gain_loss_total": self.exchange_gain_loss_total,
            "unallocated_total": self.unallocated_total,
        }


@dataclass(frozen=True)
class AutoAllocationResult:
    """Result of an automatic allocation pass."""

    lines: Tuple[OutstandingLine, ...]
    applied_total: Decimal


@dataclass(frozen=True)
class ManualEditResult:
    """Result of validating one manually edited allocation."""

    line: OutstandingLine
    was_auto_set_to_zero: bool = False


def ensure_unique_line_nos(lines: Tuple[OutstandingLine, ...]) -> None:
    """
    Check that line numbers identify lines uniquely.

    Raises:
        AllocationError: If a line number appears more than once
    """
    seen = set()
    for line in lines:
        if line.line_no in seen:
            raise AllocationError(f"Duplicate line_no {line.line_no} in collection")
        seen.add(line.line_no)


__all__ = [
    "AllocationError",
    "AllocationMode",
    "AllocationTotals",
    "AutoAllocationResult",
    "DecimalPolicy",
    "DocumentRef",
    "ManualEditResult",
    "OutstandingLine",
    "SettlementHeader",
    "ensure_unique_line_nos",
]
