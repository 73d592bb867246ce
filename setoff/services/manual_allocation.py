"""
Validation and clamping of a manually edited allocation.

Manual edits are self-healing: a wrong sign is flipped, an amount beyond
the document balance is clamped, and an edit on a line with no remaining
capacity is forced to zero. Nothing here raises for numeric input; the
``was_auto_set_to_zero`` flag is the only signal of a forced correction.
"""

from decimal import Decimal
from typing import Optional, Sequence

import structlog

from setoff.domain.allocation_models import (
    AllocationError,
    AllocationMode,
    DecimalPolicy,
    ManualEditResult,
    OutstandingLine,
)
from setoff.utils.decimal_helpers import ZERO, sign, to_decimal

logger = structlog.get_logger()


def _allocated_on_side(
    lines: Sequence[OutstandingLine], row_index: int, side_sign: int
) -> Decimal:
    """Sum of |allocation| on the other lines whose balance has ``side_sign``."""
    return sum(
        (
            abs(line.allocated_amount)
            for index, line in enumerate(lines)
            if index != row_index and line.balance_sign == side_sign
        ),
        ZERO,
    )


def _side_capacity(
    lines: Sequence[OutstandingLine],
    row_index: int,
    balance: Decimal,
    mode: AllocationMode,
) -> Decimal:
    """
    Room left on the edited line's side of the settlement.

    In NETTING mode each side is bounded by the settlement balance. In
    AMOUNT mode debits may absorb the amount plus every allocated credit,
    while credits are bounded by what the debits already absorb.
    """
    if mode is not AllocationMode.AMOUNT:
        return abs(balance) - _allocated_on_side(lines, row_index, lines[row_index].balance_sign)

    other_debits = _allocated_on_side(lines, row_index, 1)
    other_credits = _allocated_on_side(lines, row_index, -1)
    if lines[row_index].is_debit:
        return abs(balance) + other_credits - other_debits
    return other_debits - other_credits


def validate_manual_edit(
    lines: Sequence[OutstandingLine],
    row_index: int,
    requested_amount: object,
    policy: DecimalPolicy,
    settlement_balance: Optional[object] = None,
    mode: AllocationMode = AllocationMode.NETTING,
) -> ManualEditResult:
    """
    Validate one user-edited allocation and return the clamped line.

    Rules, in order:
    1. The requested sign is corrected to the document balance's sign
    2. Re-entering the current allocation leaves the line unchanged
    3. With no remaining capacity the allocation is forced to zero
    4. The magnitude is clamped to the document balance (and to the
       settlement's remaining side capacity when a balance is supplied)

    The zero settlement balance guard belongs to the caller and is not
    checked here.

    Args:
        lines: Current line collection
        row_index: Position of the edited line in ``lines``
        requested_amount: Value typed by the user
        policy: Rounding policy of the session
        settlement_balance: Header balance constraining the edited side
        mode: NETTING bounds each side by the balance; AMOUNT lets debits
            absorb the amount plus the allocated credits

    Returns:
        ManualEditResult with the updated line and the auto-zero flag

    Raises:
        AllocationError: If row_index does not address a line
    """
    if not 0 <= row_index < len(lines):
        raise AllocationError(
            f"row_index {row_index} out of range for {len(lines)} line(s)"
        )

    line = lines[row_index]
    balance_sign = line.balance_sign
    balance_limit = abs(line.document_balance)
    requested = policy.round_amount(to_decimal(requested_amount))

    if requested != ZERO and sign(requested) != balance_sign:
        requested = -requested

    current = line.allocated_amount
    if requested == current and abs(current) <= balance_limit:
        return ManualEditResult(line=line, was_auto_set_to_zero=False)

    if requested == ZERO:
        return ManualEditResult(line=line.with_allocation(ZERO), was_auto_set_to_zero=False)

    capacity = balance_limit - abs(current)
    side_capacity = None
    balance = to_decimal(settlement_balance)
    if balance != ZERO:
        side_capacity = _side_capacity(lines, row_index, balance, mode)
        capacity = min(capacity, side_capacity)

    if capacity <= ZERO:
        logger.warning(
            "manual_allocation_auto_zeroed",
            line_no=line.line_no,
            requested_amount=str(requested),
            document_balance=str(line.document_balance),
        )
        return ManualEditResult(line=line.with_allocation(ZERO), was_auto_set_to_zero=True)

    limit = balance_limit if side_capacity is None else min(balance_limit, side_capacity)
    magnitude = min(abs(requested), policy.truncate_amount(limit))
    allocated = magnitude * balance_sign

    return ManualEditResult(line=line.with_allocation(allocated), was_auto_set_to_zero=False)
