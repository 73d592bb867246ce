"""
Automatic allocation of a settlement across outstanding documents.

Two strategies are provided:
- ``auto_allocate``: set-off / contra netting. Debit documents are offset
  against credit documents up to the smaller side.
- ``allocate_settlement_amount``: receipt / payment. A fixed settlement
  amount is applied first-fit in document order.

Both return new line tuples and never touch derived local fields; callers
run the line recalculator afterwards.
"""

from decimal import Decimal
from typing import Iterable, List, Sequence, Tuple

import structlog

from setoff.domain.allocation_models import (
    AutoAllocationResult,
    DecimalPolicy,
    OutstandingLine,
)
from setoff.utils.decimal_helpers import ZERO, to_decimal

logger = structlog.get_logger()


def _capacity(line: OutstandingLine, policy: DecimalPolicy) -> Decimal:
    """Largest magnitude a line can take at amount precision (never above its balance)."""
    return policy.truncate_amount(abs(line.document_balance))


def _scale_side(
    magnitudes: Sequence[Decimal], target: Decimal, policy: DecimalPolicy
) -> List[Decimal]:
    """
    Scale a side's capacities down so they sum exactly to ``target``.

    Each share is proportional to the line's part of the side total and
    rounded half-up. The rounding residual is then moved one line at a time
    from the first line onward, never past a line's own balance or below zero.
    """
    total = sum(magnitudes, ZERO)
    if target >= total:
        return list(magnitudes)
    if target <= ZERO or total == ZERO:
        return [ZERO for _ in magnitudes]

    shares = [min(policy.round_amount(m * target / total), m) for m in magnitudes]
    residual = target - sum(shares, ZERO)

    for index, magnitude in enumerate(magnitudes):
        if residual == ZERO:
            break
        if residual > ZERO:
            step = min(residual, magnitude - shares[index])
        else:
            step = -min(-residual, shares[index])
        shares[index] += step
        residual -= step

    return shares


def auto_allocate(
    lines: Iterable[OutstandingLine], policy: DecimalPolicy
) -> AutoAllocationResult:
    """
    Net debit documents against credit documents.

    This method:
    1. Partitions lines into debits and credits, keeping original order
    2. Proposes a full allocation of every balance, truncated to amount precision
    3. Matches the two sides at min(debit total, credit total)
    4. Scales the larger side back proportionally to the matched amount

    Lines with a zero balance keep a zero allocation.

    Args:
        lines: Outstanding lines in display order
        policy: Rounding policy of the session

    Returns:
        AutoAllocationResult with the new lines and the matched (applied) total
    """
    lines = tuple(lines)
    if not lines:
        return AutoAllocationResult(lines=(), applied_total=ZERO)

    debit_idx = [i for i, line in enumerate(lines) if line.is_debit]
    credit_idx = [i for i, line in enumerate(lines) if line.is_credit]

    debit_full = [_capacity(lines[i], policy) for i in debit_idx]
    credit_full = [_capacity(lines[i], policy) for i in credit_idx]

    debit_total = sum(debit_full, ZERO)
    credit_total = sum(credit_full, ZERO)
    matched = min(debit_total, credit_total)

    allocations = [ZERO] * len(lines)
    for i, amount in zip(debit_idx, _scale_side(debit_full, matched, policy)):
        allocations[i] = amount
    for i, amount in zip(credit_idx, _scale_side(credit_full, matched, policy)):
        allocations[i] = -amount

    updated = tuple(
        line.with_allocation(amount) for line, amount in zip(lines, allocations)
    )

    logger.debug(
        "auto_allocation_computed",
        debit_total=str(debit_total),
        credit_total=str(credit_total),
        applied_total=str(matched),
        line_count=len(updated),
    )

    return AutoAllocationResult(lines=updated, applied_total=matched)


def _first_fit(magnitudes: Sequence[Decimal], pool: Decimal) -> Tuple[List[Decimal], Decimal]:
    """Fill magnitudes in order from ``pool``; return fills and what is left."""
    fills = []
    for magnitude in magnitudes:
        take = min(magnitude, pool) if pool > ZERO else ZERO
        fills.append(take)
        pool -= take
    return fills, pool


def allocate_settlement_amount(
    lines: Iterable[OutstandingLine], settlement_amount: object, policy: DecimalPolicy
) -> AutoAllocationResult:
    """
    Apply a fixed settlement amount (receipt, payment) first-fit.

    A zero amount allocates every document in full. Otherwise credit
    documents are used first, only up to what the debit documents can
    absorb, and the amount plus the used credits is then filled into the
    debit documents in order.

    Args:
        lines: Outstanding lines in display order
        settlement_amount: Amount received or paid, in settlement currency
        policy: Rounding policy of the session

    Returns:
        AutoAllocationResult whose applied_total is the net allocated sum
    """
    lines = tuple(lines)
    if not lines:
        return AutoAllocationResult(lines=(), applied_total=ZERO)

    amount = policy.round_amount(abs(to_decimal(settlement_amount)))

    if amount == ZERO:
        updated = tuple(
            line.with_allocation(_capacity(line, policy) * line.balance_sign) for line in lines
        )
        applied = policy.round_amount(sum((line.allocated_amount for line in updated), ZERO))
        return AutoAllocationResult(lines=updated, applied_total=applied)

    debit_idx = [i for i, line in enumerate(lines) if line.is_debit]
    credit_idx = [i for i, line in enumerate(lines) if line.is_credit]
    debit_full = [_capacity(lines[i], policy) for i in debit_idx]
    credit_full = [_capacity(lines[i], policy) for i in credit_idx]

    credit_fills, _ = _first_fit(credit_full, sum(debit_full, ZERO))
    used_credits = sum(credit_fills, ZERO)
    debit_fills, _ = _first_fit(debit_full, amount + used_credits)

    allocations = [ZERO] * len(lines)
    for i, fill in zip(debit_idx, debit_fills):
        allocations[i] = fill
    for i, fill in zip(credit_idx, credit_fills):
        allocations[i] = -fill

    updated = tuple(
        line.with_allocation(value) for line, value in zip(lines, allocations)
    )
    applied = policy.round_amount(sum(allocations, ZERO))

    logger.debug(
        "settlement_amount_allocated",
        settlement_amount=str(amount),
        applied_total=str(applied),
        line_count=len(updated),
    )

    return AutoAllocationResult(lines=updated, applied_total=applied)


__all__ = ["auto_allocate", "allocate_settlement_amount"]
