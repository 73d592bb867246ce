"""
Header totals for an allocation session.

For a set-off the net effect is the smaller of the two sides:
``allocated_total = min(sum of positive allocations, sum of |negative allocations|)``.
A receipt or payment instead reports the net sum of its allocations.
"""

from decimal import Decimal
from typing import Iterable, Optional

from setoff.domain.allocation_models import (
    AllocationMode,
    AllocationTotals,
    DecimalPolicy,
    OutstandingLine,
)
from setoff.utils.decimal_helpers import ZERO, to_decimal


def limiting_total(lines: Iterable[OutstandingLine], policy: DecimalPolicy) -> Decimal:
    """Largest amount that can be set off: min(debit balances, |credit balances|).

    Each balance is truncated to amount precision first, as auto allocation does.
    """
    positive = ZERO
    negative_abs = ZERO
    for line in lines:
        magnitude = policy.truncate_amount(abs(line.document_balance))
        if line.is_debit:
            positive += magnitude
        elif line.is_credit:
            negative_abs += magnitude
    return min(positive, negative_abs)


def compute_totals(
    lines: Iterable[OutstandingLine],
    settlement_balance: object,
    policy: DecimalPolicy,
    settlement_balance_local: Optional[object] = None,
    mode: AllocationMode = AllocationMode.NETTING,
) -> AllocationTotals:
    """
    Aggregate line allocations into header totals.

    Args:
        lines: Current line collection
        settlement_balance: Header balance available to allocate
        policy: Rounding policy of the session
        settlement_balance_local: Optional header balance in local currency;
            when given the unallocated local remainder is reported too
        mode: NETTING (min of both sides) or AMOUNT (net sum)

    Returns:
        AllocationTotals record for the caller to store into the header
    """
    positive_sum = ZERO
    negative_abs_sum = ZERO
    net_sum = ZERO
    local_sum = ZERO
    gain_loss_sum = ZERO

    for line in lines:
        amount = line.allocated_amount
        if amount > ZERO:
            positive_sum += amount
        elif amount < ZERO:
            negative_abs_sum += -amount
        net_sum += amount
        local_sum += line.allocated_amount_local
        gain_loss_sum += line.exchange_gain_loss

    positive_sum = policy.round_amount(positive_sum)
    negative_abs_sum = policy.round_amount(negative_abs_sum)

    if mode is AllocationMode.AMOUNT:
        allocated_total = policy.round_amount(net_sum)
    else:
        allocated_total = min(positive_sum, negative_abs_sum)

    allocated_total_local = policy.round_local(local_sum)

    unallocated_local = None
    if settlement_balance_local is not None:
        unallocated_local = policy.round_local(
            to_decimal(settlement_balance_local) - allocated_total_local
        )

    return AllocationTotals(
        allocated_total=allocated_total,
        allocated_total_local=allocated_total_local,
        exchange_gain_loss_total=policy.round_local(gain_loss_sum),
        unallocated_total=policy.round_amount(
            to_decimal(settlement_balance) - allocated_total
        ),
        positive_sum=positive_sum,
        negative_abs_sum=negative_abs_sum,
        unallocated_total_local=unallocated_local,
    )
