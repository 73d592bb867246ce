"""
Line recalculation: local-currency equivalents and exchange gain/loss.

For one line the allocated amount is valued twice:
- at the settlement rate -> ``allocated_amount_local``
- at the document's own rate -> ``document_allocated_local``

The difference is the exchange gain/loss of the allocated portion. Only
derived fields are touched; ``allocated_amount`` and ``document_balance``
are never changed here.
"""

from dataclasses import replace
from decimal import Decimal
from typing import Iterable, Optional, Tuple

import structlog

from setoff.domain.allocation_models import DecimalPolicy, OutstandingLine
from setoff.services.allocation_constants import DEFAULT_EXCHANGE_RATE
from setoff.utils.decimal_helpers import ZERO, to_decimal

logger = structlog.get_logger()


def _cent_difference(
    line: OutstandingLine, document_local_share: Decimal, policy: DecimalPolicy
) -> Decimal:
    """Residual between the document's book local balance and its converted share.

    Only a line allocated for its full balance carries a cent difference.
    """
    if line.allocated_amount == ZERO or line.document_balance_local == ZERO:
        return ZERO
    if line.allocated_amount != line.document_balance:
        return ZERO
    return policy.round_local(line.document_balance_local - document_local_share)


def resolve_settlement_rate(settlement_exchange_rate: object, policy: DecimalPolicy) -> Decimal:
    """Settlement rate at rate precision; a blank or zero rate means 1."""
    rate = policy.round_rate(to_decimal(settlement_exchange_rate))
    return rate if rate != ZERO else DEFAULT_EXCHANGE_RATE


def recalc_local_and_gain_loss(
    line: OutstandingLine,
    settlement_exchange_rate: object,
    policy: DecimalPolicy,
    city_exchange_rate: Optional[object] = None,
) -> OutstandingLine:
    """
    Recompute the derived local fields of a line.

    Args:
        line: Line whose allocated amount has just changed
        settlement_exchange_rate: Current settlement exchange rate; blank or zero
            is treated as 1
        policy: Rounding policy of the session
        city_exchange_rate: Optional secondary local currency rate; the
            settlement rate is used when absent

    Returns:
        New line with allocated_amount_local, allocated_amount_city,
        document_allocated_local, exchange_gain_loss and cent_difference set
    """
    rate = resolve_settlement_rate(settlement_exchange_rate, policy)
    document_rate = policy.round_rate(to_decimal(line.document_currency_exchange_rate))

    city_rate = to_decimal(city_exchange_rate)
    city_rate = policy.round_rate(city_rate) if city_rate != ZERO else rate

    allocated = line.allocated_amount
    allocated_local = policy.round_local(allocated * rate)
    document_local_share = policy.round_local(allocated * document_rate)

    return replace(
        line,
        allocated_amount_local=allocated_local,
        allocated_amount_city=policy.round_city(allocated * city_rate),
        document_allocated_local=document_local_share,
        exchange_gain_loss=policy.round_local(document_local_share - allocated_local),
        cent_difference=_cent_difference(line, document_local_share, policy),
    )


def recalc_all(
    lines: Iterable[OutstandingLine],
    settlement_exchange_rate: object,
    policy: DecimalPolicy,
    city_exchange_rate: Optional[object] = None,
) -> Tuple[OutstandingLine, ...]:
    """Recalculate every line, e.g. after a rate change or an auto-allocation."""
    updated = tuple(
        recalc_local_and_gain_loss(line, settlement_exchange_rate, policy, city_exchange_rate)
        for line in lines
    )
    logger.debug(
        "lines_recalculated",
        line_count=len(updated),
        settlement_exchange_rate=str(settlement_exchange_rate),
    )
    return updated
