"""
Settlement Allocation Service - caller-side orchestration of the engine.

This service handles:
- Adding and removing outstanding documents
- Auto allocation (set-off netting or fixed settlement amount)
- Manual allocation edits with the zero-balance guard
- Exchange rate changes and allocation resets
- Refreshing header totals after every change

Every operation takes an immutable AllocationState and returns a new one
inside an AllocationOutcome, so the caller owns history and dirty-tracking.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence, Tuple, Union

from setoff.core.config import Config
from setoff.domain.allocation_models import (
    AllocationError,
    AllocationMode,
    DecimalPolicy,
    OutstandingLine,
    SettlementHeader,
    ensure_unique_line_nos,
)
from setoff.services.allocation_constants import (
    WARNING_AUTO_SET_TO_ZERO,
    WARNING_NO_DOCUMENTS,
    WARNING_ZERO_SETTLEMENT_BALANCE,
)
from setoff.services.auto_allocator import allocate_settlement_amount, auto_allocate
from setoff.services.document_mapping import line_from_document
from setoff.services.line_recalculator import (
    recalc_all,
    recalc_local_and_gain_loss,
    resolve_settlement_rate,
)
from setoff.services.manual_allocation import validate_manual_edit
from setoff.services.net_totals import compute_totals, limiting_total
from setoff.utils.decimal_helpers import ZERO, to_decimal
from setoff.utils.logging_config import get_logger

logger = get_logger(__name__)

DocumentInput = Union[Mapping[str, object], OutstandingLine]


@dataclass(frozen=True)
class AllocationState:
    """Snapshot of one settlement: header fields plus its outstanding lines."""

    header: SettlementHeader
    lines: Tuple[OutstandingLine, ...] = ()

    def line_index(self, line_no: int) -> int:
        """
        Position of a line in the collection.

        Raises:
            AllocationError: If no line carries ``line_no``
        """
        for index, line in enumerate(self.lines):
            if line.line_no == line_no:
                return index
        raise AllocationError(f"Line {line_no} not found in settlement")


@dataclass(frozen=True)
class AllocationOutcome:
    """
    Result of one service operation.

    Attributes:
        state: New allocation state
        warnings: Messages for the user (forced corrections, rejected edits)
        was_auto_set_to_zero: True when a manual edit was forced to zero
    """

    state: AllocationState
    warnings: Tuple[str, ...] = ()
    was_auto_set_to_zero: bool = False


class SettlementAllocationService:
    """Service running the allocation engine for one settlement module."""

    def __init__(
        self,
        policy: Optional[DecimalPolicy] = None,
        mode: Optional[AllocationMode] = None,
    ):
        """
        Initialize the allocation service.

        Args:
            policy: Rounding policy shared by header and lines
                (defaults to DecimalPolicy.from_config())
            mode: NETTING for set-off/contra, AMOUNT for receipt/payment
                (defaults to Config.ALLOCATION_MODE)
        """
        self.policy = policy or DecimalPolicy.from_config()
        self.mode = mode or AllocationMode(Config.ALLOCATION_MODE)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _recalc_lines(
        self, header: SettlementHeader, lines: Iterable[OutstandingLine]
    ) -> Tuple[OutstandingLine, ...]:
        return recalc_all(
            lines,
            header.settlement_exchange_rate,
            self.policy,
            header.settlement_city_exchange_rate,
        )

    def _with_balance(self, header: SettlementHeader, balance: Decimal) -> SettlementHeader:
        balance = self.policy.round_amount(balance)
        return replace(
            header,
            settlement_balance=balance,
            settlement_balance_local=self.policy.round_local(
                balance * resolve_settlement_rate(header.settlement_exchange_rate, self.policy)
            ),
        )

    def refresh_totals(self, state: AllocationState) -> AllocationState:
        """Recompute header totals from the current lines."""
        header = state.header
        totals = compute_totals(
            state.lines,
            header.settlement_balance,
            self.policy,
            settlement_balance_local=(
                header.settlement_balance_local
                if self.mode is AllocationMode.AMOUNT
                else None
            ),
            mode=self.mode,
        )
        return replace(state, header=header.with_totals(totals))

    # ------------------------------------------------------------------
    # Document selection
    # ------------------------------------------------------------------

    def add_documents(
        self, state: AllocationState, documents: Iterable[DocumentInput]
    ) -> AllocationOutcome:
        """
        Append selected outstanding documents as unallocated lines.

        Line numbers continue after the highest existing one. For a set-off
        the settlement balance becomes the limiting total of all balances.

        Args:
            state: Current state
            documents: Document mappings or prepared OutstandingLines

        Returns:
            AllocationOutcome with the extended collection
        """
        next_line_no = max((line.line_no for line in state.lines), default=0) + 1

        new_lines = []
        for offset, document in enumerate(documents):
            line_no = next_line_no + offset
            if isinstance(document, OutstandingLine):
                line = replace(
                    document,
                    line_no=line_no,
                    allocated_amount=ZERO,
                )
            else:
                line = line_from_document(document, line_no)
            new_lines.append(line)

        if not new_lines:
            return AllocationOutcome(state=state)

        header = state.header
        lines = state.lines + self._recalc_lines(header, new_lines)
        ensure_unique_line_nos(lines)

        if self.mode is AllocationMode.NETTING:
            header = self._with_balance(header, limiting_total(lines, self.policy))

        logger.info(
            "outstanding_documents_added",
            added=len(new_lines),
            line_count=len(lines),
            settlement_balance=str(header.settlement_balance),
        )

        new_state = self.refresh_totals(AllocationState(header=header, lines=lines))
        return AllocationOutcome(state=new_state)

    def remove_lines(
        self, state: AllocationState, line_nos: Iterable[int]
    ) -> AllocationOutcome:
        """
        Remove lines and reset the remaining allocations.

        Unknown line numbers are ignored. The remaining lines start over
        from zero allocations.
        """
        to_remove = set(line_nos)
        remaining = tuple(line for line in state.lines if line.line_no not in to_remove)
        if len(remaining) == len(state.lines):
            return AllocationOutcome(state=state)

        header = state.header
        reset = self._recalc_lines(
            header, (line.with_allocation(ZERO) for line in remaining)
        )

        if self.mode is AllocationMode.NETTING:
            header = self._with_balance(header, limiting_total(reset, self.policy))

        logger.info(
            "outstanding_lines_removed",
            removed=len(state.lines) - len(remaining),
            line_count=len(reset),
        )

        new_state = self.refresh_totals(AllocationState(header=header, lines=reset))
        return AllocationOutcome(state=new_state)

    def reorder(self, state: AllocationState, line_nos: Sequence[int]) -> AllocationOutcome:
        """
        Change display order without touching any amount.

        Raises:
            AllocationError: If ``line_nos`` is not exactly the current set
        """
        if len(line_nos) != len(state.lines) or set(line_nos) != {
            line.line_no for line in state.lines
        }:
            raise AllocationError("Reorder must list every line exactly once")

        by_no = {line.line_no: line for line in state.lines}
        lines = tuple(by_no[line_no] for line_no in line_nos)
        return AllocationOutcome(state=replace(state, lines=lines))

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def auto_allocate(self, state: AllocationState) -> AllocationOutcome:
        """
        Allocate every line automatically.

        When the header settlement balance is zero, the applied total is
        adopted as the new settlement balance.
        """
        if not state.lines:
            return AllocationOutcome(state=state, warnings=(WARNING_NO_DOCUMENTS,))

        header = state.header
        if self.mode is AllocationMode.AMOUNT:
            result = allocate_settlement_amount(
                state.lines, header.settlement_balance, self.policy
            )
        else:
            result = auto_allocate(state.lines, self.policy)

        lines = self._recalc_lines(header, result.lines)

        if header.settlement_balance == ZERO:
            header = self._with_balance(header, result.applied_total)

        logger.info(
            "auto_allocation_applied",
            mode=self.mode.value,
            applied_total=str(result.applied_total),
            settlement_balance=str(header.settlement_balance),
            line_count=len(lines),
        )

        new_state = self.refresh_totals(AllocationState(header=header, lines=lines))
        return AllocationOutcome(state=new_state)

    def edit_allocation(
        self, state: AllocationState, line_no: int, requested_amount: object
    ) -> AllocationOutcome:
        """
        Apply a manual allocation edit to one line.

        Args:
            state: Current state
            line_no: Line being edited
            requested_amount: Value typed by the user

        Returns:
            AllocationOutcome; a zero settlement balance rejects the edit and
            leaves the state unchanged

        Raises:
            AllocationError: If the line does not exist
        """
        row_index = state.line_index(line_no)
        header = state.header

        if header.settlement_balance == ZERO:
            logger.warning(
                "manual_allocation_rejected_zero_balance",
                line_no=line_no,
                requested_amount=str(requested_amount),
            )
            return AllocationOutcome(
                state=state, warnings=(WARNING_ZERO_SETTLEMENT_BALANCE,)
            )

        result = validate_manual_edit(
            state.lines,
            row_index,
            requested_amount,
            self.policy,
            settlement_balance=header.settlement_balance,
            mode=self.mode,
        )
        if result.line is state.lines[row_index]:
            return AllocationOutcome(state=state)

        line = recalc_local_and_gain_loss(
            result.line,
            header.settlement_exchange_rate,
            self.policy,
            header.settlement_city_exchange_rate,
        )
        lines = state.lines[:row_index] + (line,) + state.lines[row_index + 1 :]
        new_state = self.refresh_totals(replace(state, lines=lines))

        warnings = (WARNING_AUTO_SET_TO_ZERO,) if result.was_auto_set_to_zero else ()
        return AllocationOutcome(
            state=new_state,
            warnings=warnings,
            was_auto_set_to_zero=result.was_auto_set_to_zero,
        )

    def reset_allocation(self, state: AllocationState) -> AllocationOutcome:
        """Zero every allocation and refresh the totals."""
        if not state.lines:
            return AllocationOutcome(state=state)

        lines = self._recalc_lines(
            state.header, (line.with_allocation(ZERO) for line in state.lines)
        )
        logger.info("allocation_reset", line_count=len(lines))
        return AllocationOutcome(state=self.refresh_totals(replace(state, lines=lines)))

    # ------------------------------------------------------------------
    # Header changes
    # ------------------------------------------------------------------

    def set_settlement_balance(
        self, state: AllocationState, amount: object
    ) -> AllocationOutcome:
        """Set the header balance entered by the user and refresh totals."""
        header = self._with_balance(state.header, to_decimal(amount))
        return AllocationOutcome(state=self.refresh_totals(replace(state, header=header)))

    def change_exchange_rate(
        self,
        state: AllocationState,
        settlement_exchange_rate: object,
        city_exchange_rate: Optional[object] = None,
    ) -> AllocationOutcome:
        """
        Apply a new settlement rate (currency or date change).

        Every line is recalculated because local amounts and gain/loss
        depend on the settlement rate.
        A blank or zero settlement rate is stored as 1.
        """
        rate = resolve_settlement_rate(settlement_exchange_rate, self.policy)
        city_rate = (
            self.policy.round_rate(to_decimal(city_exchange_rate))
            if city_exchange_rate is not None
            else None
        )
        header = replace(
            state.header,
            settlement_exchange_rate=rate,
            settlement_city_exchange_rate=city_rate,
        )
        header = self._with_balance(header, header.settlement_balance)
        lines = self._recalc_lines(header, state.lines)

        logger.info(
            "exchange_rate_changed",
            settlement_exchange_rate=str(rate),
            city_exchange_rate=str(city_rate) if city_rate is not None else None,
            line_count=len(lines),
        )

        new_state = self.refresh_totals(AllocationState(header=header, lines=lines))
        return AllocationOutcome(state=new_state)
