"""
Integration tests for the settlement allocation flow.

Tests the complete caller-side sequence through SettlementAllocationService:
- Selecting documents, auto allocation and header totals
- Manual edits, the zero balance guard and forced zeros
- Removing lines, reordering, resets and exchange rate changes
- Receipt / payment (fixed amount) allocation
"""

from decimal import Decimal

import pytest

from setoff.domain.allocation_models import (
    AllocationError,
    AllocationMode,
    DecimalPolicy,
    SettlementHeader,
)
from setoff.services.allocation_constants import (
    WARNING_AUTO_SET_TO_ZERO,
    WARNING_NO_DOCUMENTS,
    WARNING_ZERO_SETTLEMENT_BALANCE,
)
from setoff.services.allocation_service import (
    AllocationState,
    SettlementAllocationService,
)


@pytest.fixture
def service():
    return SettlementAllocationService(policy=DecimalPolicy(), mode=AllocationMode.NETTING)


@pytest.fixture
def payment_service():
    return SettlementAllocationService(policy=DecimalPolicy(), mode=AllocationMode.AMOUNT)


@pytest.fixture
def empty_state():
    return AllocationState(header=SettlementHeader(settlement_exchange_rate=Decimal("1.00")))


def document(document_no, balance, rate="1.05", balance_local=None):
    balance = Decimal(balance)
    if balance_local is None:
        balance_local = (balance * Decimal(rate)).quantize(Decimal("0.01"))
    return {
        "transactionId": 1,
        "documentId": document_no,
        "documentNo": document_no,
        "exhRate": rate,
        "balAmt": balance,
        "balLocalAmt": balance_local,
    }


@pytest.fixture
def setoff_state(service, empty_state):
    outcome = service.add_documents(
        empty_state,
        [document("INV-1", "1000.00"), document("CN-1", "-600.00")],
    )
    return outcome.state


def test_adding_documents_sets_limiting_balance(setoff_state):
    """
    Given: Invoice 1000.00 and credit note -600.00 selected
    When: They are added to an empty set-off
    Then: Lines are numbered 1..2, balance and unallocated are 600.00
    """
    header = setoff_state.header

    assert [line.line_no for line in setoff_state.lines] == [1, 2]
    assert all(line.allocated_amount == 0 for line in setoff_state.lines)
    assert header.settlement_balance == Decimal("600.00")
    assert header.unallocated_total == Decimal("600.00")
    assert header.allocated_total == Decimal("0")


def test_auto_allocation_nets_both_sides(service, setoff_state):
    """
    Given: The two selected documents at a settlement rate of 1.00
    When: Auto allocation runs
    Then: 600.00 is set off, gains and losses cancel, nothing stays unallocated
    """
    outcome = service.auto_allocate(setoff_state)
    invoice, credit_note = outcome.state.lines
    header = outcome.state.header

    assert invoice.allocated_amount == Decimal("600.00")
    assert credit_note.allocated_amount == Decimal("-600.00")
    assert invoice.exchange_gain_loss == Decimal("30.00")
    assert credit_note.exchange_gain_loss == Decimal("-30.00")
    assert header.allocated_total == Decimal("600.00")
    assert header.unallocated_total == Decimal("0.00")
    assert header.total_exchange_gain_loss == Decimal("0.00")
    assert outcome.warnings == ()


def test_operations_do_not_mutate_input(service, setoff_state):
    before = setoff_state

    service.auto_allocate(setoff_state)

    assert setoff_state is before
    assert all(line.allocated_amount == 0 for line in setoff_state.lines)


def test_manual_edit_on_fully_allocated_line_is_zeroed(service, setoff_state):
    allocated = service.auto_allocate(setoff_state).state

    outcome = service.edit_allocation(allocated, line_no=2, requested_amount="-500")

    assert outcome.was_auto_set_to_zero is True
    assert outcome.warnings == (WARNING_AUTO_SET_TO_ZERO,)
    assert outcome.state.lines[1].allocated_amount == Decimal("0")
    assert outcome.state.header.allocated_total == Decimal("0.00")
    assert outcome.state.header.unallocated_total == Decimal("600.00")


def test_manual_edit_recalculates_line_and_totals(service, setoff_state):
    allocated = service.auto_allocate(setoff_state).state

    outcome = service.edit_allocation(allocated, line_no=1, requested_amount=300)
    invoice = outcome.state.lines[0]

    assert invoice.allocated_amount == Decimal("300.00")
    assert invoice.allocated_amount_local == Decimal("300.00")
    assert invoice.exchange_gain_loss == Decimal("15.00")
    assert outcome.state.header.allocated_total == Decimal("300.00")
    assert outcome.state.header.unallocated_total == Decimal("300.00")


def test_zero_balance_guard_then_edit(service, empty_state):
    """
    Given: A single invoice of 500.00 and a settlement balance of 0
    When: 300 is entered, then the balance is set to 500 and 300 entered again
    Then: The first edit is rejected, the second allocates 300.00
    """
    state = service.add_documents(empty_state, [document("INV-9", "500.00")]).state
    assert state.header.settlement_balance == Decimal("0")

    rejected = service.edit_allocation(state, line_no=1, requested_amount=300)

    assert rejected.state is state
    assert rejected.warnings == (WARNING_ZERO_SETTLEMENT_BALANCE,)

    state = service.set_settlement_balance(state, "500").state
    accepted = service.edit_allocation(state, line_no=1, requested_amount=300)

    assert accepted.state.lines[0].allocated_amount == Decimal("300.00")
    assert accepted.was_auto_set_to_zero is False


def test_unknown_line_is_a_contract_violation(service, setoff_state):
    with pytest.raises(AllocationError):
        service.edit_allocation(setoff_state, line_no=99, requested_amount=10)


def test_removing_a_line_resets_and_retotals(service, setoff_state):
    allocated = service.auto_allocate(setoff_state).state

    outcome = service.remove_lines(allocated, [2])

    assert [line.line_no for line in outcome.state.lines] == [1]
    assert outcome.state.lines[0].allocated_amount == Decimal("0")
    assert outcome.state.header.settlement_balance == Decimal("0")
    assert outcome.state.header.allocated_total == Decimal("0")


def test_removing_unknown_line_changes_nothing(service, setoff_state):
    outcome = service.remove_lines(setoff_state, [42])

    assert outcome.state is setoff_state


def test_added_documents_continue_numbering(service, setoff_state):
    outcome = service.add_documents(setoff_state, [document("CN-2", "-500.00")])

    assert [line.line_no for line in outcome.state.lines] == [1, 2, 3]
    assert outcome.state.header.settlement_balance == Decimal("1000.00")


def test_reorder_keeps_amounts(service, setoff_state):
    allocated = service.auto_allocate(setoff_state).state

    outcome = service.reorder(allocated, [2, 1])

    assert [line.line_no for line in outcome.state.lines] == [2, 1]
    assert outcome.state.lines[0].allocated_amount == Decimal("-600.00")
    with pytest.raises(AllocationError):
        service.reorder(allocated, [1, 1])


def test_reset_allocation(service, setoff_state):
    allocated = service.auto_allocate(setoff_state).state

    outcome = service.reset_allocation(allocated)

    assert all(line.allocated_amount == 0 for line in outcome.state.lines)
    assert all(line.exchange_gain_loss == 0 for line in outcome.state.lines)
    assert outcome.state.header.unallocated_total == Decimal("600.00")


def test_exchange_rate_change_recalculates_all_lines(service, setoff_state):
    allocated = service.auto_allocate(setoff_state).state

    outcome = service.change_exchange_rate(allocated, "1.05")
    invoice, credit_note = outcome.state.lines

    assert outcome.state.header.settlement_exchange_rate == Decimal("1.050000")
    assert invoice.allocated_amount_local == Decimal("630.00")
    assert invoice.exchange_gain_loss == Decimal("0.00")
    assert credit_note.allocated_amount_local == Decimal("-630.00")


def test_auto_allocation_without_documents(service, empty_state):
    outcome = service.auto_allocate(empty_state)

    assert outcome.state is empty_state
    assert outcome.warnings == (WARNING_NO_DOCUMENTS,)


def test_payment_amount_allocated_first_fit(payment_service, empty_state):
    """
    Given: A payment of 700.00 at rate 1.10 against invoices of 500.00 and 400.00
    When: Auto allocation runs
    Then: 500.00 and 200.00 are allocated with matching local totals
    """
    state = payment_service.change_exchange_rate(empty_state, "1.10").state
    state = payment_service.set_settlement_balance(state, "700.00").state
    state = payment_service.add_documents(
        state,
        [document("INV-1", "500.00", rate="1.10"), document("INV-2", "400.00", rate="1.10")],
    ).state

    outcome = payment_service.auto_allocate(state)
    header = outcome.state.header

    assert [line.allocated_amount for line in outcome.state.lines] == [
        Decimal("500.00"),
        Decimal("200.00"),
    ]
    assert header.allocated_total == Decimal("700.00")
    assert header.allocated_total_local == Decimal("770.00")
    assert header.unallocated_total == Decimal("0.00")
    assert header.unallocated_total_local == Decimal("0.00")


def test_zero_payment_adopts_allocated_total(payment_service, empty_state):
    state = payment_service.add_documents(
        empty_state, [document("INV-1", "150.00"), document("CN-1", "-50.00")]
    ).state

    outcome = payment_service.auto_allocate(state)

    assert outcome.state.header.settlement_balance == Decimal("100.00")
    assert outcome.state.header.allocated_total == Decimal("100.00")
    assert outcome.state.header.unallocated_total == Decimal("0.00")


def test_payment_manual_edit_counts_allocated_credits(payment_service, empty_state):
    """
    Given: A payment of 100.00 against invoice 500.00 and credit note -300.00,
           auto allocated to 400.00 / -300.00
    When: The invoice allocation is lowered to 399.00
    Then: The edit is kept and 1.00 of the payment is left unallocated
    """
    state = payment_service.set_settlement_balance(empty_state, "100.00").state
    state = payment_service.add_documents(
        state, [document("INV-1", "500.00"), document("CN-1", "-300.00")]
    ).state
    state = payment_service.auto_allocate(state).state
    assert [line.allocated_amount for line in state.lines] == [
        Decimal("400.00"),
        Decimal("-300.00"),
    ]

    outcome = payment_service.edit_allocation(state, 1, "399.00")
    header = outcome.state.header

    assert outcome.state.lines[0].allocated_amount == Decimal("399.00")
    assert outcome.was_auto_set_to_zero is False
    assert header.allocated_total == Decimal("99.00")
    assert header.unallocated_total == Decimal("1.00")


@pytest.mark.parametrize("rate", ["", "0", 0])
def test_blank_or_zero_exchange_rate_stored_as_one(service, setoff_state, rate):
    allocated = service.auto_allocate(setoff_state).state

    outcome = service.change_exchange_rate(allocated, rate)
    header = outcome.state.header
    invoice, _ = outcome.state.lines

    assert header.settlement_exchange_rate == Decimal("1")
    assert header.settlement_balance_local == Decimal("600.00")
    assert invoice.allocated_amount_local == Decimal("600.00")
    assert invoice.exchange_gain_loss == Decimal("30.00")
