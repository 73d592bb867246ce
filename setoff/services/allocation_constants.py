"""
Shared constants for set-off allocation workflows.

Keeping warning texts in one place keeps the service and its callers
reporting forced corrections the same way.
"""

from decimal import Decimal

DEFAULT_EXCHANGE_RATE = Decimal("1")

WARNING_ZERO_SETTLEMENT_BALANCE = (
    "Balance Amount is zero. Cannot manually allocate. "
    "Please use Auto Allocation or enter Balance Amount."
)
WARNING_AUTO_SET_TO_ZERO = "Now it's auto set to zero. Please check the allocation."
WARNING_NO_DOCUMENTS = "No outstanding documents to allocate."
