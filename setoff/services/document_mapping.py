"""
Boundary mapping between module document shapes and OutstandingLine.

The document-selection service and the settlement detail records use
module-specific field names (AR set-off, CB payment, GL contra). Each is
mapped into one canonical ``OutstandingLine`` here and back out again, so
the engine never sees the module shapes.
"""

from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from setoff.domain.allocation_models import (
    AllocationTotals,
    DocumentRef,
    OutstandingLine,
)
from setoff.utils.decimal_helpers import ZERO, parse_decimal, to_decimal


def _pick(document: Mapping[str, Any], *keys: str) -> Optional[Any]:
    """Return the first present, non-None value among ``keys``."""
    for key in keys:
        value = document.get(key)
        if value is not None:
            return value
    return None


def _optional_decimal(value: Optional[Any]) -> Optional[Decimal]:
    return parse_decimal(value)


def _optional_str(value: Optional[Any]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def line_from_document(document: Mapping[str, Any], line_no: int) -> OutstandingLine:
    """
    Map an outstanding document into a fresh, unallocated line.

    Args:
        document: Outstanding document (camelCase or snake_case keys)
        line_no: Line number to assign

    Returns:
        OutstandingLine with allocated_amount = 0
    """
    transaction_id = _pick(document, "transactionId", "transaction_id")
    ref = DocumentRef(
        transaction_id=int(transaction_id) if transaction_id is not None else 0,
        document_id=str(_pick(document, "documentId", "document_id") or ""),
        document_no=str(_pick(document, "documentNo", "document_no") or ""),
        reference_no=_optional_str(_pick(document, "referenceNo", "reference_no")),
    )

    return OutstandingLine(
        line_no=line_no,
        document_ref=ref,
        document_currency_exchange_rate=to_decimal(
            _pick(document, "exhRate", "docExhRate", "exchange_rate")
        ),
        document_balance=to_decimal(_pick(document, "balAmt", "docBalAmt", "balance")),
        document_balance_local=to_decimal(
            _pick(document, "balLocalAmt", "docBalLocalAmt", "balance_local")
        ),
        edit_version=int(_pick(document, "editVersion", "edit_version") or 0),
        document_currency_code=_optional_str(
            _pick(document, "currencyCode", "docCurrencyCode", "currency_code")
        ),
        document_total=_optional_decimal(_pick(document, "totAmt", "docTotAmt", "total")),
        document_total_local=_optional_decimal(
            _pick(document, "totLocalAmt", "docTotLocalAmt", "total_local")
        ),
        account_date=_optional_str(_pick(document, "accountDate", "docAccountDate", "account_date")),
        due_date=_optional_str(_pick(document, "dueDate", "docDueDate", "due_date")),
    )


def line_to_detail(line: OutstandingLine) -> Dict[str, Any]:
    """Map a line back into the settlement detail record shape."""
    ref = line.document_ref
    return {
        "itemNo": line.line_no,
        "transactionId": ref.transaction_id,
        "documentId": ref.document_id,
        "documentNo": ref.document_no,
        "referenceNo": ref.reference_no or "",
        "docCurrencyCode": line.document_currency_code or "",
        "docExhRate": line.document_currency_exchange_rate,
        "docAccountDate": line.account_date,
        "docDueDate": line.due_date,
        "docTotAmt": line.document_total if line.document_total is not None else ZERO,
        "docTotLocalAmt": (
            line.document_total_local if line.document_total_local is not None else ZERO
        ),
        "docBalAmt": line.document_balance,
        "docBalLocalAmt": line.document_balance_local,
        "allocAmt": line.allocated_amount,
        "allocLocalAmt": line.allocated_amount_local,
        "allocCtyAmt": line.allocated_amount_city,
        "docAllocAmt": line.allocated_amount,
        "docAllocLocalAmt": line.document_allocated_local,
        "centDiff": line.cent_difference,
        "exhGainLoss": line.exchange_gain_loss,
        "editVersion": line.edit_version,
    }


def totals_to_header_fields(totals: AllocationTotals) -> Dict[str, Decimal]:
    """Map a totals record onto the header form field names."""
    fields = {
        "allocTotAmt": totals.allocated_total,
        "allocTotLocalAmt": totals.allocated_total_local,
        "exhGainLoss": totals.exchange_gain_loss_total,
        "unAllocTotAmt": totals.unallocated_total,
    }
    if totals.unallocated_total_local is not None:
        fields["unAllocTotLocalAmt"] = totals.unallocated_total_local
    return fields
