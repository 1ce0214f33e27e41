"""
Invoice adapter between the backend API shape and the invoice builder forms.

The backend has renamed several invoice fields over time, so each concept is
read through an ordered list of accepted keys. The orders below are the
single source of truth for which legacy name wins.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from invoice_ops.customer_adapter import format_address
from invoice_ops.utils import (
    Clock,
    as_dict,
    first_present,
    first_truthy,
    normalize_reference,
    parse_date,
    reference_id,
    system_clock,
    to_number,
)

logger = logging.getLogger(__name__)

DEFAULT_STATUS = 'draft'
DEFAULT_CURRENCY = 'USD'
DEFAULT_TAX_NAME = 'Tax'
DEFAULT_DISCOUNT_TYPE = 'fixed'

# Accepted keys per concept, highest priority first
LINE_ITEM_LIST_KEYS = ('items', 'lineItems')
PAYLOAD_LINE_ITEM_LIST_KEYS = ('lineItems', 'items')
ISSUE_DATE_KEYS = ('date', 'issueDate', 'createdAt')
DUE_DATE_KEYS = ('dueDate', 'due')
INVOICE_NUMBER_KEYS = ('invoiceNumber', 'number')
TAX_AMOUNT_KEYS = ('taxAmount', 'tax.amount', 'tax')
TAX_RATE_KEYS = ('taxRateUsed', 'tax.percentage')
TAX_NAME_KEYS = ('taxName', 'tax.description')
TOTAL_KEYS = ('total', 'totalAmount', 'amount')
SENT_DATE_KEYS = ('sentDate', 'sentAt')

ITEM_QUANTITY_KEYS = ('quantity', 'qty')
ITEM_RATE_KEYS = ('unitPrice', 'rate', 'unit')
ITEM_TAX_KEYS = ('taxRate', 'tax')
ITEM_AMOUNT_KEYS = ('total', 'amount')

# Form fields use the UI names first
PAYLOAD_ITEM_RATE_KEYS = ('rate', 'unitPrice', 'unit')
PAYLOAD_ITEM_TAX_KEYS = ('tax', 'taxRate')


def _resolve_items(source: Dict[str, Any], keys) -> List[Any]:
    """Return the first value under ``keys`` that is a list, else []."""
    for key in keys:
        value = source.get(key)
        if isinstance(value, list):
            return value
    return []


def _map_line_item(item: Any, index: int) -> Dict[str, Any]:
    item = as_dict(item)

    quantity = to_number(first_present(item, *ITEM_QUANTITY_KEYS, default=1), 1)
    rate = to_number(first_present(item, *ITEM_RATE_KEYS, default=0), 0)
    derived_amount = to_number(quantity * rate, 0)

    return {
        'id': first_truthy(item, '_id', 'id', default=index),
        'description': first_truthy(item, 'description', 'name', default=''),
        'quantity': quantity,
        'rate': rate,
        'tax': to_number(first_present(item, *ITEM_TAX_KEYS, default=0), 0),
        'amount': to_number(first_present(item, *ITEM_AMOUNT_KEYS, default=derived_amount), derived_amount),
        'productId': reference_id(item.get('product')) or item.get('productId') or '',
        'sku': item.get('sku') or '',
    }


def map_invoice_from_api(invoice: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Normalize an invoice returned by the API into the form/table shape.

    Never raises. Every documented key is present in the result, with
    numbers defaulting to 0 and strings to ''. Customer fields are flattened
    next to the nested ``customer`` object, and the untouched source is kept
    under ``raw``.

    Args:
        invoice: Invoice document as returned by the API (possibly partial).

    Returns:
        Normalized invoice dictionary.
    """
    invoice = as_dict(invoice)

    embedded_customer = invoice.get('customer') if isinstance(invoice.get('customer'), dict) else None
    items = _resolve_items(invoice, LINE_ITEM_LIST_KEYS)
    line_items = [_map_line_item(item, index) for index, item in enumerate(items)]

    total_tax = to_number(first_present(invoice, *TAX_AMOUNT_KEYS))
    total_amount = to_number(first_present(invoice, *TOTAL_KEYS))
    amount_paid = to_number(invoice.get('amountPaid'))
    balance = to_number(invoice.get('balance'), to_number(total_amount - amount_paid, 0))
    invoice_number = first_truthy(invoice, *INVOICE_NUMBER_KEYS, default='')

    return {
        'id': first_truthy(invoice, '_id', 'id', default=''),
        'invoiceNumber': invoice_number,
        'number': invoice_number,
        'status': invoice.get('status') or DEFAULT_STATUS,
        'issueDate': first_truthy(invoice, *ISSUE_DATE_KEYS, default=''),
        'dueDate': first_truthy(invoice, *DUE_DATE_KEYS, default=''),
        'createdAt': invoice.get('createdAt') or '',
        'customer': embedded_customer or invoice.get('customer') or None,
        'customerId': reference_id(invoice.get('customer')) or invoice.get('customerId') or '',
        'customerName': first_truthy(invoice, 'customer.name', 'customerName', default=''),
        'customerEmail': first_truthy(invoice, 'customer.email', 'customerEmail', default=''),
        'customerPhone': first_truthy(invoice, 'customer.phone', 'customerPhone', default=''),
        'customerAddress': format_address(first_truthy(invoice, 'customer.address', 'customerAddress')),
        'lineItems': line_items,
        'items': items,
        'subtotal': to_number(invoice.get('subtotal')),
        'totalTax': total_tax,
        'taxAmount': total_tax,
        'taxRateUsed': to_number(first_present(invoice, *TAX_RATE_KEYS, default=0)),
        'taxName': first_truthy(invoice, *TAX_NAME_KEYS, default=DEFAULT_TAX_NAME),
        'isTaxOverridden': bool(invoice.get('isTaxOverridden')),
        'totalAmount': total_amount,
        'amountPaid': amount_paid,
        'balance': balance,
        'currency': invoice.get('currency') or DEFAULT_CURRENCY,
        'paymentTerms': invoice.get('paymentTerms') or '',
        'notes': invoice.get('notes') or '',
        'terms': invoice.get('terms') or '',
        'raw': invoice,
    }


def _build_line_item(item: Any) -> Dict[str, Any]:
    item = as_dict(item)

    quantity = to_number(first_present(item, *ITEM_QUANTITY_KEYS, default=1), 1)
    unit_price = to_number(first_present(item, *PAYLOAD_ITEM_RATE_KEYS, default=0), 0)
    tax_rate = to_number(first_present(item, *PAYLOAD_ITEM_TAX_KEYS, default=0), 0)

    line_subtotal = to_number(quantity * unit_price, 0)
    line_tax = line_subtotal * (tax_rate / 100)
    line_total = to_number(line_subtotal + line_tax, 0)

    payload_item: Dict[str, Any] = {
        'description': first_truthy(item, 'description', 'name', default=''),
        'quantity': quantity,
        'unitPrice': unit_price,
        'taxRate': tax_rate,
        'total': to_number(item.get('amount'), line_total),
    }

    product_id = normalize_reference(item.get('productId') or reference_id(item.get('product')))
    if product_id:
        payload_item['product'] = product_id

    if item.get('sku'):
        payload_item['sku'] = item['sku']

    discount = to_number(item.get('discount'), 0)
    if discount > 0:
        payload_item['discount'] = discount
        if item.get('discountType'):
            payload_item['discountType'] = item['discountType']

    return payload_item


def _optional_date(value: Any, field: str) -> Optional[datetime]:
    if not value:
        return None
    parsed = parse_date(value)
    if parsed is None:
        logger.debug("Dropping unparsable %s %r from invoice payload", field, value)
    return parsed


def build_invoice_payload(
    invoice_data: Optional[Dict[str, Any]] = None,
    clock: Clock = system_clock,
) -> Dict[str, Any]:
    """
    Build the API payload for creating or updating an invoice.

    Line totals are computed as ``quantity * unitPrice * (1 + taxRate/100)``
    unless the form supplied an explicit ``amount``. Absent dates are left
    out rather than defaulted, except ``sentDate``, which is stamped with
    ``clock()`` when the status is ``'sent'`` and no sent time was given.
    ``taxRateUsed`` and ``taxAmount`` are only included when the form set
    them, so the API can tell "not set" from zero.

    Args:
        invoice_data: Invoice-like dict from a form or from
            :func:`map_invoice_from_api`.
        clock: Callable returning the current time.

    Returns:
        Payload dictionary. Keys with no value are omitted.
    """
    invoice_data = as_dict(invoice_data)

    line_items = _resolve_items(invoice_data, PAYLOAD_LINE_ITEM_LIST_KEYS)
    status = invoice_data.get('status') or DEFAULT_STATUS

    payload: Dict[str, Any] = {}

    invoice_number = first_truthy(invoice_data, *INVOICE_NUMBER_KEYS)
    if invoice_number:
        payload['invoiceNumber'] = invoice_number

    customer_id = normalize_reference(
        invoice_data.get('customerId') or reference_id(invoice_data.get('customer'))
    )
    if customer_id:
        payload['customer'] = customer_id

    issue_date = _optional_date(invoice_data.get('issueDate'), 'issueDate')
    if issue_date is not None:
        payload['date'] = issue_date

    due_date = _optional_date(invoice_data.get('dueDate'), 'dueDate')
    if due_date is not None:
        payload['dueDate'] = due_date

    if invoice_data.get('paymentTerms'):
        payload['paymentTerms'] = invoice_data['paymentTerms']

    payload['currency'] = invoice_data.get('currency') or DEFAULT_CURRENCY
    payload['notes'] = invoice_data.get('notes') or ''
    payload['terms'] = invoice_data.get('terms') or ''
    payload['items'] = [_build_line_item(item) for item in line_items]
    payload['status'] = status

    tax_rate_used = to_number(first_present(invoice_data, 'taxRateUsed', 'taxRate'), None)
    if tax_rate_used is not None:
        payload['taxRateUsed'] = tax_rate_used

    tax_amount = to_number(invoice_data.get('taxAmount'), None)
    if tax_amount is not None:
        payload['taxAmount'] = tax_amount

    tax_name = first_truthy(invoice_data, 'taxName', 'taxDescription')
    if tax_name:
        payload['taxName'] = tax_name

    if isinstance(invoice_data.get('isTaxOverridden'), bool):
        payload['isTaxOverridden'] = invoice_data['isTaxOverridden']

    payload['discount'] = {
        'amount': to_number(invoice_data.get('discountAmount'), 0),
        'percentage': to_number(invoice_data.get('discountPercentage'), 0),
        'type': invoice_data.get('discountType') or DEFAULT_DISCOUNT_TYPE,
        'description': invoice_data.get('discountDescription') or '',
    }
    payload['shipping'] = {
        'amount': to_number(invoice_data.get('shippingAmount'), 0),
        'description': invoice_data.get('shippingDescription') or '',
    }
    payload['amountPaid'] = to_number(invoice_data.get('amountPaid'), 0)

    sent_source = first_truthy(invoice_data, *SENT_DATE_KEYS)
    sent_date = _optional_date(sent_source, 'sentDate')
    if sent_date is None and status == 'sent':
        sent_date = clock()
    if sent_date is not None:
        payload['sentDate'] = sent_date

    return payload
