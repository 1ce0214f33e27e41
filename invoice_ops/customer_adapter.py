"""
Customer record adapter.

Maps customer documents returned by the backend into the flat shape the
customer tables bind to, and builds create/update payloads from form data.
"""
import math
from typing import Any, Dict, Optional

from invoice_ops.utils import as_dict, first_present, first_truthy, parse_date, to_number

ADDRESS_PARTS = ('street', 'city', 'state', 'country', 'postalCode')


def format_address(address: Any) -> str:
    """Flatten a structured address into a single comma separated line."""
    if not address:
        return ''
    if isinstance(address, str):
        return address
    if not isinstance(address, dict):
        return ''

    parts = [str(address[key]) for key in ADDRESS_PARTS if address.get(key)]
    return ', '.join(parts)


def _format_month_year(value: Any) -> str:
    parsed = parse_date(value)
    if parsed is None:
        return 'N/A'
    return parsed.strftime('%b %Y')


def _format_short_date(value: Any) -> str:
    parsed = parse_date(value)
    if parsed is None:
        return 'Never'
    return f"{parsed.strftime('%b')} {parsed.day}, {parsed.year}"


def _transaction_count(customer: Dict[str, Any], total_invoiced: float) -> int:
    count = customer.get('totalInvoices')
    if isinstance(count, (int, float)) and not isinstance(count, bool) and math.isfinite(count):
        return count
    return 1 if total_invoiced > 0 else 0


def map_customer_from_api(customer: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Normalize a customer document for display.

    Args:
        customer: Customer document from the API; missing or partial input
            is tolerated.

    Returns:
        Dictionary with every display field present. The source document is
        kept under ``raw``.
    """
    customer = as_dict(customer)

    last_transaction = first_truthy(customer, 'lastPurchaseDate', 'updatedAt', 'createdAt')
    total_paid = to_number(first_present(customer, 'totalPaid', 'totalSpent', default=0))
    total_invoiced = to_number(customer.get('totalInvoiced'))

    return {
        'id': first_truthy(customer, '_id', 'id', default=''),
        'name': customer.get('name') or 'Unnamed Customer',
        'email': customer.get('email') or '',
        'phone': first_truthy(customer, 'phone', 'mobile', default=''),
        'company': customer.get('company') or '',
        'address': format_address(customer.get('address')),
        'createdAt': customer.get('createdAt') or None,
        'joinedDate': _format_month_year(customer.get('createdAt')),
        'totalSpent': total_paid,
        'outstanding': to_number(customer.get('outstandingBalance')),
        'transactions': _transaction_count(customer, total_invoiced),
        'lastTransaction': _format_short_date(last_transaction),
        'isActive': customer.get('isActive') is not False,
        'raw': customer,
    }


def build_customer_payload(form_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a customer create/update payload from form fields."""
    form_data = as_dict(form_data)
    payload: Dict[str, Any] = {}

    for key in ('name', 'email', 'phone'):
        value = form_data.get(key)
        if isinstance(value, str):
            payload[key] = value.strip()

    company = form_data.get('company')
    if isinstance(company, str) and company:
        payload['company'] = company.strip()

    address = form_data.get('address')
    if isinstance(address, str) and address:
        payload['address'] = {'street': address.strip()}

    return payload
