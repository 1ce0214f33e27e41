"""
Report aggregation over in-memory invoice and customer collections.

Accepts invoices in either the normalized or the raw API shape and produces
the summary counters, status breakdowns, top customers and monthly trend
shown on the reporting dashboard.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from invoice_ops.utils import (
    Clock,
    as_dict,
    as_local_naive,
    first_truthy,
    parse_date,
    system_clock,
    to_number,
)

TOP_CUSTOMER_LIMIT = 10
NEW_CUSTOMER_WINDOW_DAYS = 30

MONTH_LABELS = ('Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
                'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec')

DEFAULT_REPORT_META = {
    'title': 'Business Report',
    'type': 'general',
    'format': 'pdf',
    'dateRange': 'last-30-days',
}

# 'sent' invoices are still awaiting payment
PENDING_STATUSES = ('pending', 'sent')


def _revenue(invoice: Dict[str, Any]) -> float:
    """Money value of an invoice; ``totalAmount`` wins over legacy ``amount``."""
    return to_number(first_truthy(invoice, 'totalAmount', 'amount', default=0))


def _sum_revenue(invoices: Iterable[Dict[str, Any]]) -> float:
    return sum(_revenue(inv) for inv in invoices)


def _with_status(invoices: List[Dict[str, Any]], *statuses: str) -> List[Dict[str, Any]]:
    return [inv for inv in invoices if inv.get('status') in statuses]


def _invoice_date(invoice: Dict[str, Any]) -> Optional[datetime]:
    return parse_date(first_truthy(invoice, 'issueDate', 'createdAt'))


def _is_new_customer(customer: Dict[str, Any], cutoff: datetime) -> bool:
    created = parse_date(first_truthy(customer, 'createdAt', 'joinedDate'))
    return created is not None and created > cutoff


def _matches_customer(invoice: Dict[str, Any], customer_id: Any, customer_name: Any) -> bool:
    if customer_id and invoice.get('customerId') == customer_id:
        return True
    return bool(customer_name) and invoice.get('customer') == customer_name


def _top_customers(invoices: List[Dict[str, Any]], customers: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Rank customers by invoiced revenue.

    Customers without invoices are dropped. The sort is stable, so customers
    with equal revenue keep their input order.
    """
    ranked = []
    for customer in customers:
        customer_id = first_truthy(customer, 'id', '_id')
        name = customer.get('name')
        matched = [inv for inv in invoices if _matches_customer(inv, customer_id, name)]
        if not matched:
            continue
        ranked.append({
            'name': name,
            'totalInvoices': len(matched),
            'totalAmount': _sum_revenue(matched),
            'lastPurchase': customer.get('lastTransaction') or 'Never',
            'email': customer.get('email'),
        })

    ranked.sort(key=lambda entry: entry['totalAmount'], reverse=True)
    return ranked[:TOP_CUSTOMER_LIMIT]


def _monthly_trend(invoices: List[Dict[str, Any]], year: int) -> List[Dict[str, Any]]:
    """Revenue and invoice count per calendar month of ``year``; other years are ignored."""
    trend = [{'month': label, 'revenue': 0, 'invoices': 0} for label in MONTH_LABELS]

    for invoice in invoices:
        issued = _invoice_date(invoice)
        if issued is None or issued.year != year:
            continue
        bucket = trend[issued.month - 1]
        bucket['revenue'] += _revenue(invoice)
        bucket['invoices'] += 1

    return trend


def _report_metadata(report: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    metadata = {key: report.get(key) or default for key, default in DEFAULT_REPORT_META.items()}
    return {
        'title': metadata['title'],
        'generated': now.astimezone(timezone.utc).isoformat(),
        'type': metadata['type'],
        'format': metadata['format'],
        'dateRange': metadata['dateRange'],
    }


def generate_report_data(
    invoices: Optional[List[Dict[str, Any]]],
    customers: Optional[List[Dict[str, Any]]],
    report: Optional[Dict[str, Any]] = None,
    clock: Clock = system_clock,
) -> Dict[str, Any]:
    """
    Compute dashboard report data.

    Args:
        invoices: Invoices in normalized or raw API shape. Money is read from
            ``totalAmount`` or ``amount``.
        customers: Customers keyed by ``id``/``_id``, with ``createdAt`` or
            ``joinedDate`` and optional ``transactions``/``lastTransaction``.
        report: Descriptive metadata (title, type, format, dateRange). Does
            not affect the statistics.
        clock: Callable returning the current time; drives the new-customer
            window, the trend year and the ``generated`` stamp.

    Returns:
        Dictionary with ``metadata``, ``summary`` and ``breakdown`` keys.
        Entries of ``invoices`` or ``customers`` that are not dicts are
        skipped and do not count towards ``totalInvoices``/``totalCustomers``.
    """
    invoices = [inv for inv in invoices or [] if isinstance(inv, dict)]
    customers = [c for c in customers or [] if isinstance(c, dict)]
    now = as_local_naive(clock())

    paid = _with_status(invoices, 'paid')
    pending = _with_status(invoices, *PENDING_STATUSES)
    overdue = _with_status(invoices, 'overdue')
    draft = _with_status(invoices, 'draft')

    cutoff = now - timedelta(days=NEW_CUSTOMER_WINDOW_DAYS)
    active_customers = [c for c in customers if to_number(c.get('transactions')) > 0]
    new_customers = [c for c in customers if _is_new_customer(c, cutoff)]

    return {
        'metadata': _report_metadata(as_dict(report), now),
        'summary': {
            'totalInvoices': len(invoices),
            'totalCustomers': len(customers),
            'totalRevenue': _sum_revenue(invoices),
            'paidInvoices': len(paid),
            'pendingInvoices': len(pending),
            'overdueInvoices': len(overdue),
            'draftInvoices': len(draft),
            'activeCustomers': len(active_customers),
            'newCustomersLast30Days': len(new_customers),
        },
        'breakdown': {
            'byStatus': {
                'draft': len(draft),
                'sent': len(_with_status(invoices, 'sent')),
                'paid': len(paid),
                'overdue': len(overdue),
                'pending': len(pending),
                'cancelled': len(_with_status(invoices, 'cancelled')),
            },
            'byCustomer': _top_customers(invoices, customers),
            'monthlyTrend': _monthly_trend(invoices, now.year),
            'revenueByStatus': {
                'paid': _sum_revenue(paid),
                'pending': _sum_revenue(pending),
                'overdue': _sum_revenue(overdue),
            },
        },
    }
