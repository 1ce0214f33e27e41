import copy
import json
from datetime import datetime

from invoice_ops import invoice_adapter

FIXED_NOW = datetime(2026, 6, 15, 12, 0, 0)


def fixed_clock():
    return FIXED_NOW


def test_map_empty_invoice_has_defaults():
    res = invoice_adapter.map_invoice_from_api({})

    assert res['lineItems'] == []
    assert res['totalAmount'] == 0
    assert res['status'] == 'draft'
    assert res['currency'] == 'USD'
    assert res['customerId'] == ''
    assert res['customer'] is None
    assert res['taxName'] == 'Tax'
    assert res['raw'] == {}


def test_map_without_argument():
    res = invoice_adapter.map_invoice_from_api()
    assert res['invoiceNumber'] == ''
    assert res['balance'] == 0


def test_line_amount_defaults_to_quantity_times_rate_without_tax():
    res = invoice_adapter.map_invoice_from_api({
        'items': [{'quantity': 3, 'rate': 20, 'tax': 10}],
    })

    item = res['lineItems'][0]
    assert item['amount'] == 60
    assert item['tax'] == 10
    assert item['id'] == 0


def test_line_items_fall_back_to_line_items_key():
    res = invoice_adapter.map_invoice_from_api({
        'items': 'not-a-list',
        'lineItems': [{'qty': 2, 'unitPrice': 5, 'name': 'Bolt', 'product': {'_id': 'p1'}}],
    })

    assert len(res['lineItems']) == 1
    item = res['lineItems'][0]
    assert item['quantity'] == 2
    assert item['rate'] == 5
    assert item['description'] == 'Bolt'
    assert item['productId'] == 'p1'
    assert item['sku'] == ''


def test_explicit_line_total_is_trusted():
    res = invoice_adapter.map_invoice_from_api({
        'items': [{'quantity': 2, 'unitPrice': 50, 'taxRate': 10, 'total': 110}],
    })
    assert res['lineItems'][0]['amount'] == 110


def test_tax_fields_resolved_in_order():
    nested = invoice_adapter.map_invoice_from_api({
        'tax': {'amount': 12, 'percentage': 8, 'description': 'VAT'},
    })
    assert nested['taxAmount'] == 12
    assert nested['totalTax'] == 12
    assert nested['taxRateUsed'] == 8
    assert nested['taxName'] == 'VAT'

    flat_wins = invoice_adapter.map_invoice_from_api({'taxAmount': 5, 'tax': {'amount': 12}})
    assert flat_wins['taxAmount'] == 5

    scalar = invoice_adapter.map_invoice_from_api({'tax': 7})
    assert scalar['taxAmount'] == 7


def test_embedded_customer_wins_over_flat_fields():
    res = invoice_adapter.map_invoice_from_api({
        'customer': {
            '_id': 'c1',
            'name': 'Acme',
            'email': 'billing@acme.test',
            'address': {'street': '1 Main St', 'city': 'Springfield'},
        },
        'customerName': 'Someone Else',
        'customerPhone': '555-0100',
    })

    assert res['customerId'] == 'c1'
    assert res['customerName'] == 'Acme'
    assert res['customerEmail'] == 'billing@acme.test'
    assert res['customerPhone'] == '555-0100'
    assert res['customerAddress'] == '1 Main St, Springfield'
    assert res['customer']['name'] == 'Acme'


def test_bare_customer_reference():
    res = invoice_adapter.map_invoice_from_api({'customer': 'c42', 'customerName': 'Bob'})

    assert res['customerId'] == 'c42'
    assert res['customerName'] == 'Bob'
    assert res['customer'] == 'c42'


def test_unparsable_numbers_default_to_zero():
    res = invoice_adapter.map_invoice_from_api({'total': 'abc', 'amountPaid': '10', 'subtotal': None})

    assert res['totalAmount'] == 0
    assert res['amountPaid'] == 10
    assert res['subtotal'] == 0
    assert res['balance'] == -10


def test_balance_defaults_to_total_minus_paid():
    res = invoice_adapter.map_invoice_from_api({'totalAmount': 100, 'amountPaid': 40})
    assert res['balance'] == 60

    explicit = invoice_adapter.map_invoice_from_api({'totalAmount': 100, 'amountPaid': 40, 'balance': 0})
    assert explicit['balance'] == 0


def test_map_does_not_mutate_input():
    source = {'invoiceNumber': 'INV-1', 'items': [{'quantity': '2', 'rate': '3'}], 'customer': {'_id': 'c1'}}
    snapshot = copy.deepcopy(source)

    invoice_adapter.map_invoice_from_api(source)

    assert source == snapshot


def test_mapping_normalized_output_again_is_stable():
    source = {
        'invoiceNumber': 'INV-7',
        'status': 'sent',
        'lineItems': [{'quantity': 1, 'rate': 10}, {'quantity': 2, 'rate': 5}],
    }

    first = invoice_adapter.map_invoice_from_api(source)
    second = invoice_adapter.map_invoice_from_api(first)

    assert second['invoiceNumber'] == 'INV-7'
    assert second['status'] == 'sent'
    assert len(second['lineItems']) == 2


def test_payload_line_total_includes_tax():
    payload = invoice_adapter.build_invoice_payload(
        {'status': 'sent', 'lineItems': [{'quantity': 2, 'rate': 100, 'tax': 10}]},
        clock=fixed_clock,
    )

    assert payload['items'][0]['total'] == 220
    assert payload['items'][0]['unitPrice'] == 100
    assert payload['items'][0]['taxRate'] == 10


def test_adapter_and_payload_line_amounts_differ_on_tax():
    line = {'quantity': 2, 'rate': 100, 'tax': 10}

    mapped = invoice_adapter.map_invoice_from_api({'items': [line]})
    payload = invoice_adapter.build_invoice_payload({'lineItems': [line]})

    assert mapped['lineItems'][0]['amount'] == 200
    assert payload['items'][0]['total'] == 220


def test_sent_status_stamps_sent_date_from_clock():
    payload = invoice_adapter.build_invoice_payload({'status': 'sent'}, clock=fixed_clock)
    assert payload['sentDate'] == FIXED_NOW


def test_sent_status_uses_system_clock_by_default():
    before = datetime.now()
    payload = invoice_adapter.build_invoice_payload({'status': 'sent'})
    after = datetime.now()

    assert before <= payload['sentDate'] <= after


def test_draft_has_no_sent_date():
    payload = invoice_adapter.build_invoice_payload({'status': 'draft'}, clock=fixed_clock)
    assert 'sentDate' not in payload


def test_explicit_sent_at_is_used():
    payload = invoice_adapter.build_invoice_payload(
        {'status': 'draft', 'sentAt': '2024-05-01'},
        clock=fixed_clock,
    )
    assert payload['sentDate'] == datetime(2024, 5, 1)


def test_optional_tax_fields_are_omitted_not_zeroed():
    payload = invoice_adapter.build_invoice_payload({})

    assert 'taxRateUsed' not in payload
    assert 'taxAmount' not in payload
    assert payload['status'] == 'draft'
    assert payload['currency'] == 'USD'
    assert payload['items'] == []

    zeroed = invoice_adapter.build_invoice_payload({'taxRate': 0, 'taxAmount': '0'})
    assert zeroed['taxRateUsed'] == 0
    assert zeroed['taxAmount'] == 0


def test_discount_shipping_and_paid_default_to_zero():
    payload = invoice_adapter.build_invoice_payload({})

    assert payload['discount'] == {'amount': 0, 'percentage': 0, 'type': 'fixed', 'description': ''}
    assert payload['shipping'] == {'amount': 0, 'description': ''}
    assert payload['amountPaid'] == 0


def test_discount_and_shipping_values_pass_through():
    payload = invoice_adapter.build_invoice_payload({
        'discountAmount': '15',
        'discountType': 'percentage',
        'shippingAmount': 9.5,
        'shippingDescription': 'Courier',
        'amountPaid': 20,
    })

    assert payload['discount']['amount'] == 15
    assert payload['discount']['type'] == 'percentage'
    assert payload['shipping'] == {'amount': 9.5, 'description': 'Courier'}
    assert payload['amountPaid'] == 20


def test_dates_only_included_when_present():
    payload = invoice_adapter.build_invoice_payload({'issueDate': '2024-02-01', 'dueDate': '2024-03-01'})
    assert payload['date'] == datetime(2024, 2, 1)
    assert payload['dueDate'] == datetime(2024, 3, 1)

    empty = invoice_adapter.build_invoice_payload({'issueDate': '', 'dueDate': 'garbage'})
    assert 'date' not in empty
    assert 'dueDate' not in empty


def test_customer_reference_resolution_order():
    explicit = invoice_adapter.build_invoice_payload({'customerId': 'id-1', 'customer': {'_id': 'id-2'}})
    assert explicit['customer'] == 'id-1'

    embedded = invoice_adapter.build_invoice_payload({'customer': {'id': 'id-2'}})
    assert embedded['customer'] == 'id-2'

    bare = invoice_adapter.build_invoice_payload({'customer': ' id-3 '})
    assert bare['customer'] == 'id-3'

    missing = invoice_adapter.build_invoice_payload({})
    assert 'customer' not in missing


def test_payload_line_item_extras():
    payload = invoice_adapter.build_invoice_payload({
        'items': [{
            'description': 'Bolt',
            'quantity': 2,
            'rate': 100,
            'tax': 10,
            'amount': 150,
            'product': {'_id': 'p1'},
            'sku': 'SKU-1',
            'discount': 5,
            'discountType': 'percentage',
        }],
    })

    item = payload['items'][0]
    assert item['total'] == 150
    assert item['product'] == 'p1'
    assert item['sku'] == 'SKU-1'
    assert item['discount'] == 5
    assert item['discountType'] == 'percentage'


def test_round_trip_preserves_identity_fields():
    api_invoice = {
        '_id': 'inv-1',
        'invoiceNumber': 'INV-100',
        'status': 'paid',
        'customer': {'_id': 'cust-9', 'name': 'Acme'},
        'items': [
            {'_id': 'i1', 'description': 'Widget', 'quantity': 2, 'unitPrice': 50, 'taxRate': 10, 'total': 110},
            {'description': 'Setup', 'quantity': 1, 'unitPrice': 25},
        ],
    }

    payload = invoice_adapter.build_invoice_payload(invoice_adapter.map_invoice_from_api(api_invoice))

    assert payload['invoiceNumber'] == 'INV-100'
    assert payload['customer'] == 'cust-9'
    assert payload['status'] == 'paid'
    assert [(i['quantity'], i['unitPrice'], i['taxRate']) for i in payload['items']] == [(2, 50, 10), (1, 25, 0)]


def test_oversized_json_integers_do_not_raise():
    source = json.loads('{"items": [{"quantity": 1' + '0' * 400 + ', "rate": 1.5}]}')

    res = invoice_adapter.map_invoice_from_api(source)

    item = res['lineItems'][0]
    assert item['quantity'] == 1
    assert item['amount'] == 1.5


def test_overflowing_line_products_default_to_zero():
    mapped = invoice_adapter.map_invoice_from_api({'items': [{'quantity': 1e308, 'rate': 1e308}]})
    assert mapped['lineItems'][0]['amount'] == 0

    big_ints = invoice_adapter.map_invoice_from_api({'items': [{'quantity': 10 ** 200, 'rate': 10 ** 200}]})
    assert big_ints['lineItems'][0]['amount'] == 0

    payload = invoice_adapter.build_invoice_payload(
        {'lineItems': [{'quantity': 10 ** 200, 'rate': 10 ** 200, 'tax': 10}]}
    )
    assert payload['items'][0]['total'] == 0


def test_overflowing_balance_defaults_to_zero():
    res = invoice_adapter.map_invoice_from_api({'totalAmount': 1.7e308, 'amountPaid': -1.7e308})
    assert res['balance'] == 0
