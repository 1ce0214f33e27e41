"""
Inventory product adapter.

Flattens product documents (nested stock, category, supplier and image
records) for the inventory tables, and builds product payloads from forms.
"""
from typing import Any, Dict, Optional

from invoice_ops.utils import as_dict, first_present, first_truthy, is_object_id, to_number

DEFAULT_UNIT = 'pcs'
DEFAULT_REORDER_LEVEL = 10

REORDER_LEVEL_KEYS = ('stock.lowStockThreshold', 'stock.reorderPoint', 'reorderLevel')


def _primary_image_url(product: Dict[str, Any]) -> Optional[str]:
    images = product.get('images')
    if isinstance(images, list):
        candidates = [img for img in images if isinstance(img, dict)]
        primary = next((img for img in candidates if img.get('isPrimary')), None)
        if primary is None and candidates:
            primary = candidates[0]
        if primary is not None and primary.get('url'):
            return primary['url']
    return product.get('image') or None


def map_product_from_api(product: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Normalize a product document for the inventory views.

    Stock figures are read from the nested ``stock`` record first and fall
    back to the flat legacy fields.
    """
    product = as_dict(product)

    stock_quantity = first_present(product, 'stock.quantity', 'quantity', default=0)
    reorder_level = first_present(product, *REORDER_LEVEL_KEYS, default=DEFAULT_REORDER_LEVEL)

    return {
        'id': first_truthy(product, '_id', 'id', default=''),
        'name': product.get('name') or '',
        'sku': product.get('sku') or '',
        'description': product.get('description') or '',
        'categoryId': _related_id(product, 'category'),
        'categoryName': first_truthy(product, 'category.name', 'categoryName', default=''),
        'supplierId': _related_id(product, 'supplier'),
        'supplierName': first_truthy(product, 'supplier.name', 'supplierName', default=''),
        'price': to_number(first_present(product, 'sellingPrice', 'price')),
        'costPrice': to_number(product.get('costPrice')),
        'unit': product.get('unit') or DEFAULT_UNIT,
        'stock': to_number(stock_quantity),
        'quantity': to_number(stock_quantity),
        'available': to_number(first_present(product, 'stock.available', default=stock_quantity)),
        'reserved': to_number(first_present(product, 'stock.reserved', default=0)),
        'reorderLevel': to_number(reorder_level),
        'isActive': product.get('isActive') is not False,
        'image': _primary_image_url(product),
        'raw': product,
    }


def _related_id(product: Dict[str, Any], field: str) -> str:
    """Id of an embedded record, a bare id reference, or the flat ``<field>Id`` key."""
    related = product.get(field)
    if isinstance(related, dict):
        if related.get('_id'):
            return related['_id']
    elif isinstance(related, str) and related:
        return related
    return product.get(field + 'Id') or ''


def _stripped(value: Any) -> Optional[str]:
    return value.strip() if isinstance(value, str) else None


def build_product_payload(form_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a product create/update payload from inventory form fields."""
    form_data = as_dict(form_data)

    payload: Dict[str, Any] = {
        'sellingPrice': to_number(form_data.get('price'), 0),
        'costPrice': to_number(form_data.get('costPrice'), 0),
        'unit': form_data.get('unit') or DEFAULT_UNIT,
        'isActive': form_data.get('isActive') is not False,
    }

    for key in ('name', 'description'):
        value = _stripped(form_data.get(key))
        if value is not None:
            payload[key] = value

    sku = _stripped(form_data.get('sku'))
    if sku:
        payload['sku'] = sku

    if is_object_id(form_data.get('categoryId')):
        payload['category'] = form_data['categoryId']
    if is_object_id(form_data.get('supplierId')):
        payload['supplier'] = form_data['supplierId']

    quantity = form_data.get('quantity')
    if isinstance(quantity, (int, float)) and not isinstance(quantity, bool):
        payload['stock'] = {
            'quantity': to_number(quantity, 0),
            'lowStockThreshold': to_number(form_data.get('reorderLevel'), DEFAULT_REORDER_LEVEL),
        }

    if form_data.get('image'):
        payload['images'] = [{'url': form_data['image'], 'isPrimary': True}]

    return payload
