from decimal import Decimal

from flask import Blueprint, jsonify, g

from sjfulfillment.database import get_session
from sjfulfillment.decorators.permissions import require_role
from sjfulfillment.exceptions import ValidationError
from sjfulfillment.middleware import require_login
from sjfulfillment.models import UserRole
from sjfulfillment.services.product_service import create_product
from sjfulfillment.utils.request_parsing import (
    get_json_body, parse_decimal, require_int, optional_str, parse_id
)

products_bp = Blueprint('products', __name__, url_prefix='/api/products')


@products_bp.route('', methods=['POST'])
@require_login
@require_role(UserRole.SJFS_ADMIN.value, UserRole.MERCHANT_ADMIN.value, UserRole.MERCHANT_STAFF.value)
def create():
    """Create a product; its first stock item is provisioned with the opening quantity."""
    body = get_json_body()
    errors = []
    sku = optional_str(body, 'sku', errors)
    name = optional_str(body, 'name', errors)
    if not sku:
        errors.append('sku is required')
    if not name:
        errors.append('name is required')
    unit_price = parse_decimal(body.get('unitPrice'), 'unitPrice', errors, positive=False)
    if unit_price is not None and unit_price < 0:
        errors.append('unitPrice must not be negative')
    initial_quantity = require_int(body, 'initialQuantity', errors, minimum=0) if 'initialQuantity' in body else 0
    merchant_id = parse_id(body.get('merchantId'), 'merchantId', []) if body.get('merchantId') else None
    description = optional_str(body, 'description', errors)
    category = optional_str(body, 'category', errors)
    brand = optional_str(body, 'brand', errors)
    if errors:
        raise ValidationError(errors)

    product, stock_item = create_product(
        get_session(), g.scope, sku, name,
        unit_price=unit_price if unit_price is not None else Decimal('0'),
        initial_quantity=initial_quantity,
        merchant_id=merchant_id,
        description=description,
        category=category,
        brand=brand,
    )
    return jsonify({
        'product': product.to_summary(),
        'stockItem': stock_item.to_dict(),
        'message': 'Product created successfully',
    }), 201
