"""
External integration API (API-key authenticated, CSRF exempt).

Every request that resolves to a key is recorded in api_log by
require_api_key; handlers return (body, status).
"""
import logging

from flask import Blueprint, request, g

from sjfulfillment.database import get_session
from sjfulfillment.decorators.permissions import require_api_key
from sjfulfillment.exceptions import ValidationError
from sjfulfillment.services.inventory_api_service import (
    upsert_and_move, list_inventory, parse_external_movement_type
)
from sjfulfillment.utils.request_parsing import (
    parse_int, parse_bool, parse_pagination, get_json_body, parse_datetime,
    parse_decimal, require_int, optional_str, parse_id
)

logger = logging.getLogger(__name__)

external_bp = Blueprint('external', __name__, url_prefix='/api/external')


@external_bp.route('/inventory', methods=['GET'])
@require_api_key('inventory:read')
def get_inventory():
    page, limit = parse_pagination()
    data = list_inventory(
        get_session(), g.scope,
        page=page,
        limit=limit,
        product_id=parse_int(request.args.get('productId')),
        warehouse_id=parse_int(request.args.get('warehouseId')),
        low_stock=parse_bool(request.args.get('lowStock')),
    )
    return {'status': 'success', 'data': data, 'message': 'Inventory retrieved successfully'}, 200


@external_bp.route('/inventory', methods=['POST'])
@require_api_key('inventory:write')
def update_inventory():
    body = get_json_body()
    errors = []
    product_id = parse_id(body.get('productId'), 'productId', errors)
    warehouse_id = parse_id(body.get('warehouseId'), 'warehouseId', errors)
    quantity = require_int(body, 'quantity', errors, minimum=1)
    try:
        movement_type = parse_external_movement_type(body.get('movementType'))
    except ValidationError as e:
        errors.extend(e.errors)
        movement_type = None
    reason = optional_str(body, 'reason', errors)
    notes = optional_str(body, 'notes', errors)
    batch_number = optional_str(body, 'batchNumber', errors)
    expiry_date = parse_datetime(body.get('expiryDate'), 'expiryDate', errors)
    cost_price = parse_decimal(body.get('costPrice'), 'costPrice', errors)
    if errors:
        raise ValidationError(errors)

    stock_view = upsert_and_move(
        get_session(), g.scope, product_id, warehouse_id, quantity, movement_type,
        batch_number=batch_number,
        cost_price=cost_price,
        expiry_date=expiry_date,
        reason=reason,
        notes=notes,
    )
    return {'status': 'success', 'data': stock_view, 'message': 'Inventory updated successfully'}, 200
