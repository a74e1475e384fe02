"""
Stock blueprint - internal (session-authenticated) inventory routes.

Quantity changes go through movement_service; handlers only parse input
and shape responses.
"""
import logging

from flask import Blueprint, request, jsonify, g

from sjfulfillment.database import get_session
from sjfulfillment.decorators.permissions import require_role
from sjfulfillment.exceptions import ValidationError
from sjfulfillment.middleware import require_login
from sjfulfillment.models import MovementType, StockReferenceType, STOCK_ROLES
from sjfulfillment.services.movement_service import (
    apply_movement, reserve_stock, release_reservation, ship_reserved
)
from sjfulfillment.services.stock_item_service import (
    list_stock_items, register_stock_item, get_movement_history
)
from sjfulfillment.utils.request_parsing import (
    parse_int, parse_bool, parse_pagination, get_json_body, parse_datetime,
    parse_decimal, require_int, optional_str, parse_id
)

logger = logging.getLogger(__name__)

stock_bp = Blueprint('stock', __name__, url_prefix='/api/stock')

# Names accepted by the movement form; stored under the canonical enum
MOVEMENT_TYPE_ALIASES = {
    'IN': MovementType.STOCK_IN,
    'OUT': MovementType.STOCK_OUT,
    'ADJUSTMENT': MovementType.ADJUSTMENT,
    'TRANSFER': MovementType.TRANSFER,
    'DAMAGE': MovementType.DAMAGE,
    'RETURN': MovementType.RETURN,
}

RESERVATION_ACTIONS = {
    'reserve': reserve_stock,
    'release': release_reservation,
}


@stock_bp.route('', methods=['GET'])
@require_login
@require_role(*STOCK_ROLES)
def list_stock():
    """Paginated stock listing within the caller's merchant scope."""
    page, limit = parse_pagination()
    items, pagination = list_stock_items(
        get_session(), g.scope,
        page=page,
        limit=limit,
        warehouse_id=parse_int(request.args.get('warehouseId')),
        product_id=parse_int(request.args.get('productId')),
        low_stock=parse_bool(request.args.get('lowStock')),
        expired=parse_bool(request.args.get('expired')),
        search=(request.args.get('search') or '').strip() or None,
        stock_level=request.args.get('stockLevel') or None,
    )
    return jsonify({
        'stockItems': [item.to_dict(include_relations=True) for item in items],
        'pagination': pagination,
    })


@stock_bp.route('', methods=['POST'])
@require_login
@require_role(*STOCK_ROLES)
def create_stock():
    body = get_json_body()
    errors = []
    product_id = parse_id(body.get('productId'), 'productId', errors)
    warehouse_id = parse_id(body.get('warehouseId'), 'warehouseId', errors)
    quantity = require_int(body, 'quantity', errors, minimum=0) if 'quantity' in body else 0
    reorder_level = require_int(body, 'reorderLevel', errors, minimum=0) if 'reorderLevel' in body else None
    max_stock_level = require_int(body, 'maxStockLevel', errors, minimum=0) if 'maxStockLevel' in body else None
    batch_number = optional_str(body, 'batchNumber', errors)
    location = optional_str(body, 'location', errors)
    expiry_date = parse_datetime(body.get('expiryDate'), 'expiryDate', errors)
    cost_price = parse_decimal(body.get('costPrice'), 'costPrice', errors)
    if errors:
        raise ValidationError(errors)

    stock_item = register_stock_item(
        get_session(), g.scope, product_id, warehouse_id,
        quantity=quantity,
        batch_number=batch_number,
        expiry_date=expiry_date,
        cost_price=cost_price,
        reorder_level=reorder_level,
        max_stock_level=max_stock_level,
        location=location,
    )
    return jsonify({
        'stockItem': stock_item.to_dict(include_relations=True),
        'message': 'Stock item created successfully',
    }), 201


@stock_bp.route('/<int:stock_item_id>/movements', methods=['GET'])
@require_login
@require_role(*STOCK_ROLES)
def movement_history(stock_item_id):
    stock_item, movements = get_movement_history(get_session(), g.scope, stock_item_id)
    return jsonify({
        'stockItem': stock_item.to_dict(include_relations=True),
        'movements': [movement.to_dict() for movement in movements],
    })


def _parse_movement_request(body):
    errors = []
    movement_type = MOVEMENT_TYPE_ALIASES.get(body.get('type'))
    if movement_type is None:
        errors.append('type must be one of IN, OUT, ADJUSTMENT, TRANSFER, DAMAGE, RETURN')

    quantity = require_int(body, 'quantity', errors, minimum=1)

    reason = body.get('reason')
    if not isinstance(reason, str) or not reason.strip():
        errors.append('reason is required')

    reference = optional_str(body, 'reference', errors)
    notes = optional_str(body, 'notes', errors)

    target_warehouse_id = None
    if movement_type is MovementType.TRANSFER:
        target_warehouse_id = parse_id(body.get('targetWarehouseId'), 'targetWarehouseId', errors)

    if errors:
        raise ValidationError(errors)
    return movement_type, quantity, reason.strip(), reference, notes, target_warehouse_id


@stock_bp.route('/<int:stock_item_id>/movements', methods=['POST'])
@require_login
@require_role(*STOCK_ROLES)
def create_movement(stock_item_id):
    """Apply IN/OUT/ADJUSTMENT/TRANSFER/DAMAGE/RETURN to a stock item."""
    body = get_json_body()
    movement_type, quantity, reason, reference, notes, target_warehouse_id = _parse_movement_request(body)

    result = apply_movement(
        get_session(), stock_item_id, movement_type, quantity,
        scope=g.scope,
        reason=reason,
        notes=notes,
        reference_type=StockReferenceType.MANUAL if reference else None,
        reference_id=reference,
        target_warehouse_id=target_warehouse_id,
    )

    response = {
        'stockMovement': result.movement.to_dict(),
        'updatedStock': result.stock_item.to_dict(),
        'message': 'Stock movement recorded successfully',
    }
    if result.target_stock_item is not None:
        response['targetStock'] = result.target_stock_item.to_dict()
        response['targetMovement'] = result.target_movement.to_dict()
    return jsonify(response), 201


@stock_bp.route('/<int:stock_item_id>/reservations', methods=['POST'])
@require_login
@require_role(*STOCK_ROLES)
def update_reservation(stock_item_id):
    """Reserve, release or ship units for an order."""
    body = get_json_body()
    errors = []
    action = body.get('action')
    if action not in ('reserve', 'release', 'ship'):
        errors.append('action must be one of reserve, release, ship')
    quantity = require_int(body, 'quantity', errors, minimum=1)
    order_id = body.get('orderId')
    if errors:
        raise ValidationError(errors)

    db_session = get_session()
    if action == 'ship':
        result = ship_reserved(db_session, stock_item_id, quantity, scope=g.scope, order_id=order_id)
        return jsonify({
            'stockMovement': result.movement.to_dict(),
            'updatedStock': result.stock_item.to_dict(),
            'message': 'Reserved stock shipped',
        }), 201

    stock_item = RESERVATION_ACTIONS[action](db_session, stock_item_id, quantity, scope=g.scope, order_id=order_id)
    return jsonify({
        'updatedStock': stock_item.to_dict(),
        'message': f'Stock {action}d successfully',
    })
