"""
External inventory adapter.

Maps the key-authenticated integration contract onto the movement engine:
find-or-create the stock item for (product, warehouse, batch), then apply a
STOCK_IN, STOCK_OUT or ADJUSTMENT movement tagged API_UPDATE.
"""
import logging
from typing import Optional

from flask import current_app

from sjfulfillment.exceptions import NotFoundError, ValidationError
from sjfulfillment.models import Product, MovementType, StockReferenceType, AuditAction
from sjfulfillment.services.audit_service import log_action
from sjfulfillment.services.cache_service import get_cache
from sjfulfillment.services.movement_service import apply_to_stock_item, stock_transaction, after_movement_commit
from sjfulfillment.services.stock_item_service import (
    find_by_product_warehouse_batch, create_stock_item, get_warehouse, list_stock_items
)

logger = logging.getLogger(__name__)

EXTERNAL_MOVEMENT_TYPES = {
    'STOCK_IN': MovementType.STOCK_IN,
    'STOCK_OUT': MovementType.STOCK_OUT,
    'ADJUSTMENT': MovementType.ADJUSTMENT,
}


def parse_external_movement_type(value) -> MovementType:
    try:
        return EXTERNAL_MOVEMENT_TYPES[value]
    except (KeyError, TypeError):
        raise ValidationError('movementType must be one of STOCK_IN, STOCK_OUT, ADJUSTMENT')


def _active_product_for_merchant(session, product_id, merchant_id) -> Product:
    product = session.query(Product).filter(
        Product.id == product_id,
        Product.merchant_id == merchant_id,
        Product.is_active.is_(True)
    ).first()
    if product is None:
        raise NotFoundError('Product not found or inactive')
    return product


def upsert_and_move(session, scope, product_id, warehouse_id, quantity: int, movement_type: MovementType,
                    batch_number: Optional[str] = None, cost_price=None, expiry_date=None,
                    reason: Optional[str] = None, notes: Optional[str] = None) -> dict:
    """
    Apply an external inventory update for the scope's merchant and commit it.

    Returns the stock item view with product and warehouse summaries.
    """
    if movement_type not in EXTERNAL_MOVEMENT_TYPES.values():
        raise ValidationError('movementType must be one of STOCK_IN, STOCK_OUT, ADJUSTMENT')

    with stock_transaction(session, 'Failed to update inventory'):
        _active_product_for_merchant(session, product_id, scope.merchant_id)
        # Warehouse lock serializes find-or-create of the same triple
        warehouse = get_warehouse(session, warehouse_id, lock=True)

        stock_item = find_by_product_warehouse_batch(session, product_id, warehouse.id, batch_number)
        created = stock_item is None
        if created:
            stock_item = create_stock_item(
                session,
                product_id=product_id,
                warehouse_id=warehouse.id,
                initial_quantity=0,
                batch_number=batch_number,
                cost_price=cost_price,
                expiry_date=expiry_date,
            )
        old_quantity = stock_item.quantity

        result = apply_to_stock_item(
            session, stock_item, movement_type, quantity,
            performed_by=scope.performed_by,
            reason=reason,
            notes=notes or 'Inventory updated via external API',
            reference_type=StockReferenceType.API_UPDATE,
            reference_id=stock_item.id,
        )
        if cost_price is not None:
            result.stock_item.cost_price = cost_price

        log_action(
            session, AuditAction.API_INVENTORY_UPDATE, 'stock_items', result.stock_item.id,
            old_values={'quantity': old_quantity, 'created': created},
            new_values={
                'quantity': result.stock_item.quantity,
                'availableQuantity': result.stock_item.available_quantity,
                'movementType': movement_type.value,
                'movementQuantity': quantity,
            },
            user_id=None, actor=scope.performed_by
        )

    after_movement_commit(result, scope.merchant_id)
    logger.info(
        f"External inventory update {movement_type.value} x{quantity} on stock item "
        f"{result.stock_item.id} by {scope.performed_by}"
    )
    return result.stock_item.to_dict(include_relations=True)


def list_inventory(session, scope, page: int = 1, limit: int = 10, product_id=None,
                   warehouse_id=None, low_stock: bool = False) -> dict:
    """Merchant inventory listing, cached per query until the next committed change."""
    def load():
        items, pagination = list_stock_items(
            session, scope, page=page, limit=limit,
            product_id=product_id, warehouse_id=warehouse_id, low_stock=low_stock
        )
        return {
            'inventory': [item.to_dict(include_relations=True) for item in items],
            'pagination': pagination,
        }

    cache_key = f"list:p{page}:l{limit}:prod{product_id}:wh{warehouse_id}:low{int(bool(low_stock))}"
    ttl = current_app.config.get('CACHE_INVENTORY_TTL', 30)
    return get_cache().memoize(scope.merchant_id, 'inventory', cache_key, load, ttl)
