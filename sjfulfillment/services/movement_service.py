"""
Movement engine - the only code path that changes stock item quantities.

Every operation runs in one database transaction:
    1. lock the affected rows (warehouse row first when a stock item may be
       created, then stock items ordered by id)
    2. validate against the freshly locked values
    3. write the new levels and append the ledger rows
    4. commit, or roll back everything on any failure

available_quantity is always derived as quantity - reserved_quantity when a
row is written; no route handler assigns quantity columns directly.
"""
import logging
from collections import namedtuple
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from sjfulfillment.blueprints.metrics import stock_movements_total, stock_movement_rejections_total
from sjfulfillment.exceptions import (
    FulfillmentError, ValidationError, BusinessLogicError,
    InsufficientStockError, NegativeAvailableStockError
)
from sjfulfillment.models import StockItem, StockMovement, MovementType, StockReferenceType, AuditAction
from sjfulfillment.services.audit_service import log_action
from sjfulfillment.services.cache_service import invalidate_inventory_cache
from sjfulfillment.services.stock_item_service import (
    find_by_product_warehouse_batch, create_stock_item, get_stock_item, get_warehouse
)

logger = logging.getLogger(__name__)


MovementResult = namedtuple(
    'MovementResult',
    ['stock_item', 'movement', 'target_stock_item', 'target_movement']
)

_INSUFFICIENT_MESSAGES = {
    MovementType.STOCK_OUT: 'Insufficient available stock',
    MovementType.DAMAGE: 'Insufficient available stock to damage',
    MovementType.TRANSFER: 'Insufficient available stock for transfer',
}


class InvalidQuantityError(ValidationError):
    """Quantity is not a positive integer."""


def validate_quantity(quantity) -> int:
    """Return quantity if it is a positive integer, else raise InvalidQuantityError."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError('Quantity must be an integer')
    if quantity <= 0:
        raise InvalidQuantityError('Quantity must be at least 1')
    return quantity


def compute_new_levels(stock_item: StockItem, movement_type: MovementType, quantity: int):
    """
    Return (new_quantity, new_reserved) for applying a movement.

    Pure function over the item's current values; raises the business-rule
    errors without touching the item.
    """
    on_hand = stock_item.quantity
    reserved = stock_item.reserved_quantity
    available = on_hand - reserved

    if movement_type.is_inbound:
        return on_hand + quantity, reserved

    if movement_type in _INSUFFICIENT_MESSAGES:
        if available < quantity:
            raise InsufficientStockError(
                _INSUFFICIENT_MESSAGES[movement_type], requested=quantity, available=available
            )
        return on_hand - quantity, reserved

    if movement_type is MovementType.ADJUSTMENT:
        # quantity is the new absolute on-hand count
        if quantity < reserved:
            raise NegativeAvailableStockError()
        return quantity, reserved

    raise ValidationError(f'Unsupported movement type: {movement_type}')


def _write_levels(stock_item: StockItem, quantity: int, reserved: int) -> None:
    stock_item.quantity = quantity
    stock_item.reserved_quantity = reserved
    stock_item.available_quantity = quantity - reserved


def _levels(stock_item: StockItem) -> dict:
    return {
        'quantity': stock_item.quantity,
        'availableQuantity': stock_item.available_quantity,
        'reservedQuantity': stock_item.reserved_quantity,
    }


def _lock_stock_items(session, stock_item_ids):
    """SELECT ... FOR UPDATE in ascending id order, refreshing cached rows."""
    ids = sorted(set(stock_item_ids))
    rows = (
        session.query(StockItem)
        .filter(StockItem.id.in_(ids))
        .order_by(StockItem.id)
        .with_for_update()
        .populate_existing()
        .all()
    )
    return {row.id: row for row in rows}


@contextmanager
def stock_transaction(session, failure_message: str):
    """Commit on success; roll back and classify the error otherwise."""
    try:
        yield
        session.commit()
    except FulfillmentError as e:
        session.rollback()
        stock_movement_rejections_total.labels(reason=type(e).__name__).inc()
        logger.warning(f"Stock operation rejected: {e.message}")
        raise
    except SQLAlchemyError as e:
        session.rollback()
        stock_movement_rejections_total.labels(reason='DatabaseError').inc()
        logger.exception(f"{failure_message}: {e}")
        raise FulfillmentError(failure_message) from e


def apply_to_stock_item(session, stock_item: StockItem, movement_type: MovementType, quantity: int, *,
                        performed_by: str, reason: Optional[str] = None, notes: Optional[str] = None,
                        reference_type: Optional[str] = None, reference_id=None,
                        target_warehouse_id=None) -> MovementResult:
    """
    Lock, validate and apply one movement inside the caller's transaction.

    Does not commit. Used by apply_movement and by adapters that must
    find-or-create the stock item in the same transaction.
    """
    validate_quantity(quantity)

    target_item = None
    if movement_type is MovementType.TRANSFER:
        if target_warehouse_id is None:
            raise ValidationError('Target warehouse is required for transfers')
        target_warehouse = get_warehouse(session, target_warehouse_id, lock=True)
        if target_warehouse.id == stock_item.warehouse_id:
            raise ValidationError('Target warehouse must differ from the source warehouse')
        target_item = find_by_product_warehouse_batch(
            session, stock_item.product_id, target_warehouse.id, stock_item.batch_number
        )

    lock_ids = [stock_item.id] + ([target_item.id] if target_item is not None else [])
    locked = _lock_stock_items(session, lock_ids)
    stock_item = locked[stock_item.id]
    if target_item is not None:
        target_item = locked[target_item.id]

    new_quantity, new_reserved = compute_new_levels(stock_item, movement_type, quantity)

    now = datetime.now(timezone.utc)
    _write_levels(stock_item, new_quantity, new_reserved)
    if movement_type.is_inbound:
        stock_item.last_stock_in = now
    elif movement_type.is_outbound:
        stock_item.last_stock_out = now

    if reference_type is None and movement_type is MovementType.TRANSFER:
        reference_type = StockReferenceType.TRANSFER_OUT
        reference_id = reference_id or str(target_warehouse_id)

    movement = StockMovement(
        stock_item_id=stock_item.id,
        movement_type=movement_type,
        quantity=quantity,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        reason=reason,
        notes=notes,
        performed_by=performed_by,
    )
    session.add(movement)
    session.flush()

    target_movement = None
    if movement_type is MovementType.TRANSFER:
        target_item, target_movement = _credit_transfer_target(
            session, stock_item, target_item, target_warehouse_id, quantity, movement, performed_by, now
        )

    return MovementResult(stock_item, movement, target_item, target_movement)


def _credit_transfer_target(session, source: StockItem, target: Optional[StockItem], target_warehouse_id,
                            quantity: int, source_movement: StockMovement, performed_by: str, now):
    if target is None:
        target = create_stock_item(
            session,
            product_id=source.product_id,
            warehouse_id=target_warehouse_id,
            initial_quantity=quantity,
            batch_number=source.batch_number,
            cost_price=source.cost_price,
            expiry_date=source.expiry_date,
            reorder_level=source.reorder_level,
            max_stock_level=source.max_stock_level,
        )
    else:
        _write_levels(target, target.quantity + quantity, target.reserved_quantity)
    target.last_stock_in = now

    source_warehouse = source.warehouse.name if source.warehouse else 'warehouse'
    target_movement = StockMovement(
        stock_item_id=target.id,
        movement_type=MovementType.STOCK_IN,
        quantity=quantity,
        reference_type=StockReferenceType.TRANSFER_IN,
        reference_id=str(source_movement.id),
        reason='Transfer from other warehouse',
        notes=f'Transferred from {source_warehouse}',
        performed_by=performed_by,
    )
    session.add(target_movement)
    session.flush()
    return target, target_movement


def after_movement_commit(result: MovementResult, merchant_id) -> None:
    stock_movements_total.labels(movement_type=result.movement.movement_type.value).inc()
    if result.target_movement is not None:
        stock_movements_total.labels(movement_type=result.target_movement.movement_type.value).inc()
    invalidate_inventory_cache(merchant_id)


def apply_movement(session, stock_item_id, movement_type: MovementType, quantity: int, *, scope,
                   reason: Optional[str] = None, notes: Optional[str] = None,
                   reference_type: Optional[str] = None, reference_id=None,
                   target_warehouse_id=None) -> MovementResult:
    """
    Apply a movement to a stock item and commit it together with its ledger
    row(s) and audit entry.

    Raises:
        ValidationError: bad quantity, missing/identical transfer target
        NotFoundError: unknown stock item or target warehouse
        ForbiddenError: stock item outside the caller's scope
        InsufficientStockError: OUT/DAMAGE/TRANSFER above available quantity
        NegativeAvailableStockError: ADJUSTMENT below reserved quantity
    """
    with stock_transaction(session, 'Failed to record stock movement'):
        stock_item = get_stock_item(session, stock_item_id)
        scope.ensure_stock_item(stock_item)
        merchant_id = stock_item.product.merchant_id
        old_values = _levels(stock_item)

        result = apply_to_stock_item(
            session, stock_item, movement_type, quantity,
            performed_by=scope.performed_by,
            reason=reason,
            notes=notes,
            reference_type=reference_type,
            reference_id=reference_id,
            target_warehouse_id=target_warehouse_id,
        )

        new_values = dict(
            _levels(result.stock_item),
            stockItemId=result.stock_item.id,
            movementType=movement_type.value,
            movementQuantity=quantity,
            reason=reason,
        )
        if result.target_stock_item is not None:
            new_values['targetStockItemId'] = result.target_stock_item.id
        log_action(
            session, AuditAction.STOCK_MOVEMENT, 'stock_movements', result.movement.id,
            old_values=old_values, new_values=new_values,
            user_id=scope.user_id, actor=scope.performed_by
        )

    after_movement_commit(result, merchant_id)
    logger.info(
        f"Applied {movement_type.value} x{quantity} to stock item {result.stock_item.id} "
        f"by {scope.performed_by} -> quantity={result.stock_item.quantity}"
    )
    return result


# =====================================================
# RESERVATIONS
# =====================================================

def _locked_item_in_scope(session, stock_item_id, scope) -> StockItem:
    stock_item = get_stock_item(session, stock_item_id)
    scope.ensure_stock_item(stock_item)
    return _lock_stock_items(session, [stock_item.id])[stock_item.id]


def reserve_stock(session, stock_item_id, quantity: int, *, scope, order_id=None) -> StockItem:
    """Move units from available to reserved for an open order."""
    with stock_transaction(session, 'Failed to reserve stock'):
        validate_quantity(quantity)
        stock_item = _locked_item_in_scope(session, stock_item_id, scope)
        old_values = _levels(stock_item)

        available = stock_item.quantity - stock_item.reserved_quantity
        if available < quantity:
            raise InsufficientStockError(requested=quantity, available=available)
        _write_levels(stock_item, stock_item.quantity, stock_item.reserved_quantity + quantity)

        log_action(
            session, AuditAction.STOCK_RESERVED, 'stock_items', stock_item.id,
            old_values=old_values, new_values=dict(_levels(stock_item), orderId=order_id),
            user_id=scope.user_id, actor=scope.performed_by
        )
        merchant_id = stock_item.product.merchant_id

    invalidate_inventory_cache(merchant_id)
    logger.info(f"Reserved {quantity} on stock item {stock_item.id} for order {order_id}")
    return stock_item


def release_reservation(session, stock_item_id, quantity: int, *, scope, order_id=None) -> StockItem:
    """Return reserved units to available (order cancelled or edited)."""
    with stock_transaction(session, 'Failed to release reservation'):
        validate_quantity(quantity)
        stock_item = _locked_item_in_scope(session, stock_item_id, scope)
        old_values = _levels(stock_item)

        if stock_item.reserved_quantity < quantity:
            raise BusinessLogicError('Cannot release more than the reserved quantity')
        _write_levels(stock_item, stock_item.quantity, stock_item.reserved_quantity - quantity)

        log_action(
            session, AuditAction.STOCK_RELEASED, 'stock_items', stock_item.id,
            old_values=old_values, new_values=dict(_levels(stock_item), orderId=order_id),
            user_id=scope.user_id, actor=scope.performed_by
        )
        merchant_id = stock_item.product.merchant_id

    invalidate_inventory_cache(merchant_id)
    logger.info(f"Released {quantity} on stock item {stock_item.id} for order {order_id}")
    return stock_item


def ship_reserved(session, stock_item_id, quantity: int, *, scope, order_id=None) -> MovementResult:
    """Consume reserved units: they leave the warehouse as a STOCK_OUT movement."""
    with stock_transaction(session, 'Failed to ship reserved stock'):
        validate_quantity(quantity)
        stock_item = _locked_item_in_scope(session, stock_item_id, scope)
        old_values = _levels(stock_item)

        if stock_item.reserved_quantity < quantity:
            raise BusinessLogicError('Cannot ship more than the reserved quantity')
        _write_levels(stock_item, stock_item.quantity - quantity, stock_item.reserved_quantity - quantity)
        stock_item.last_stock_out = datetime.now(timezone.utc)

        movement = StockMovement(
            stock_item_id=stock_item.id,
            movement_type=MovementType.STOCK_OUT,
            quantity=quantity,
            reference_type=StockReferenceType.ORDER_SHIPMENT,
            reference_id=str(order_id) if order_id is not None else None,
            reason='Order shipped',
            performed_by=scope.performed_by,
        )
        session.add(movement)
        session.flush()

        log_action(
            session, AuditAction.STOCK_MOVEMENT, 'stock_movements', movement.id,
            old_values=old_values, new_values=dict(_levels(stock_item), orderId=order_id),
            user_id=scope.user_id, actor=scope.performed_by
        )
        result = MovementResult(stock_item, movement, None, None)
        merchant_id = stock_item.product.merchant_id

    after_movement_commit(result, merchant_id)
    logger.info(f"Shipped {quantity} reserved units from stock item {stock_item.id} for order {order_id}")
    return result
