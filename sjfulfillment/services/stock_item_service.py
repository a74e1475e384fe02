"""
Stock item store: lookup, creation and listing of StockItem rows.

Quantities are never changed here after creation; see movement_service.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Optional

from flask import current_app, has_app_context
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from sjfulfillment.exceptions import FulfillmentError, BusinessLogicError, NotFoundError
from sjfulfillment.models import (
    StockItem, StockMovement, MovementType, StockReferenceType, Product, WarehouseLocation, AuditAction
)
from sjfulfillment.services.audit_service import log_action
from sjfulfillment.services.cache_service import invalidate_inventory_cache

logger = logging.getLogger(__name__)


def _config(key, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def find_by_product_warehouse_batch(session, product_id: int, warehouse_id: int,
                                    batch_number: Optional[str] = None, lock: bool = False) -> Optional[StockItem]:
    """Return the stock item for the (product, warehouse, batch) triple, if any."""
    query = session.query(StockItem).filter(
        StockItem.product_id == product_id,
        StockItem.warehouse_id == warehouse_id,
    )
    if batch_number:
        query = query.filter(StockItem.batch_number == batch_number)
    else:
        query = query.filter(StockItem.batch_number.is_(None))
    if lock:
        query = query.with_for_update()
    return query.order_by(StockItem.id).first()


def create_stock_item(session, product_id: int, warehouse_id: int, initial_quantity: int = 0,
                      batch_number: Optional[str] = None, cost_price=None, expiry_date=None,
                      reorder_level: Optional[int] = None, max_stock_level: Optional[int] = None,
                      location: Optional[str] = None) -> StockItem:
    """
    Add a new stock item to the session and flush it.

    available_quantity starts equal to initial_quantity and nothing is reserved.
    The caller owns the transaction.
    """
    if reorder_level is None:
        reorder_level = _config('DEFAULT_REORDER_LEVEL', 10)
    if max_stock_level is None:
        max_stock_level = _config('DEFAULT_MAX_STOCK_LEVEL', 100)

    stock_item = StockItem(
        product_id=product_id,
        warehouse_id=warehouse_id,
        quantity=initial_quantity,
        available_quantity=initial_quantity,
        reserved_quantity=0,
        batch_number=batch_number or None,
        cost_price=cost_price,
        expiry_date=expiry_date,
        reorder_level=reorder_level,
        max_stock_level=max_stock_level,
        location=location,
        last_stock_in=datetime.now(timezone.utc) if initial_quantity > 0 else None,
    )
    session.add(stock_item)
    session.flush()
    logger.info(
        f"Created stock item {stock_item.id} for product {product_id} in warehouse {warehouse_id} "
        f"(batch={batch_number}, quantity={initial_quantity})"
    )
    return stock_item


def get_stock_item(session, stock_item_id) -> StockItem:
    """Get a stock item by id or raise NotFoundError."""
    stock_item = session.get(StockItem, stock_item_id)
    if stock_item is None:
        raise NotFoundError('Stock item not found')
    return stock_item


def list_stock_items(session, scope, page: int = 1, limit: int = 10, warehouse_id=None, product_id=None,
                     low_stock: bool = False, expired: bool = False, search: Optional[str] = None,
                     stock_level: Optional[str] = None):
    """
    Paginated stock listing restricted to the caller's scope.

    Returns (items, pagination) where pagination is
    {'page', 'limit', 'total', 'pages'}.
    """
    query = session.query(StockItem).join(Product, Product.id == StockItem.product_id)
    query = scope.filter_stock_query(query)

    if warehouse_id:
        query = query.filter(StockItem.warehouse_id == warehouse_id)
    if product_id:
        query = query.filter(StockItem.product_id == product_id)
    if low_stock:
        query = query.filter(StockItem.available_quantity <= StockItem.reorder_level)
    if expired:
        query = query.filter(StockItem.expiry_date < datetime.now(timezone.utc))
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(like), Product.sku.ilike(like)))

    if stock_level == 'low':
        query = query.filter(StockItem.available_quantity <= StockItem.reorder_level)
    elif stock_level == 'out':
        query = query.filter(StockItem.available_quantity == 0)
    elif stock_level == 'high':
        query = query.filter(StockItem.available_quantity > StockItem.reorder_level)

    total = query.count()
    items = (
        query.options(joinedload(StockItem.product), joinedload(StockItem.warehouse))
        .order_by(StockItem.updated_at.desc(), StockItem.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    pagination = {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': math.ceil(total / limit) if limit else 0,
    }
    return items, pagination


def get_warehouse(session, warehouse_id, lock: bool = False) -> WarehouseLocation:
    """Get a warehouse by id or raise NotFoundError. Locking serializes item creation."""
    query = session.query(WarehouseLocation).filter(WarehouseLocation.id == warehouse_id)
    if lock:
        query = query.with_for_update()
    warehouse = query.first()
    if warehouse is None:
        raise NotFoundError('Warehouse not found')
    return warehouse


def register_stock_item(session, scope, product_id, warehouse_id, quantity: int = 0,
                        batch_number: Optional[str] = None, expiry_date=None, cost_price=None,
                        reorder_level: Optional[int] = None, max_stock_level: Optional[int] = None,
                        location: Optional[str] = None) -> StockItem:
    """
    Create a stock item for a product/warehouse/batch triple and commit it.

    A positive opening quantity is recorded as an INITIAL_STOCK movement.

    Raises:
        NotFoundError: unknown product or warehouse
        ForbiddenError: product outside the caller's scope
        BusinessLogicError: an item already exists for the triple
    """
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError('Product not found')
    scope.ensure_product(product)

    try:
        # Warehouse lock serializes concurrent creation of the same triple
        warehouse = get_warehouse(session, warehouse_id, lock=True)
        if find_by_product_warehouse_batch(session, product.id, warehouse.id, batch_number):
            raise BusinessLogicError('Stock item already exists for this product, warehouse and batch')

        stock_item = create_stock_item(
            session,
            product_id=product.id,
            warehouse_id=warehouse.id,
            initial_quantity=quantity,
            batch_number=batch_number,
            cost_price=cost_price,
            expiry_date=expiry_date,
            reorder_level=reorder_level,
            max_stock_level=max_stock_level,
            location=location,
        )
        if quantity > 0:
            session.add(StockMovement(
                stock_item_id=stock_item.id,
                movement_type=MovementType.STOCK_IN,
                quantity=quantity,
                reference_type=StockReferenceType.INITIAL_STOCK,
                reason='Initial stock',
                notes='Initial stock entry',
                performed_by=scope.performed_by,
            ))
            session.flush()

        log_action(
            session, AuditAction.CREATE_STOCK_ITEM, 'stock_items', stock_item.id,
            new_values=stock_item.to_dict(),
            user_id=scope.user_id, actor=scope.performed_by
        )
        session.commit()
    except FulfillmentError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"Failed to create stock item: {e}")
        raise FulfillmentError('Failed to create stock item') from e

    invalidate_inventory_cache(product.merchant_id)
    return stock_item


def get_movement_history(session, scope, stock_item_id, limit: Optional[int] = None):
    """Return (stock_item, movements) with the newest movements first."""
    stock_item = get_stock_item(session, stock_item_id)
    scope.ensure_stock_item(stock_item)
    if limit is None:
        limit = _config('MOVEMENT_HISTORY_LIMIT', 50)

    movements = (
        session.query(StockMovement)
        .filter(StockMovement.stock_item_id == stock_item.id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
    return stock_item, movements
