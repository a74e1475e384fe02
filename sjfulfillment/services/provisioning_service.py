"""
Provisioning helper - make sure a product has at least one stock item.

Used by product creation and the provisioning sweep. Functions here flush
but never commit; the calling flow owns the transaction.

Lock order: product row, then the target warehouse row, then stock items.
The warehouse lock is the one every item-creating path takes, so a concurrent
external update or stock item registration for the same warehouse waits here.
"""
import logging

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from sjfulfillment.exceptions import NotFoundError, NoWarehouseAvailableError
from sjfulfillment.models import (
    Product, StockItem, StockMovement, MovementType, StockReferenceType,
    WarehouseLocation, merchant_warehouse, AuditAction
)
from sjfulfillment.services.audit_service import log_action
from sjfulfillment.services.cache_service import invalidate_inventory_cache
from sjfulfillment.services.stock_item_service import (
    create_stock_item, find_by_product_warehouse_batch, get_warehouse
)

logger = logging.getLogger(__name__)


def _default_warehouse_fields():
    defaults = {
        'DEFAULT_WAREHOUSE_NAME': 'Main Warehouse',
        'DEFAULT_WAREHOUSE_CODE': 'MAIN-001',
        'DEFAULT_WAREHOUSE_ADDRESS': 'Default Address',
        'DEFAULT_WAREHOUSE_CITY': 'Lagos',
        'DEFAULT_WAREHOUSE_STATE': 'Lagos',
        'DEFAULT_WAREHOUSE_COUNTRY': 'Nigeria',
        'DEFAULT_WAREHOUSE_CAPACITY': 10000,
    }
    if has_app_context():
        defaults = {key: current_app.config.get(key, value) for key, value in defaults.items()}
    return {
        'name': defaults['DEFAULT_WAREHOUSE_NAME'],
        'code': defaults['DEFAULT_WAREHOUSE_CODE'],
        'address': defaults['DEFAULT_WAREHOUSE_ADDRESS'],
        'city': defaults['DEFAULT_WAREHOUSE_CITY'],
        'state': defaults['DEFAULT_WAREHOUSE_STATE'],
        'country': defaults['DEFAULT_WAREHOUSE_COUNTRY'],
        'capacity': defaults['DEFAULT_WAREHOUSE_CAPACITY'],
    }


def ensure_default_warehouse(session) -> WarehouseLocation:
    """Return the earliest active warehouse, creating the placeholder one if none exists."""
    warehouse = session.query(WarehouseLocation).filter(
        WarehouseLocation.is_active.is_(True)
    ).order_by(WarehouseLocation.created_at, WarehouseLocation.id).first()

    if warehouse:
        return warehouse

    logger.info("No active warehouse found, creating default warehouse...")
    try:
        warehouse = WarehouseLocation(is_active=True, **_default_warehouse_fields())
        session.add(warehouse)
        session.flush()
    except SQLAlchemyError as e:
        logger.exception(f"Failed to create default warehouse: {e}")
        raise NoWarehouseAvailableError() from e

    logger.info(f"Created default warehouse: {warehouse.name}")
    return warehouse


def resolve_warehouse_for_product(session, product: Product) -> WarehouseLocation:
    """
    Pick the warehouse for a product's first stock item.

    Preference: the merchant's earliest-created active warehouse, then any
    active warehouse, then a newly created default warehouse.
    """
    warehouse = session.query(WarehouseLocation).join(
        merchant_warehouse, merchant_warehouse.c.warehouse_id == WarehouseLocation.id
    ).filter(
        merchant_warehouse.c.merchant_id == product.merchant_id,
        WarehouseLocation.is_active.is_(True)
    ).order_by(WarehouseLocation.created_at, WarehouseLocation.id).first()

    if warehouse:
        return warehouse
    return ensure_default_warehouse(session)


def ensure_product_stock_item(session, product_id, initial_quantity: int = 0, *,
                              reference_type: str = StockReferenceType.INITIAL_STOCK,
                              performed_by: str = 'SYSTEM', user_id=None) -> StockItem:
    """
    Guarantee the product has a stock item and return it.

    If one exists the first is returned untouched: initial_quantity is NOT
    added to it. Otherwise a stock item is created in the resolved warehouse
    and, for a positive initial_quantity, a STOCK_IN movement tagged with
    reference_type is appended.
    """
    # Serializes concurrent provisioning of the same product
    product = session.query(Product).filter(Product.id == product_id).with_for_update().first()
    if product is None:
        raise NotFoundError('Product not found')

    existing = session.query(StockItem).filter(
        StockItem.product_id == product.id
    ).order_by(StockItem.id).first()
    if existing:
        return existing

    warehouse = resolve_warehouse_for_product(session, product)
    warehouse = get_warehouse(session, warehouse.id, lock=True)
    # Another path may have created the item while we waited for the lock
    existing = find_by_product_warehouse_batch(session, product.id, warehouse.id, None)
    if existing:
        return existing

    stock_item = create_stock_item(
        session,
        product_id=product.id,
        warehouse_id=warehouse.id,
        initial_quantity=initial_quantity,
    )

    if initial_quantity > 0:
        session.add(StockMovement(
            stock_item_id=stock_item.id,
            movement_type=MovementType.STOCK_IN,
            quantity=initial_quantity,
            reference_type=reference_type,
            reason='Initial stock',
            notes='Initial stock entry',
            performed_by=performed_by,
        ))
        session.flush()

    log_action(
        session, AuditAction.PROVISION_STOCK_ITEM, 'stock_items', stock_item.id,
        new_values={
            'productId': product.id,
            'warehouseId': warehouse.id,
            'quantity': initial_quantity,
            'referenceType': reference_type,
        },
        user_id=user_id, actor=performed_by
    )
    logger.info(f"Created stock item for product: {product.id} in warehouse: {warehouse.name}")
    return stock_item


def find_products_without_stock(session):
    """Products that have no stock item at all."""
    return session.query(Product).outerjoin(
        StockItem, StockItem.product_id == Product.id
    ).filter(StockItem.id.is_(None)).order_by(Product.id).all()


def provision_missing_stock_items(session, performed_by: str = 'SYSTEM') -> int:
    """Create an empty stock item for every product lacking one; commits. Returns the count."""
    products = find_products_without_stock(session)
    try:
        for product in products:
            ensure_product_stock_item(session, product.id, 0, performed_by=performed_by)
        session.commit()
    except Exception:
        session.rollback()
        raise
    for merchant_id in {product.merchant_id for product in products}:
        invalidate_inventory_cache(merchant_id)
    logger.info(f"Provisioned stock items for {len(products)} products")
    return len(products)
