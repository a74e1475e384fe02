"""Product creation with opening stock."""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sjfulfillment.exceptions import FulfillmentError, BusinessLogicError, NotFoundError, ValidationError
from sjfulfillment.models import Merchant, Product, StockReferenceType, AuditAction
from sjfulfillment.services.audit_service import log_action
from sjfulfillment.services.cache_service import invalidate_inventory_cache
from sjfulfillment.services.provisioning_service import ensure_product_stock_item

logger = logging.getLogger(__name__)


def create_product(session, scope, sku: str, name: str, unit_price: Decimal = Decimal('0'),
                   initial_quantity: int = 0, merchant_id: Optional[int] = None,
                   description: Optional[str] = None, category: Optional[str] = None,
                   brand: Optional[str] = None):
    """
    Create a product and its first stock item in one transaction.

    Merchant users always create for their own merchant; platform users
    must name the merchant. Returns (product, stock_item).
    """
    if not scope.all_merchants:
        merchant_id = scope.merchant_id
    if merchant_id is None:
        raise ValidationError('merchantId is required')
    scope.ensure_merchant(merchant_id)

    try:
        if session.get(Merchant, merchant_id) is None:
            raise NotFoundError('Merchant not found')

        existing = session.query(Product).filter_by(merchant_id=merchant_id, sku=sku).first()
        if existing:
            raise BusinessLogicError(f"A product with SKU '{sku}' already exists")

        product = Product(
            merchant_id=merchant_id,
            sku=sku,
            name=name,
            description=description,
            category=category,
            brand=brand,
            unit_price=unit_price,
            is_active=True,
        )
        session.add(product)
        session.flush()

        stock_item = ensure_product_stock_item(
            session, product.id, initial_quantity,
            reference_type=StockReferenceType.INITIAL_STOCK,
            performed_by=scope.performed_by,
            user_id=scope.user_id,
        )

        log_action(
            session, AuditAction.CREATE_PRODUCT, 'products', product.id,
            new_values=dict(product.to_summary(), initialQuantity=initial_quantity),
            user_id=scope.user_id, actor=scope.performed_by
        )
        session.commit()
    except FulfillmentError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Duplicate product SKU {sku} for merchant {merchant_id}: {e}")
        raise BusinessLogicError(f"A product with SKU '{sku}' already exists")
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"Failed to create product: {e}")
        raise FulfillmentError('Failed to create product') from e

    invalidate_inventory_cache(merchant_id)
    logger.info(f"Created product {product.id} ({sku}) with initial stock {initial_quantity}")
    return product, stock_item
