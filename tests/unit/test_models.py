"""
Unit tests for SQLAlchemy models.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from sjfulfillment.models import (
    Merchant, AppUser, UserRole, Product, StockItem, StockMovement, MovementType
)


class TestMerchantModel:
    """Tests for Merchant model."""

    def test_new_merchant_is_pending(self, session):
        merchant = Merchant(business_name='Fresh Foods')
        session.add(merchant)
        session.commit()

        assert merchant.id is not None
        assert merchant.onboarding_status == 'PENDING'
        assert merchant.is_approved() is False

    def test_approved_merchant(self, merchant1):
        assert merchant1.is_approved() is True


class TestAppUserModel:
    """Tests for AppUser model."""

    def test_password_hashing(self, session):
        user = AppUser(email='hash@test.com', role=UserRole.MERCHANT_STAFF.value)
        user.set_password('securepassword')
        session.add(user)
        session.commit()

        assert user.password_hash != 'securepassword'
        assert user.check_password('securepassword') is True
        assert user.check_password('wrong') is False

    def test_platform_roles(self, admin_user, warehouse_user, user1):
        assert admin_user.is_platform_user() is True
        assert warehouse_user.is_platform_user() is True
        assert user1.is_platform_user() is False

    def test_email_unique(self, session, user1):
        session.add(AppUser(email=user1.email, role=UserRole.MERCHANT_STAFF.value))
        with pytest.raises(IntegrityError):
            session.commit()


class TestProductModel:

    def test_sku_unique_per_merchant(self, session, product1):
        session.add(Product(merchant_id=product1.merchant_id, sku=product1.sku, name='Dup', unit_price=1))
        with pytest.raises(IntegrityError):
            session.commit()

    def test_same_sku_for_other_merchant(self, session, product1, merchant2):
        product = Product(merchant_id=merchant2.id, sku=product1.sku, name='Other', unit_price=1)
        session.add(product)
        session.commit()

        assert product.id is not None


class TestStockItemModel:
    """Tests for StockItem constraints and serialization."""

    def test_negative_quantity_rejected(self, session, stock_item):
        stock_item.quantity = -1
        stock_item.available_quantity = -1
        with pytest.raises(IntegrityError):
            session.commit()

    def test_available_cannot_exceed_quantity(self, session, stock_item):
        stock_item.available_quantity = stock_item.quantity + 1
        with pytest.raises(IntegrityError):
            session.commit()

    def test_low_stock_flag(self, make_stock_item, product1, warehouse_a):
        item = make_stock_item(product1, warehouse_a, quantity=10, reorder_level=10)
        assert item.is_low_stock is True
        item = make_stock_item(product1, warehouse_a, quantity=11, reorder_level=10, batch_number='B')
        assert item.is_low_stock is False

    def test_to_dict_uses_camel_case(self, session, stock_item):
        data = stock_item.to_dict(include_relations=True)

        assert data['availableQuantity'] == 100
        assert data['reservedQuantity'] == 0
        assert data['product']['sku'] == 'SKU-M1-001'
        assert data['warehouse']['code'] == 'WH-A'


class TestStockMovementModel:

    def test_quantity_must_be_positive(self, session, stock_item):
        session.add(StockMovement(
            stock_item_id=stock_item.id,
            movement_type=MovementType.STOCK_IN,
            quantity=0,
            performed_by='test'
        ))
        with pytest.raises(IntegrityError):
            session.commit()

    def test_movement_type_direction(self):
        assert MovementType.RETURN.is_inbound
        assert MovementType.TRANSFER.is_outbound
        assert not MovementType.ADJUSTMENT.is_inbound
        assert not MovementType.ADJUSTMENT.is_outbound
