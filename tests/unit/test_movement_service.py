"""
Unit tests for the movement engine: quantity arithmetic, rejections,
transfers, reservations and the ledger rows they leave behind.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from sjfulfillment.exceptions import (
    FulfillmentError, ValidationError, NotFoundError, ForbiddenError, BusinessLogicError,
    InsufficientStockError, NegativeAvailableStockError
)
from sjfulfillment.models import (
    StockItem, StockMovement, MovementType, StockReferenceType, AuditLog, AuditAction
)
from sjfulfillment.services import movement_service
from sjfulfillment.services.access_scope import AccessScope
from sjfulfillment.services.movement_service import (
    apply_movement, compute_new_levels, validate_quantity, InvalidQuantityError,
    reserve_stock, release_reservation, ship_reserved
)


def _levels(item):
    return item.quantity, item.available_quantity, item.reserved_quantity


def _movements(session, item):
    return session.query(StockMovement).filter_by(stock_item_id=item.id).order_by(StockMovement.id).all()


class TestValidateQuantity:

    @pytest.mark.parametrize('value', [0, -1, 1.5, '3', None, True])
    def test_rejects_non_positive_or_non_integer(self, value):
        with pytest.raises(InvalidQuantityError):
            validate_quantity(value)

    def test_invalid_quantity_is_a_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_quantity(0)
        assert exc_info.value.status_code == 400

    def test_accepts_positive_integer(self):
        assert validate_quantity(7) == 7


class TestComputeNewLevels:

    def test_inbound_types_add_to_quantity(self):
        item = StockItem(quantity=10, available_quantity=8, reserved_quantity=2)
        assert compute_new_levels(item, MovementType.STOCK_IN, 5) == (15, 2)
        assert compute_new_levels(item, MovementType.RETURN, 5) == (15, 2)

    def test_outbound_limited_by_available_not_on_hand(self):
        item = StockItem(quantity=10, available_quantity=8, reserved_quantity=2)
        assert compute_new_levels(item, MovementType.STOCK_OUT, 8) == (2, 2)
        with pytest.raises(InsufficientStockError):
            compute_new_levels(item, MovementType.STOCK_OUT, 9)

    def test_rejection_messages_per_type(self):
        item = StockItem(quantity=5, available_quantity=5, reserved_quantity=0)
        messages = {}
        for movement_type in (MovementType.STOCK_OUT, MovementType.DAMAGE, MovementType.TRANSFER):
            with pytest.raises(InsufficientStockError) as exc_info:
                compute_new_levels(item, movement_type, 6)
            messages[movement_type] = exc_info.value.message
        assert messages[MovementType.STOCK_OUT] == 'Insufficient available stock'
        assert messages[MovementType.DAMAGE] == 'Insufficient available stock to damage'
        assert messages[MovementType.TRANSFER] == 'Insufficient available stock for transfer'

    def test_adjustment_sets_absolute_quantity(self):
        item = StockItem(quantity=10, available_quantity=10, reserved_quantity=0)
        assert compute_new_levels(item, MovementType.ADJUSTMENT, 3) == (3, 0)

    def test_adjustment_below_reserved_rejected(self):
        item = StockItem(quantity=10, available_quantity=4, reserved_quantity=6)
        with pytest.raises(NegativeAvailableStockError) as exc_info:
            compute_new_levels(item, MovementType.ADJUSTMENT, 5)
        assert exc_info.value.message == 'Adjustment would result in negative available stock'


class TestApplyMovement:

    def test_stock_out_decrements_and_records_movement(self, session, stock_item, scope1):
        result = apply_movement(session, stock_item.id, MovementType.STOCK_OUT, 30, scope=scope1, reason='Sale')

        assert _levels(result.stock_item) == (70, 70, 0)
        movements = _movements(session, stock_item)
        assert len(movements) == 1
        assert movements[0].movement_type == MovementType.STOCK_OUT
        assert movements[0].quantity == 30
        assert movements[0].performed_by == str(scope1.user_id)
        assert result.stock_item.last_stock_out is not None

    def test_stock_in_and_return_increment(self, session, stock_item, scope1):
        apply_movement(session, stock_item.id, MovementType.STOCK_IN, 15, scope=scope1, reason='Restock')
        result = apply_movement(session, stock_item.id, MovementType.RETURN, 5, scope=scope1, reason='Return')

        assert _levels(result.stock_item) == (120, 120, 0)
        assert result.stock_item.last_stock_in is not None

    def test_insufficient_stock_leaves_item_unchanged(self, session, stock_item, scope1):
        with pytest.raises(InsufficientStockError):
            apply_movement(session, stock_item.id, MovementType.STOCK_OUT, 1000, scope=scope1, reason='Sale')

        item = session.get(StockItem, stock_item.id)
        assert _levels(item) == (100, 100, 0)
        assert _movements(session, item) == []

    def test_damage_beyond_available_rejected(self, session, make_stock_item, product1, warehouse_a, scope1):
        item = make_stock_item(product1, warehouse_a, quantity=10, reserved=8)
        with pytest.raises(InsufficientStockError) as exc_info:
            apply_movement(session, item.id, MovementType.DAMAGE, 3, scope=scope1, reason='Broken')

        assert exc_info.value.message == 'Insufficient available stock to damage'
        assert _levels(session.get(StockItem, item.id)) == (10, 2, 8)
        assert _movements(session, item) == []

    def test_adjustment_keeps_reserved_units(self, session, make_stock_item, product1, warehouse_a, scope1):
        item = make_stock_item(product1, warehouse_a, quantity=40, reserved=20)
        result = apply_movement(session, item.id, MovementType.ADJUSTMENT, 50, scope=scope1, reason='Count')

        assert _levels(result.stock_item) == (50, 30, 20)
        assert _movements(session, item)[0].quantity == 50

    def test_adjustment_below_reserved_is_rejected(self, session, make_stock_item, product1, warehouse_a, scope1):
        item = make_stock_item(product1, warehouse_a, quantity=40, reserved=20)
        with pytest.raises(NegativeAvailableStockError):
            apply_movement(session, item.id, MovementType.ADJUSTMENT, 10, scope=scope1, reason='Count')

        assert _levels(session.get(StockItem, item.id)) == (40, 20, 20)

    def test_unknown_stock_item(self, session, scope1):
        with pytest.raises(NotFoundError):
            apply_movement(session, 9999, MovementType.STOCK_IN, 1, scope=scope1, reason='x')

    def test_other_merchant_scope_forbidden(self, session, stock_item, user2):
        scope2 = AccessScope.for_user(user2)
        with pytest.raises(ForbiddenError):
            apply_movement(session, stock_item.id, MovementType.STOCK_OUT, 1, scope=scope2, reason='x')

        assert _levels(session.get(StockItem, stock_item.id)) == (100, 100, 0)

    def test_writes_audit_entry(self, session, stock_item, scope1):
        result = apply_movement(session, stock_item.id, MovementType.STOCK_OUT, 5, scope=scope1, reason='Sale')

        entries = session.query(AuditLog).filter_by(action=AuditAction.STOCK_MOVEMENT.value).all()
        assert len(entries) == 1
        assert entries[0].entity_id == str(result.movement.id)
        assert entries[0].actor == str(scope1.user_id)

    def test_ledger_has_one_row_per_movement(self, session, stock_item, scope1):
        requested = [(MovementType.STOCK_IN, 10), (MovementType.STOCK_OUT, 25),
                     (MovementType.DAMAGE, 5), (MovementType.RETURN, 3), (MovementType.ADJUSTMENT, 60)]
        for movement_type, quantity in requested:
            apply_movement(session, stock_item.id, movement_type, quantity, scope=scope1, reason='seq')

        movements = _movements(session, stock_item)
        assert [(m.movement_type, m.quantity) for m in movements] == requested

    def test_levels_never_go_negative(self, session, stock_item, scope1):
        sequence = [(MovementType.STOCK_OUT, 60), (MovementType.DAMAGE, 50), (MovementType.STOCK_OUT, 40),
                    (MovementType.STOCK_IN, 5), (MovementType.DAMAGE, 46), (MovementType.ADJUSTMENT, 1),
                    (MovementType.STOCK_OUT, 2)]
        for movement_type, quantity in sequence:
            try:
                apply_movement(session, stock_item.id, movement_type, quantity, scope=scope1, reason='seq')
            except InsufficientStockError:
                pass
            item = session.get(StockItem, stock_item.id)
            assert item.quantity >= 0
            assert item.available_quantity >= 0
            assert item.available_quantity + item.reserved_quantity == item.quantity


class TestTransfer:

    def test_transfer_creates_destination_item(self, session, stock_item, warehouse_b, scope1):
        result = apply_movement(
            session, stock_item.id, MovementType.TRANSFER, 20,
            scope=scope1, reason='Rebalance', target_warehouse_id=warehouse_b.id
        )

        assert _levels(result.stock_item) == (80, 80, 0)
        target = result.target_stock_item
        assert target.warehouse_id == warehouse_b.id
        assert target.product_id == stock_item.product_id
        assert _levels(target) == (20, 20, 0)
        assert target.reorder_level == stock_item.reorder_level
        assert target.max_stock_level == stock_item.max_stock_level

        source_movement = result.movement
        assert source_movement.movement_type == MovementType.TRANSFER
        assert source_movement.reference_type == StockReferenceType.TRANSFER_OUT
        assert result.target_movement.movement_type == MovementType.STOCK_IN
        assert result.target_movement.reference_type == StockReferenceType.TRANSFER_IN
        assert result.target_movement.reference_id == str(source_movement.id)

    def test_transfer_conserves_quantity(self, session, make_stock_item, product1, warehouse_a, warehouse_b, scope1):
        source = make_stock_item(product1, warehouse_a, quantity=70)
        dest = make_stock_item(product1, warehouse_b, quantity=15)
        before = source.quantity + dest.quantity

        apply_movement(session, source.id, MovementType.TRANSFER, 25,
                       scope=scope1, reason='Rebalance', target_warehouse_id=warehouse_b.id)

        source = session.get(StockItem, source.id)
        dest = session.get(StockItem, dest.id)
        assert source.quantity + dest.quantity == before
        assert _levels(dest) == (40, 40, 0)
        assert session.query(StockItem).filter_by(product_id=product1.id).count() == 2

    def test_transfer_matches_batch(self, session, make_stock_item, product1, warehouse_a, warehouse_b, scope1):
        source = make_stock_item(product1, warehouse_a, quantity=30, batch_number='LOT-1')
        other_batch = make_stock_item(product1, warehouse_b, quantity=5, batch_number='LOT-2')

        result = apply_movement(session, source.id, MovementType.TRANSFER, 10,
                                scope=scope1, reason='Move', target_warehouse_id=warehouse_b.id)

        assert result.target_stock_item.id != other_batch.id
        assert result.target_stock_item.batch_number == 'LOT-1'
        assert session.get(StockItem, other_batch.id).quantity == 5

    def test_transfer_requires_target(self, session, stock_item, scope1):
        with pytest.raises(ValidationError):
            apply_movement(session, stock_item.id, MovementType.TRANSFER, 5, scope=scope1, reason='x')

    def test_transfer_to_same_warehouse_rejected(self, session, stock_item, warehouse_a, scope1):
        with pytest.raises(ValidationError):
            apply_movement(session, stock_item.id, MovementType.TRANSFER, 5,
                           scope=scope1, reason='x', target_warehouse_id=warehouse_a.id)

    def test_transfer_to_unknown_warehouse(self, session, stock_item, scope1):
        with pytest.raises(NotFoundError):
            apply_movement(session, stock_item.id, MovementType.TRANSFER, 5,
                           scope=scope1, reason='x', target_warehouse_id=4242)

        assert _levels(session.get(StockItem, stock_item.id)) == (100, 100, 0)

    def test_insufficient_transfer_creates_nothing(self, session, stock_item, warehouse_b, scope1):
        with pytest.raises(InsufficientStockError) as exc_info:
            apply_movement(session, stock_item.id, MovementType.TRANSFER, 101,
                           scope=scope1, reason='x', target_warehouse_id=warehouse_b.id)

        assert exc_info.value.message == 'Insufficient available stock for transfer'
        assert session.query(StockItem).filter_by(warehouse_id=warehouse_b.id).count() == 0
        assert session.query(StockMovement).count() == 0

    def test_failure_while_crediting_target_rolls_back_source(self, session, stock_item, warehouse_b, scope1,
                                                              monkeypatch):
        def fail_credit(*args, **kwargs):
            raise SQLAlchemyError('connection lost')

        monkeypatch.setattr(movement_service, '_credit_transfer_target', fail_credit)

        with pytest.raises(FulfillmentError) as exc_info:
            apply_movement(session, stock_item.id, MovementType.TRANSFER, 5,
                           scope=scope1, reason='Rebalance', target_warehouse_id=warehouse_b.id)

        assert exc_info.value.status_code == 500
        source = session.get(StockItem, stock_item.id)
        assert (source.quantity, source.available_quantity) == (100, 100)
        assert session.query(StockMovement).count() == 0
        assert session.query(StockItem).filter_by(warehouse_id=warehouse_b.id).count() == 0


class TestEndToEnd:

    def test_out_transfer_then_rejected_out(self, session, stock_item, warehouse_b, scope1):
        apply_movement(session, stock_item.id, MovementType.STOCK_OUT, 30, scope=scope1, reason='Sale')
        assert _levels(session.get(StockItem, stock_item.id)) == (70, 70, 0)

        result = apply_movement(session, stock_item.id, MovementType.TRANSFER, 20,
                                scope=scope1, reason='Move', target_warehouse_id=warehouse_b.id)
        assert _levels(result.stock_item) == (50, 50, 0)
        assert _levels(result.target_stock_item) == (20, 20, 0)

        with pytest.raises(InsufficientStockError):
            apply_movement(session, stock_item.id, MovementType.STOCK_OUT, 1000, scope=scope1, reason='Sale')
        assert _levels(session.get(StockItem, stock_item.id)) == (50, 50, 0)

        assert session.query(StockMovement).count() == 3


class TestReservations:

    def test_reserve_moves_units_to_reserved(self, session, stock_item, scope1):
        item = reserve_stock(session, stock_item.id, 30, scope=scope1, order_id='ORD-1')

        assert _levels(item) == (100, 70, 30)
        assert _movements(session, item) == []
        assert session.query(AuditLog).filter_by(action=AuditAction.STOCK_RESERVED.value).count() == 1

    def test_reserve_beyond_available_rejected(self, session, stock_item, scope1):
        reserve_stock(session, stock_item.id, 90, scope=scope1)
        with pytest.raises(InsufficientStockError):
            reserve_stock(session, stock_item.id, 11, scope=scope1)

        assert _levels(session.get(StockItem, stock_item.id)) == (100, 10, 90)

    def test_release_returns_units(self, session, stock_item, scope1):
        reserve_stock(session, stock_item.id, 30, scope=scope1)
        item = release_reservation(session, stock_item.id, 10, scope=scope1)

        assert _levels(item) == (100, 80, 20)

    def test_release_more_than_reserved_rejected(self, session, stock_item, scope1):
        reserve_stock(session, stock_item.id, 5, scope=scope1)
        with pytest.raises(BusinessLogicError):
            release_reservation(session, stock_item.id, 6, scope=scope1)

    def test_ship_consumes_reserved_units(self, session, stock_item, scope1):
        reserve_stock(session, stock_item.id, 30, scope=scope1, order_id='ORD-7')
        result = ship_reserved(session, stock_item.id, 25, scope=scope1, order_id='ORD-7')

        assert _levels(result.stock_item) == (75, 70, 5)
        assert result.movement.movement_type == MovementType.STOCK_OUT
        assert result.movement.reference_type == StockReferenceType.ORDER_SHIPMENT
        assert result.movement.reference_id == 'ORD-7'

    def test_ship_more_than_reserved_rejected(self, session, stock_item, scope1):
        with pytest.raises(BusinessLogicError):
            ship_reserved(session, stock_item.id, 1, scope=scope1)
