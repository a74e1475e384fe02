"""Stock movement model - append-only ledger of quantity changes."""
import enum
from sqlalchemy import Column, String, Integer, Text, DateTime, Enum, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sjfulfillment.database import Base, BigId


class MovementType(enum.Enum):
    """Canonical movement kinds. Boundary adapters translate their own names."""
    STOCK_IN = "STOCK_IN"
    STOCK_OUT = "STOCK_OUT"
    ADJUSTMENT = "ADJUSTMENT"
    TRANSFER = "TRANSFER"
    DAMAGE = "DAMAGE"
    RETURN = "RETURN"

    @property
    def is_inbound(self):
        return self in (MovementType.STOCK_IN, MovementType.RETURN)

    @property
    def is_outbound(self):
        return self in (MovementType.STOCK_OUT, MovementType.DAMAGE, MovementType.TRANSFER)


class StockReferenceType:
    """Well-known reference_type tags. reference_type itself is free-form."""
    INITIAL_STOCK = 'INITIAL_STOCK'
    BULK_UPLOAD = 'BULK_UPLOAD'
    API_UPDATE = 'API_UPDATE'
    TRANSFER_IN = 'TRANSFER_IN'
    TRANSFER_OUT = 'TRANSFER_OUT'
    ORDER_SHIPMENT = 'ORDER_SHIPMENT'
    MANUAL = 'MANUAL'


class StockMovement(Base):
    """Immutable movement row. Never updated or deleted by application code."""

    __tablename__ = 'stock_movement'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_stock_movement_quantity_positive'),
    )

    id = Column(BigId, primary_key=True, autoincrement=True)
    stock_item_id = Column(BigId, ForeignKey('stock_item.id'), nullable=False, index=True)
    movement_type = Column(Enum(MovementType, name='stock_movement_type'), nullable=False)
    quantity = Column(Integer, nullable=False)
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(String(100), nullable=True)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    performed_by = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    # Relationships
    stock_item = relationship('StockItem', back_populates='movements')

    def __repr__(self):
        return f"<StockMovement(id={self.id}, type={self.movement_type.value}, quantity={self.quantity})>"

    def to_dict(self):
        return {
            'id': self.id,
            'stockItemId': self.stock_item_id,
            'movementType': self.movement_type.value,
            'quantity': self.quantity,
            'referenceType': self.reference_type,
            'referenceId': self.reference_id,
            'reason': self.reason,
            'notes': self.notes,
            'performedBy': self.performed_by,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
