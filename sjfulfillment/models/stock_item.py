"""Stock item model - quantity record for one product in one warehouse/batch."""
from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sjfulfillment.database import Base, BigId


def _iso(value):
    return value.isoformat() if value is not None else None


class StockItem(Base):
    """
    Stock item per (product, warehouse, batch).

    available_quantity is always written as quantity - reserved_quantity by
    the movement service; nothing else assigns the quantity columns.
    """

    __tablename__ = 'stock_item'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='ck_stock_item_quantity_non_negative'),
        CheckConstraint('available_quantity >= 0', name='ck_stock_item_available_non_negative'),
        CheckConstraint('reserved_quantity >= 0', name='ck_stock_item_reserved_non_negative'),
        CheckConstraint('available_quantity <= quantity', name='ck_stock_item_available_le_quantity'),
        Index('ix_stock_item_product_warehouse_batch', 'product_id', 'warehouse_id', 'batch_number'),
    )

    id = Column(BigId, primary_key=True, autoincrement=True)
    product_id = Column(BigId, ForeignKey('product.id'), nullable=False, index=True)
    warehouse_id = Column(BigId, ForeignKey('warehouse_location.id'), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    available_quantity = Column(Integer, nullable=False, default=0)
    reserved_quantity = Column(Integer, nullable=False, default=0)
    reorder_level = Column(Integer, nullable=False, default=10)
    max_stock_level = Column(Integer, nullable=False, default=100)
    batch_number = Column(String(100), nullable=True)
    expiry_date = Column(DateTime(timezone=True), nullable=True)
    location = Column(String(100), nullable=True)  # Bin/shelf inside the warehouse
    cost_price = Column(Numeric(12, 2), nullable=True)
    last_stock_in = Column(DateTime(timezone=True), nullable=True)
    last_stock_out = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    product = relationship('Product', back_populates='stock_items')
    warehouse = relationship('WarehouseLocation', back_populates='stock_items')
    movements = relationship(
        'StockMovement',
        back_populates='stock_item',
        order_by='StockMovement.id',
        cascade='all, delete-orphan',
    )

    def __repr__(self):
        return (
            f"<StockItem(id={self.id}, product_id={self.product_id}, warehouse_id={self.warehouse_id}, "
            f"quantity={self.quantity}, available={self.available_quantity}, reserved={self.reserved_quantity})>"
        )

    @property
    def is_low_stock(self):
        return self.available_quantity <= self.reorder_level

    def to_dict(self, include_relations=False):
        data = {
            'id': self.id,
            'productId': self.product_id,
            'warehouseId': self.warehouse_id,
            'quantity': self.quantity,
            'availableQuantity': self.available_quantity,
            'reservedQuantity': self.reserved_quantity,
            'reorderLevel': self.reorder_level,
            'maxStockLevel': self.max_stock_level,
            'batchNumber': self.batch_number,
            'expiryDate': _iso(self.expiry_date),
            'location': self.location,
            'costPrice': float(self.cost_price) if self.cost_price is not None else None,
            'lastStockIn': _iso(self.last_stock_in),
            'lastStockOut': _iso(self.last_stock_out),
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }
        if include_relations:
            data['product'] = self.product.to_summary() if self.product else None
            data['warehouse'] = self.warehouse.to_summary() if self.warehouse else None
        return data
