"""Warehouse location model."""
from sqlalchemy import Column, String, Boolean, Integer, DateTime, ForeignKey, Table
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sjfulfillment.database import Base, BigId


merchant_warehouse = Table(
    'merchant_warehouse',
    Base.metadata,
    Column('merchant_id', BigId, ForeignKey('merchant.id'), primary_key=True),
    Column('warehouse_id', BigId, ForeignKey('warehouse_location.id'), primary_key=True),
)


class WarehouseLocation(Base):
    """Physical warehouse holding stock items."""

    __tablename__ = 'warehouse_location'

    id = Column(BigId, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=False, unique=True)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    capacity = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    merchants = relationship('Merchant', secondary=merchant_warehouse, back_populates='warehouses')
    stock_items = relationship('StockItem', back_populates='warehouse')

    def __repr__(self):
        return f"<WarehouseLocation(id={self.id}, code='{self.code}')>"

    def to_summary(self):
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'city': self.city,
            'state': self.state,
        }
