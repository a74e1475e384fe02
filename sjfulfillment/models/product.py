"""Product model."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sjfulfillment.database import Base, BigId


class Product(Base):
    """Product model - owned by a merchant, stocked through StockItems."""

    __tablename__ = 'product'
    __table_args__ = (
        UniqueConstraint('merchant_id', 'sku', name='uq_product_merchant_sku'),
    )

    id = Column(BigId, primary_key=True, autoincrement=True)
    merchant_id = Column(BigId, ForeignKey('merchant.id'), nullable=False, index=True)
    sku = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    brand = Column(String(100), nullable=True)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    merchant = relationship('Merchant', back_populates='products')
    # Bulk product deletion is the only path that removes stock items
    stock_items = relationship('StockItem', back_populates='product', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', sku='{self.sku}')>"

    def to_summary(self):
        return {
            'id': self.id,
            'sku': self.sku,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'brand': self.brand,
            'unitPrice': float(self.unit_price) if self.unit_price is not None else None,
            'merchantId': self.merchant_id,
        }
