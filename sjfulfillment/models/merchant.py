"""Merchant model - each business selling through the fulfillment platform."""
import enum
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sjfulfillment.database import Base, BigId


class OnboardingStatus(enum.Enum):
    """Merchant onboarding states."""
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'
    SUSPENDED = 'SUSPENDED'


class Merchant(Base):
    """Merchant model - owner of products and API keys."""

    __tablename__ = 'merchant'

    id = Column(BigId, primary_key=True, autoincrement=True)
    business_name = Column(String(200), nullable=False)
    business_email = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    onboarding_status = Column(String(20), nullable=False, default=OnboardingStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    users = relationship('AppUser', back_populates='merchant')
    products = relationship('Product', back_populates='merchant')
    warehouses = relationship('WarehouseLocation', secondary='merchant_warehouse', back_populates='merchants')

    def __repr__(self):
        return f"<Merchant(id={self.id}, business_name='{self.business_name}')>"

    def is_approved(self):
        return self.onboarding_status == OnboardingStatus.APPROVED.value
