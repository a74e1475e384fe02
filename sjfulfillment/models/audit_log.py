"""
Audit Log model for tracking "who changed what" across the application.
Coarser than the stock movement ledger.
"""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum

from sjfulfillment.database import Base, BigId


class AuditAction(enum.Enum):
    """Enumeration of auditable actions."""
    # Stock
    CREATE_STOCK_ITEM = "CREATE_STOCK_ITEM"
    STOCK_MOVEMENT = "STOCK_MOVEMENT"
    STOCK_RESERVED = "STOCK_RESERVED"
    STOCK_RELEASED = "STOCK_RELEASED"
    PROVISION_STOCK_ITEM = "PROVISION_STOCK_ITEM"

    # Products
    CREATE_PRODUCT = "CREATE_PRODUCT"

    # External API
    API_INVENTORY_UPDATE = "API_INVENTORY_UPDATE"


def _utcnow():
    return datetime.now(timezone.utc)


class AuditLog(Base):
    """Audit log entry."""
    __tablename__ = 'audit_log'

    id = Column(BigId, primary_key=True, autoincrement=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=True, index=True)
    actor = Column(String(100), nullable=True)  # user id or API_KEY_{id}
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(50))  # e.g. 'stock_items', 'stock_movements'
    entity_id = Column(String(100))
    old_values = Column(Text)  # JSON
    new_values = Column(Text)  # JSON
    ip_address = Column(String(45))  # IPv4 or IPv6
    user_agent = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    # Relationships
    user = relationship('AppUser')

    def __repr__(self):
        return f"<AuditLog {self.action} by {self.actor} at {self.created_at}>"
