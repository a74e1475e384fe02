"""AppUser model - platform users and their role."""
import enum
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from sjfulfillment.database import Base, BigId


class UserRole(enum.Enum):
    """Platform roles."""
    SJFS_ADMIN = 'SJFS_ADMIN'
    MERCHANT_ADMIN = 'MERCHANT_ADMIN'
    MERCHANT_STAFF = 'MERCHANT_STAFF'
    WAREHOUSE_STAFF = 'WAREHOUSE_STAFF'


# Roles that operate across every merchant's inventory
PLATFORM_ROLES = (UserRole.SJFS_ADMIN.value, UserRole.WAREHOUSE_STAFF.value)

STOCK_ROLES = tuple(role.value for role in UserRole)


class AppUser(Base):
    """AppUser model - email/password users, optionally bound to a merchant."""

    __tablename__ = 'app_user'

    id = Column(BigId, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=True)
    full_name = Column(String(200), nullable=True)
    role = Column(String(30), nullable=False, default=UserRole.MERCHANT_STAFF.value)
    merchant_id = Column(BigId, ForeignKey('merchant.id'), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    merchant = relationship('Merchant', back_populates='users')

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def is_platform_user(self):
        """Admins and warehouse staff are not scoped to a merchant."""
        return self.role in PLATFORM_ROLES

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}', role='{self.role}')>"
