"""Models package - exports all SQLAlchemy models."""
# Platform
from sjfulfillment.models.merchant import Merchant, OnboardingStatus
from sjfulfillment.models.app_user import AppUser, UserRole, PLATFORM_ROLES, STOCK_ROLES
from sjfulfillment.models.warehouse import WarehouseLocation, merchant_warehouse

# Inventory
from sjfulfillment.models.product import Product
from sjfulfillment.models.stock_item import StockItem
from sjfulfillment.models.stock_movement import StockMovement, MovementType, StockReferenceType

# Audit & integrations
from sjfulfillment.models.audit_log import AuditLog, AuditAction
from sjfulfillment.models.api_key import ApiKey, ApiLog

__all__ = [
    'Merchant', 'OnboardingStatus',
    'AppUser', 'UserRole', 'PLATFORM_ROLES', 'STOCK_ROLES',
    'WarehouseLocation', 'merchant_warehouse',
    'Product', 'StockItem', 'StockMovement', 'MovementType', 'StockReferenceType',
    'AuditLog', 'AuditAction',
    'ApiKey', 'ApiLog',
]
