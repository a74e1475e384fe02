"""
Capability object describing whose inventory the current caller may touch.

Built once per request (session user or API key) and handed to the stock
services, which never re-derive merchant ownership themselves.
"""
from sjfulfillment.exceptions import ForbiddenError
from sjfulfillment.models import Product, PLATFORM_ROLES


class AccessScope:
    """Merchant scope plus the performer tag written to the ledger."""

    def __init__(self, performed_by: str, merchant_id: int = None, all_merchants: bool = False,
                 user_id: int = None, api_key_id: int = None, role: str = None):
        self.performed_by = performed_by
        self.merchant_id = merchant_id
        self.all_merchants = all_merchants
        self.user_id = user_id
        self.api_key_id = api_key_id
        self.role = role

    def __repr__(self):
        return f"<AccessScope(performed_by='{self.performed_by}', merchant_id={self.merchant_id}, all={self.all_merchants})>"

    @classmethod
    def for_user(cls, user):
        return cls(
            performed_by=str(user.id),
            merchant_id=user.merchant_id,
            all_merchants=user.role in PLATFORM_ROLES,
            user_id=user.id,
            role=user.role,
        )

    @classmethod
    def for_api_key(cls, api_key):
        return cls(
            performed_by=f"API_KEY_{api_key.id}",
            merchant_id=api_key.merchant_id,
            api_key_id=api_key.id,
        )

    @classmethod
    def system(cls, performed_by='SYSTEM'):
        """Scope for CLI commands and background maintenance."""
        return cls(performed_by=performed_by, all_merchants=True)

    def can_access_merchant(self, merchant_id) -> bool:
        if self.all_merchants:
            return True
        return self.merchant_id is not None and self.merchant_id == merchant_id

    def ensure_merchant(self, merchant_id) -> None:
        if not self.can_access_merchant(merchant_id):
            raise ForbiddenError()

    def ensure_product(self, product) -> None:
        self.ensure_merchant(product.merchant_id)

    def ensure_stock_item(self, stock_item) -> None:
        self.ensure_product(stock_item.product)

    def filter_stock_query(self, query):
        """Restrict a StockItem query (already joined to Product) to this scope."""
        if self.all_merchants:
            return query
        return query.filter(Product.merchant_id == self.merchant_id)
