"""
Stock monitor - low, out-of-stock, critical and expired item report.

Builds the report only; delivering alerts to merchants or warehouse staff
is handled elsewhere.
"""
import logging
from datetime import datetime, timezone

from flask import current_app, has_app_context
from sqlalchemy import or_
from sqlalchemy.orm import joinedload

from sjfulfillment.models import StockItem

logger = logging.getLogger(__name__)


def _item_row(item: StockItem) -> dict:
    return {
        'stockItemId': item.id,
        'productId': item.product.id,
        'productName': item.product.name,
        'sku': item.product.sku,
        'warehouseId': item.warehouse.id,
        'warehouseName': item.warehouse.name,
        'currentStock': item.available_quantity,
        'reorderLevel': item.reorder_level,
    }


def _merchant_group(report: dict, merchant_id) -> dict:
    return report.setdefault(merchant_id, {
        'merchantId': merchant_id,
        'outOfStock': [],
        'lowStock': [],
        'critical': [],
        'expired': [],
    })


def check_low_stock(session, report: dict, critical_level: int) -> int:
    items = session.query(StockItem).options(
        joinedload(StockItem.product), joinedload(StockItem.warehouse)
    ).filter(
        or_(
            StockItem.available_quantity <= StockItem.reorder_level,
            StockItem.available_quantity == 0
        )
    ).order_by(StockItem.id).all()

    for item in items:
        group = _merchant_group(report, item.product.merchant_id)
        row = _item_row(item)
        if item.available_quantity == 0:
            group['outOfStock'].append(row)
        elif item.available_quantity <= item.reorder_level:
            group['lowStock'].append(row)
        if item.available_quantity <= critical_level:
            group['critical'].append(row)

    logger.info(f"Found {len(items)} low stock items")
    return len(items)


def check_expired_products(session, report: dict, now=None) -> int:
    now = now or datetime.now(timezone.utc)
    items = session.query(StockItem).options(
        joinedload(StockItem.product), joinedload(StockItem.warehouse)
    ).filter(
        StockItem.expiry_date <= now,
        StockItem.available_quantity > 0
    ).order_by(StockItem.id).all()

    for item in items:
        row = _item_row(item)
        row['expiryDate'] = item.expiry_date.isoformat()
        _merchant_group(report, item.product.merchant_id)['expired'].append(row)

    logger.info(f"Found {len(items)} expired products")
    return len(items)


def run_stock_monitor(session, critical_level: int = None) -> dict:
    """
    Run all checks and return
    {'merchants': [...], 'totals': {'outOfStock', 'lowStock', 'critical', 'expired'}}.
    """
    if critical_level is None:
        critical_level = current_app.config.get('CRITICAL_STOCK_LEVEL', 5) if has_app_context() else 5

    report = {}
    check_low_stock(session, report, critical_level)
    check_expired_products(session, report)

    merchants = [report[key] for key in sorted(report)]
    totals = {
        key: sum(len(group[key]) for group in merchants)
        for key in ('outOfStock', 'lowStock', 'critical', 'expired')
    }
    logger.info(f"Stock monitoring completed: {totals}")
    return {'merchants': merchants, 'totals': totals}
