"""
Admin blueprint - platform maintenance endpoints (SJFS_ADMIN only).
"""
import logging

from flask import Blueprint, jsonify, g

from sjfulfillment.database import get_session
from sjfulfillment.decorators.permissions import require_role
from sjfulfillment.middleware import require_login
from sjfulfillment.models import UserRole
from sjfulfillment.services.provisioning_service import provision_missing_stock_items
from sjfulfillment.services.stock_monitor_service import run_stock_monitor

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


@admin_bp.route('/fix-products', methods=['POST'])
@require_login
@require_role(UserRole.SJFS_ADMIN.value)
def fix_products():
    """Create an empty stock item for every product that has none."""
    created = provision_missing_stock_items(get_session(), performed_by=g.scope.performed_by)
    logger.info(f"Provisioning sweep by user {g.user.id}: {created} stock items created")
    return jsonify({
        'created': created,
        'message': f'Created stock items for {created} products',
    })


@admin_bp.route('/stock-monitor', methods=['POST'])
@require_login
@require_role(UserRole.SJFS_ADMIN.value)
def stock_monitor():
    report = run_stock_monitor(get_session())
    return jsonify({'report': report, 'message': 'Stock monitoring completed'})
