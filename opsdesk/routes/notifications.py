"""
OpsDesk - Notification Routes
"""
from flask import Blueprint, request, jsonify

from opsdesk.models.db_models import PermissionName
from opsdesk.routes.auth import permissions_required
from opsdesk.services.notification_service import notification_service
from opsdesk.utils import safe_bool, safe_int

notifications_bp = Blueprint('notifications', __name__)


@notifications_bp.route('/', methods=['GET'])
@permissions_required(PermissionName.VIEW_NOTIFICATIONS)
def list_notifications(current_user):
    """GET /api/notifications/?unread=true&limit=50"""
    notifications = notification_service.list_for_user(
        current_user.id,
        unread_only=safe_bool(request.args.get('unread')),
        limit=safe_int(request.args.get('limit'), 50, min_val=1, max_val=100)
    )
    return jsonify({
        'total': len(notifications),
        'notifications': [n.to_dict() for n in notifications]
    })


@notifications_bp.route('/<notification_id>/read', methods=['POST'])
@permissions_required(PermissionName.VIEW_NOTIFICATIONS)
def mark_read(current_user, notification_id):
    if not notification_service.mark_read(current_user.id, notification_id):
        return jsonify({'error': 'Notification not found'}), 404
    return jsonify({'success': True})
