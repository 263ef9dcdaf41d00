"""
OpsDesk - Activity Log Routes
"""
import math

from flask import Blueprint, request, jsonify

from opsdesk.models.db_models import PermissionName
from opsdesk.routes.auth import permissions_required
from opsdesk.services.activity_service import activity_service
from opsdesk.utils import get_pagination_params

activity_bp = Blueprint('activity', __name__)


@activity_bp.route('/', methods=['GET'])
@permissions_required(PermissionName.VIEW_ACTIVITY_LOGS)
def list_activity(current_user):
    """
    Paginated activity logs, newest first

    GET /api/activity/?page=1&limit=20&action=upgrade_package&q=client_
    """
    limit, offset, page = get_pagination_params(request)
    action = (request.args.get('action') or '').strip()
    q = (request.args.get('q') or '').strip()

    logs, total = activity_service.list(
        limit=limit,
        offset=offset,
        action=action if action and action != 'all' else None,
        q=q or None,
        entity_type=request.args.get('entityType'),
        entity_id=request.args.get('entityId')
    )

    total_pages = max(1, math.ceil(total / limit))
    return jsonify({
        'success': True,
        'logs': [entry.to_dict() for entry in logs],
        'pagination': {
            'currentPage': page,
            'totalPages': total_pages,
            'totalCount': total,
            'hasNextPage': page < total_pages,
            'hasPrevPage': page > 1,
            'limit': limit
        }
    })
