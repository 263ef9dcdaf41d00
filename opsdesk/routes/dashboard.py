"""
OpsDesk - Dashboard Routes
Aggregate counts for the operations dashboard
"""
from datetime import datetime, timedelta

from flask import Blueprint, jsonify
from sqlalchemy import func

from opsdesk.database import db
from opsdesk.models.db_models import (
    DBActivityLog, DBAssignment, DBClient, DBPackage, DBTask, DBTemplate, DBUser,
    PermissionName, TaskPriority, TaskStatus
)
from opsdesk.routes.auth import permissions_required
from opsdesk.utils import round_half_up

dashboard_bp = Blueprint('dashboard', __name__)


def _grouped_counts(column, keys):
    counts = {key: 0 for key in keys}
    for key, count in db.session.query(column, func.count()).group_by(column).all():
        if key in counts:
            counts[key] = count
    return counts


@dashboard_bp.route('/stats', methods=['GET'])
@permissions_required(PermissionName.VIEW_DASHBOARD)
def stats(current_user):
    """Entity counts, task breakdowns and completion rate"""
    now = datetime.utcnow()
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)

    total_tasks = DBTask.query.count()
    by_status = _grouped_counts(DBTask.status, TaskStatus.ALL)
    by_priority = _grouped_counts(DBTask.priority, TaskPriority.ALL)
    done = sum(by_status[s] for s in TaskStatus.DONE)

    recent_activity = DBActivityLog.query.order_by(DBActivityLog.timestamp.desc()).limit(20).all()

    return jsonify({
        'overview': {
            'totalClients': DBClient.query.filter_by(is_active=True).count(),
            'totalTasks': total_tasks,
            'totalUsers': DBUser.query.count(),
            'totalPackages': DBPackage.query.count(),
            'totalTemplates': DBTemplate.query.count(),
            'totalAssignments': DBAssignment.query.count(),
        },
        'tasks': {
            'byStatus': by_status,
            'byPriority': by_priority,
            'completionRate': round_half_up(done / total_tasks * 100) if total_tasks else 0,
        },
        'trends': {
            'tasksCompletedThisWeek': DBTask.query.filter(DBTask.completed_at >= week_ago).count(),
            'tasksCompletedThisMonth': DBTask.query.filter(DBTask.completed_at >= month_ago).count(),
            'clientsAddedThisWeek': DBClient.query.filter(DBClient.created_at >= week_ago).count(),
            'clientsAddedThisMonth': DBClient.query.filter(DBClient.created_at >= month_ago).count(),
        },
        'recentActivity': [entry.to_dict() for entry in recent_activity]
    })
