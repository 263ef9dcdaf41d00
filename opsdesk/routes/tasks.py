"""
OpsDesk - Task Routes
Task CRUD, QC approval, posting generation, status changes and pauses
"""
import logging

from flask import Blueprint, request, jsonify

from opsdesk.database import db
from opsdesk.exceptions import OpsDeskError
from opsdesk.models.db_models import DBTask, DBTaskCategory, PermissionName, TaskPriority, TaskStatus
from opsdesk.routes.auth import token_required, permissions_required, has_permission, has_any_permission
from opsdesk.services.activity_service import activity_service
from opsdesk.services.db_service import DataService
from opsdesk.services.notification_service import notification_service
from opsdesk.services.qc_service import qc_service
from opsdesk.services.task_generation_service import task_generation_service
from opsdesk.utils import get_json_body, get_pagination_params, parse_datetime, safe_bool, safe_int

logger = logging.getLogger(__name__)

tasks_bp = Blueprint('tasks', __name__)
data_service = DataService()

TEXT_FIELDS = {
    'name': 'name',
    'completionLink': 'completion_link',
    'email': 'email',
    'password': 'password',
    'username': 'username',
    'notes': 'notes',
}

# Can see every task rather than only their own
TASK_OVERSIGHT = [PermissionName.VIEW_TASKS_LIST, PermissionName.VIEW_QC_DASHBOARD]
TASK_WORKERS = [PermissionName.TASK_MANAGE, PermissionName.VIEW_QC_REVIEW, PermissionName.VIEW_AGENT_TASKS]


def _can_view(user, task: DBTask) -> bool:
    if task.assigned_to_id == user.id or has_any_permission(user, TASK_OVERSIGHT):
        return True
    return bool(task.client_id) and user.can_access_client(task.client_id)


def _can_work_on(user, task: DBTask) -> bool:
    if has_any_permission(user, [PermissionName.TASK_MANAGE, PermissionName.VIEW_QC_REVIEW]):
        return True
    return task.assigned_to_id == user.id


def _run(action, failure_message):
    """Map domain errors to their status; anything else is a logged 500"""
    try:
        return jsonify(action())
    except OpsDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"{failure_message}: {e}", exc_info=True)
        return jsonify({'error': failure_message}), 500


def _apply_task_fields(task: DBTask, data: dict):
    """Validate and copy editable fields; returns an error message or None"""
    if 'status' in data and data['status'] not in TaskStatus.ALL:
        return 'Invalid status value'
    if 'priority' in data and data['priority'] not in TaskPriority.ALL:
        return 'Invalid priority value'
    if 'name' in data and not str(data.get('name') or '').strip():
        return 'name cannot be empty'
    if data.get('categoryId') and not DBTaskCategory.query.get(data['categoryId']):
        return 'Category not found'
    if data.get('assignedToId') and not data_service.get_user(data['assignedToId']):
        return 'Assignee not found'

    for key, attr in TEXT_FIELDS.items():
        if key in data:
            setattr(task, attr, data[key])
    if 'name' in data:
        task.name = str(data['name']).strip()
    if 'status' in data:
        task.status = data['status']
    if 'priority' in data:
        task.priority = data['priority']
    if 'dueDate' in data:
        task.due_date = parse_datetime(data['dueDate'])
    if 'idealDurationMinutes' in data:
        task.ideal_duration_minutes = safe_int(data['idealDurationMinutes'], None, min_val=0)
    if 'categoryId' in data:
        task.category_id = data['categoryId'] or None
    if 'assignedToId' in data:
        task.assigned_to_id = data['assignedToId'] or None
    return None


@tasks_bp.route('/', methods=['GET'])
@permissions_required(PermissionName.VIEW_TASKS_LIST, PermissionName.VIEW_AGENT_TASKS,
                      PermissionName.VIEW_QC_DASHBOARD, any_of=True)
def list_tasks(current_user):
    """
    GET /api/tasks/?clientId=&assignmentId=&status=&assignedToId=&page=&limit=

    Users without oversight permissions only see their own tasks.
    """
    status = request.args.get('status')
    if status and status not in TaskStatus.ALL:
        return jsonify({'error': 'Invalid status value'}), 400

    assigned_to_id = request.args.get('assignedToId')
    if not has_any_permission(current_user, TASK_OVERSIGHT):
        assigned_to_id = current_user.id

    limit, offset, page = get_pagination_params(request)
    tasks, total = data_service.list_tasks(
        client_id=request.args.get('clientId'),
        assignment_id=request.args.get('assignmentId'),
        status=status,
        assigned_to_id=assigned_to_id,
        limit=limit,
        offset=offset
    )

    return jsonify({
        'tasks': [t.to_dict() for t in tasks],
        'total': total,
        'page': page,
        'limit': limit
    })


@tasks_bp.route('/', methods=['POST'])
@permissions_required(PermissionName.TASK_MANAGE)
def create_task(current_user):
    """
    POST /api/tasks/
    {"name": "...", "clientId": "...", "assignmentId": "...", "assignedToId": "...", "priority": "high"}
    """
    data = get_json_body(request)
    name = str(data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'name is required'}), 400

    assignment = None
    if data.get('assignmentId'):
        assignment = data_service.get_assignment(data['assignmentId'])
        if not assignment:
            return jsonify({'error': 'Assignment not found'}), 404
    client_id = data.get('clientId') or (assignment.client_id if assignment else None)
    if client_id and not data_service.get_client(client_id):
        return jsonify({'error': 'Client not found'}), 404

    task = DBTask(
        name=name,
        client_id=client_id,
        assignment_id=assignment.id if assignment else None,
        template_site_asset_id=safe_int(data.get('templateSiteAssetId'), None)
    )
    error = _apply_task_fields(task, data)
    if error:
        return jsonify({'error': error}), 400

    data_service.save_task(task)
    activity_service.log(
        entity_type=activity_service.ENTITY_TASK,
        entity_id=task.id,
        action=activity_service.ACTION_CREATE,
        user_id=current_user.id,
        details={'name': task.name, 'clientId': task.client_id}
    )
    return jsonify({'message': 'Task created', 'task': task.to_dict()}), 201


@tasks_bp.route('/<task_id>', methods=['GET'])
@token_required
def get_task(current_user, task_id):
    task = data_service.get_task(task_id)
    if not task:
        return jsonify({'error': 'Task not found'}), 404
    if not _can_view(current_user, task):
        return jsonify({'error': 'Access denied'}), 403
    return jsonify(task.to_dict())


@tasks_bp.route('/<task_id>', methods=['PUT'])
@permissions_required(*TASK_WORKERS, any_of=True)
def update_task(current_user, task_id):
    """Edit a task; admins and QC reviewers are notified"""
    task = data_service.get_task(task_id)
    if not task:
        return jsonify({'error': 'Task not found'}), 404
    if not _can_work_on(current_user, task):
        return jsonify({'error': 'Permission denied'}), 403

    data = get_json_body(request)
    if 'assignedToId' in data and not has_permission(current_user, PermissionName.TASK_MANAGE):
        return jsonify({'error': 'Only task managers can reassign tasks'}), 403

    error = _apply_task_fields(task, data)
    if error:
        db.session.rollback()
        return jsonify({'error': error}), 400

    notification_service.notify_task_updated(task, actor=current_user)
    data_service.save_task(task)
    activity_service.log(
        entity_type=activity_service.ENTITY_TASK,
        entity_id=task.id,
        action=activity_service.ACTION_UPDATE,
        user_id=current_user.id,
        details={'fields': sorted(data.keys())}
    )
    return jsonify({'message': 'Task updated', 'task': task.to_dict()})


@tasks_bp.route('/<task_id>', methods=['DELETE'])
@permissions_required(PermissionName.TASK_MANAGE)
def delete_task(current_user, task_id):
    if not data_service.delete_task(task_id):
        return jsonify({'error': 'Task not found'}), 404
    activity_service.log(
        entity_type=activity_service.ENTITY_TASK,
        entity_id=task_id,
        action=activity_service.ACTION_DELETE,
        user_id=current_user.id
    )
    return jsonify({'message': 'Task deleted'})


# ==========================================
# QC / posting workflow
# ==========================================

@tasks_bp.route('/<task_id>/approve', methods=['PUT'])
@permissions_required(PermissionName.VIEW_QC_REVIEW)
def approve_task(current_user, task_id):
    """
    QC approval

    PUT /api/tasks/<id>/approve
    {
        "performanceRating": "Good",
        "keyword": 4, "contentQuality": 5, "image": 3,
        "seo": 4, "grammar": 5, "humanization": 4,
        "notes": "..."
    }
    """
    data = get_json_body(request)
    return _run(lambda: qc_service.approve_task(task_id, data, reviewer=current_user), 'Failed to approve task')


@tasks_bp.route('/<task_id>/trigger-posting', methods=['POST'])
@permissions_required(PermissionName.VIEW_QC_REVIEW, PermissionName.TASK_MANAGE, any_of=True)
def trigger_posting(current_user, task_id):
    """POST /api/tasks/<id>/trigger-posting {"forceOverride": false}"""
    data = get_json_body(request)
    return _run(
        lambda: task_generation_service.trigger_posting(
            task_id,
            actor_id=current_user.id,
            force_override=safe_bool(data.get('forceOverride'), False)
        ),
        'Failed to trigger posting tasks'
    )


@tasks_bp.route('/<task_id>/trigger-posting', methods=['GET'])
@permissions_required(PermissionName.VIEW_QC_REVIEW, PermissionName.TASK_MANAGE, any_of=True)
def preview_posting(current_user, task_id):
    return _run(lambda: task_generation_service.preview_posting(task_id), 'Failed to preview posting tasks')


@tasks_bp.route('/<task_id>/update-status', methods=['PATCH'])
@permissions_required(*TASK_WORKERS, any_of=True)
def update_status(current_user, task_id):
    """PATCH /api/tasks/<id>/update-status {"status": "completed", "notes": "..."}"""
    task = data_service.get_task(task_id)
    if task and not _can_work_on(current_user, task):
        return jsonify({'error': 'Permission denied'}), 403

    data = get_json_body(request)
    return _run(
        lambda: qc_service.update_status(task_id, data.get('status'), notes=data.get('notes'), actor=current_user),
        'Failed to update task status'
    )


@tasks_bp.route('/<task_id>/update-status', methods=['GET'])
@permissions_required(*TASK_WORKERS, any_of=True)
def get_status(current_user, task_id):
    return _run(lambda: qc_service.status_preview(task_id), 'Failed to get task status')


@tasks_bp.route('/<task_id>/pause', methods=['POST'])
@permissions_required(PermissionName.VIEW_AGENT_TASKS, PermissionName.TASK_MANAGE, any_of=True)
def pause_task(current_user, task_id):
    """POST /api/tasks/<id>/pause {"reason": "Waiting on client credentials"}"""
    task = data_service.get_task(task_id)
    if task and not _can_work_on(current_user, task):
        return jsonify({'error': 'Permission denied'}), 403

    data = get_json_body(request)
    return _run(lambda: qc_service.pause_task(task_id, data.get('reason'), actor=current_user), 'Failed to pause task')
