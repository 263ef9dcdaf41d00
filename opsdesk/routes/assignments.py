"""
OpsDesk - Assignment Routes
Client <-> template assignments, per-asset settings and task regeneration
"""
import logging

from flask import Blueprint, request, jsonify

from opsdesk.database import db
from opsdesk.exceptions import OpsDeskError
from opsdesk.models.db_models import DBAssignment, DBAssignmentSiteAssetSetting, PeriodType, PermissionName
from opsdesk.routes.auth import token_required, permissions_required
from opsdesk.services.activity_service import activity_service
from opsdesk.services.db_service import DataService
from opsdesk.services.task_generation_service import task_generation_service
from opsdesk.utils import get_json_body, safe_bool, safe_int

logger = logging.getLogger(__name__)

assignments_bp = Blueprint('assignments', __name__)
data_service = DataService()


@assignments_bp.route('/', methods=['POST'])
@permissions_required(PermissionName.TASK_MANAGE)
def create_assignment(current_user):
    """
    Assign a template to a client and (by default) generate its base tasks

    POST /api/assignments/
    {"clientId": "client_abc", "templateId": "tpl_abc", "generateTasks": true}
    """
    data = get_json_body(request)
    client_id = data.get('clientId')
    template_id = data.get('templateId')

    if not client_id or not template_id:
        return jsonify({'error': 'clientId and templateId are required'}), 400
    if not data_service.get_client(client_id):
        return jsonify({'error': 'Client not found'}), 404
    template = data_service.get_template(template_id)
    if not template:
        return jsonify({'error': 'Template not found'}), 404

    existing = data_service.get_client_assignment(client_id, template_id)
    if existing:
        return jsonify({'message': 'Assignment already exists', 'assignment': existing.to_dict()})

    assignment = DBAssignment(client_id=client_id, template_id=template_id)
    data_service.save_assignment(assignment)
    activity_service.log(
        entity_type=activity_service.ENTITY_ASSIGNMENT,
        entity_id=assignment.id,
        action=activity_service.ACTION_CREATE,
        user_id=current_user.id,
        details={'clientId': client_id, 'templateId': template_id}
    )

    if safe_bool(data.get('generateTasks'), True) and template.site_assets:
        try:
            assignment, _ = task_generation_service.regenerate_tasks(assignment.id, actor_id=current_user.id)
        except OpsDeskError as e:
            return jsonify(e.to_dict()), e.status_code

    return jsonify({
        'message': 'Assignment created',
        'assignment': assignment.to_dict(include_tasks=True)
    }), 201


@assignments_bp.route('/<assignment_id>', methods=['GET'])
@token_required
def get_assignment(current_user, assignment_id):
    assignment = data_service.get_assignment(assignment_id)
    if not assignment:
        return jsonify({'error': 'Assignment not found'}), 404
    if not current_user.can_access_client(assignment.client_id):
        return jsonify({'error': 'Access denied'}), 403
    return jsonify(assignment.to_dict(include_tasks=True))


@assignments_bp.route('/<assignment_id>/site-asset-settings', methods=['PUT'])
@permissions_required(PermissionName.TASK_MANAGE)
def update_site_asset_settings(current_user, assignment_id):
    """
    Client-specific posting cadence per asset

    PUT /api/assignments/<id>/site-asset-settings
    {"settings": [{"templateSiteAssetId": 1, "requiredFrequency": 8, "period": "monthly"}]}
    """
    assignment = data_service.get_assignment(assignment_id)
    if not assignment:
        return jsonify({'error': 'Assignment not found'}), 404

    data = get_json_body(request)
    settings = data.get('settings')
    if not isinstance(settings, list) or not settings:
        return jsonify({'error': 'settings must be a non-empty list'}), 400

    asset_ids = {a.id for a in assignment.template.site_assets} if assignment.template else set()

    for index, item in enumerate(settings):
        asset_id = safe_int(item.get('templateSiteAssetId') if isinstance(item, dict) else None, None)
        if asset_id not in asset_ids:
            return jsonify({'error': f'settings[{index}].templateSiteAssetId is not an asset of this template'}), 400
        period = item.get('period') or PeriodType.MONTHLY
        if period not in PeriodType.ALL:
            return jsonify({'error': f'settings[{index}].period is invalid', 'allowed': PeriodType.ALL}), 400

    try:
        for item in settings:
            asset_id = safe_int(item['templateSiteAssetId'], None)
            setting = assignment.setting_for(asset_id)
            if setting is None:
                setting = DBAssignmentSiteAssetSetting(assignment_id=assignment.id, template_site_asset_id=asset_id)
                db.session.add(setting)
                assignment.site_asset_settings.append(setting)
            if 'requiredFrequency' in item:
                setting.required_frequency = safe_int(item['requiredFrequency'], None, min_val=0)
            if 'idealDurationMinutes' in item:
                setting.ideal_duration_minutes = safe_int(item['idealDurationMinutes'], None, min_val=0)
            setting.period = item.get('period') or setting.period or PeriodType.MONTHLY
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return jsonify({
        'message': 'Settings updated',
        'site_asset_settings': [s.to_dict() for s in assignment.site_asset_settings]
    })


@assignments_bp.route('/<assignment_id>/regenerate-tasks', methods=['POST'])
@permissions_required(PermissionName.TASK_MANAGE)
def regenerate_tasks(current_user, assignment_id):
    """
    Create tasks for template assets that lack one

    POST /api/assignments/<id>/regenerate-tasks
    {"onlyMissing": true, "forceRecreate": false}
    """
    data = get_json_body(request)

    try:
        assignment, summary = task_generation_service.regenerate_tasks(
            assignment_id,
            only_missing=safe_bool(data.get('onlyMissing'), True),
            force_recreate=safe_bool(data.get('forceRecreate'), False),
            actor_id=current_user.id
        )
    except OpsDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Regenerate tasks error for {assignment_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to regenerate tasks'}), 500

    return jsonify({
        'message': 'Tasks regenerated successfully',
        'summary': summary,
        'assignment': assignment.to_dict(include_tasks=True)
    })


@assignments_bp.route('/<assignment_id>/sync-template', methods=['POST'])
@permissions_required(PermissionName.TASK_MANAGE)
def sync_template(current_user, assignment_id):
    """
    Move an assignment onto a new or updated template

    POST /api/assignments/<id>/sync-template
    {
        "newTemplateId": "tpl_abc",
        "replacements": [{"oldAssetId": 1, "newAssetId": 7}],
        "autoArchiveOld": true,
        "commonAssetMappings": [{"oldAssetId": 2, "newAssetId": 8}]
    }
    """
    data = get_json_body(request)

    try:
        assignment, summary = task_generation_service.sync_template(
            assignment_id,
            data.get('newTemplateId'),
            replacements=data.get('replacements'),
            auto_archive_old=safe_bool(data.get('autoArchiveOld'), True),
            common_asset_mappings=data.get('commonAssetMappings'),
            actor_id=current_user.id
        )
    except OpsDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"Sync template error for {assignment_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to sync template'}), 500

    return jsonify({
        'message': 'Assignment synced successfully with new template',
        'summary': summary,
        'assignment': assignment.to_dict(include_tasks=True)
    })
