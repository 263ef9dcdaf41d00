"""
OpsDesk - Client Management Routes
CRUD operations for agency clients and the package-upgrade action
"""
import logging

from flask import Blueprint, request, jsonify

from opsdesk.exceptions import OpsDeskError
from opsdesk.models.db_models import DBClient, PermissionName, UserRole
from opsdesk.routes.auth import token_required, permissions_required
from opsdesk.services.activity_service import activity_service
from opsdesk.services.db_service import DataService
from opsdesk.services.progress_service import compute_client_progress
from opsdesk.services.upgrade_service import upgrade_service
from opsdesk.utils import get_json_body, parse_datetime

logger = logging.getLogger(__name__)

clients_bp = Blueprint('clients', __name__)
data_service = DataService()

# request key -> model attribute
PROFILE_FIELDS = {
    'name': 'name',
    'company': 'company',
    'designation': 'designation',
    'location': 'location',
    'email': 'email',
    'phone': 'phone',
    'website': 'website',
    'biography': 'biography',
    'status': 'status',
}
DATE_FIELDS = {'startDate': 'start_date', 'dueDate': 'due_date'}


def _validate_refs(data):
    """Returns an error message for a bad amId / packageId, else None"""
    am_id = data.get('amId')
    if am_id and not data_service.is_account_manager(am_id):
        return "amId is not an Account Manager (role 'am')."
    package_id = data.get('packageId')
    if package_id and not data_service.get_package(package_id):
        return 'Package not found'
    return None


def _apply_fields(client: DBClient, data: dict):
    for key, attr in PROFILE_FIELDS.items():
        if key in data:
            setattr(client, attr, data[key])
    if 'name' in data:
        client.name = str(data['name'] or '').strip()
    for key, attr in DATE_FIELDS.items():
        if key in data:
            setattr(client, attr, parse_datetime(data[key]))
    if 'packageId' in data:
        client.package_id = data['packageId'] or None
    if 'amId' in data:
        client.am_id = data['amId'] or None
    if 'socialMedia' in data:
        client.set_social_media(data['socialMedia'])
    if 'otherField' in data:
        client.set_other_field(data['otherField'])
    if 'articleTopics' in data:
        client.set_article_topics(data['articleTopics'])


def _client_payload(client: DBClient) -> dict:
    result = client.to_dict(include_assignments=True)
    result.update(compute_client_progress(client.id))
    return result


@clients_bp.route('/', methods=['GET'])
@permissions_required(*PermissionName.CLIENT_LIST_ANY, any_of=True)
def list_clients(current_user):
    """List clients visible to the current user"""
    clients = data_service.get_clients_for_user(current_user, search=request.args.get('q'))

    results = []
    for client in clients:
        row = client.to_dict()
        row['progress'] = compute_client_progress(client.id)['progress']
        results.append(row)

    return jsonify({
        'total': len(results),
        'clients': results
    })


@clients_bp.route('/', methods=['POST'])
@permissions_required(*PermissionName.CLIENT_CREATE_ANY, any_of=True)
def create_client(current_user):
    """
    Create a new client

    POST /api/clients/
    {
        "name": "Jane Roe",
        "company": "Roe Roofing",
        "packageId": "pkg_abc123",
        "amId": "user_abc123",
        "socialMedia": [{"platform": "facebook", "url": "..."}]
    }
    """
    data = get_json_body(request)

    name = str(data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'name is required'}), 400

    error = _validate_refs(data)
    if error:
        return jsonify({'error': error}), 400

    client = DBClient(name=name)
    _apply_fields(client, data)
    if not client.am_id and current_user.role_name == UserRole.AM:
        client.am_id = current_user.id

    data_service.save_client(client)
    activity_service.log(
        entity_type=activity_service.ENTITY_CLIENT,
        entity_id=client.id,
        action=activity_service.ACTION_CREATE,
        user_id=current_user.id,
        details={'name': client.name, 'packageId': client.package_id}
    )

    return jsonify({
        'message': 'Client created successfully',
        'client': client.to_dict()
    }), 201


@clients_bp.route('/<client_id>', methods=['GET'])
@token_required
def get_client(current_user, client_id):
    """Get client with assignments, computed progress and task counts"""
    client = data_service.get_client(client_id)
    if not client:
        return jsonify({'error': 'Client not found'}), 404

    if not current_user.can_access_client(client_id):
        return jsonify({'error': 'Access denied'}), 403

    return jsonify(_client_payload(client))


@clients_bp.route('/<client_id>', methods=['PUT'])
@permissions_required(PermissionName.CLIENT_EDIT)
def update_client(current_user, client_id):
    """Update client profile, package pointer or account manager"""
    client = data_service.get_client(client_id)
    if not client:
        return jsonify({'error': 'Client not found'}), 404

    if not current_user.can_access_client(client_id):
        return jsonify({'error': 'Permission denied'}), 403

    data = get_json_body(request)

    if 'name' in data and not str(data.get('name') or '').strip():
        return jsonify({'error': 'name cannot be empty'}), 400

    error = _validate_refs(data)
    if error:
        return jsonify({'error': error}), 400

    _apply_fields(client, data)
    data_service.save_client(client)
    activity_service.log(
        entity_type=activity_service.ENTITY_CLIENT,
        entity_id=client.id,
        action=activity_service.ACTION_UPDATE,
        user_id=current_user.id,
        details={'fields': sorted(k for k in data.keys())}
    )

    return jsonify({
        'message': 'Client updated',
        'client': _client_payload(client)
    })


@clients_bp.route('/<client_id>', methods=['DELETE'])
@permissions_required(PermissionName.CLIENT_DELETE)
def delete_client(current_user, client_id):
    """Soft delete a client"""
    if not data_service.delete_client(client_id):
        return jsonify({'error': 'Client not found'}), 404

    activity_service.log(
        entity_type=activity_service.ENTITY_CLIENT,
        entity_id=client_id,
        action=activity_service.ACTION_DELETE,
        user_id=current_user.id
    )
    return jsonify({'message': 'Client deleted'})


@clients_bp.route('/<client_id>', methods=['POST'])
@permissions_required(PermissionName.CLIENT_PACKAGE_UPGRADE)
def client_action(current_user, client_id):
    """
    Client actions. Only "upgrade" is supported.

    POST /api/clients/<id>
    {
        "action": "upgrade",
        "newPackageId": "pkg_abc123",
        "templateId": "tpl_abc123",
        "createAssignments": true,
        "migrateCompleted": true,
        "createPostingTasks": true
    }
    """
    data = get_json_body(request)

    if data.get('action') != 'upgrade':
        return jsonify({
            'error': "Unsupported action. Use { action: 'upgrade', newPackageId, templateId?, "
                     "createAssignments?, migrateCompleted?, createPostingTasks? }"
        }), 400

    if data_service.get_client(client_id) and not current_user.can_access_client(client_id):
        return jsonify({'error': 'Permission denied'}), 403

    try:
        result = upgrade_service.upgrade(client_id, data, actor=current_user)
    except OpsDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.error(f"[Client Upgrade] clientId={client_id} failed: {e}", exc_info=True)
        return jsonify({'error': 'Failed to upgrade client'}), 500

    return jsonify(result)
