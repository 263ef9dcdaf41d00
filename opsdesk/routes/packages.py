"""
OpsDesk - Package & Template Routes
Packages, their templates and template site assets
"""
from flask import Blueprint, request, jsonify

from opsdesk.exceptions import ValidationError
from opsdesk.models.db_models import (
    DBPackage, DBTemplate, DBTemplateSiteAsset, PermissionName, SiteAssetType
)
from opsdesk.routes.auth import permissions_required
from opsdesk.services.activity_service import activity_service
from opsdesk.services.db_service import DataService
from opsdesk.utils import get_json_body, safe_int, safe_bool

packages_bp = Blueprint('packages', __name__)
data_service = DataService()


def _optional_int(value):
    if value is None or value == '':
        return None
    return safe_int(value, None, min_val=0)


def _build_assets(items) -> list:
    """Site assets from request JSON; raises ValidationError on bad input"""
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError('sitesAssets must be a list')

    assets = []
    for index, item in enumerate(items):
        name = str(item.get('name') or '').strip() if isinstance(item, dict) else ''
        if not name:
            raise ValidationError(f'sitesAssets[{index}].name is required')
        asset_type = item.get('type') or SiteAssetType.OTHER_ASSET
        if asset_type not in SiteAssetType.ALL:
            raise ValidationError(f'sitesAssets[{index}].type is invalid', {'allowed': SiteAssetType.ALL})
        assets.append(DBTemplateSiteAsset(
            type=asset_type,
            name=name,
            url=item.get('url'),
            description=item.get('description'),
            is_required=safe_bool(item.get('isRequired')),
            default_posting_frequency=_optional_int(item.get('defaultPostingFrequency')),
            default_ideal_duration_minutes=_optional_int(item.get('defaultIdealDurationMinutes'))
        ))
    return assets


@packages_bp.route('/', methods=['GET'])
@permissions_required(PermissionName.VIEW_PACKAGES_LIST)
def list_packages(current_user):
    """List packages with template and client counts"""
    client_counts = data_service.count_clients_by_package()
    packages = []
    for package in data_service.get_all_packages():
        row = package.to_dict()
        row['client_count'] = client_counts.get(package.id, 0)
        packages.append(row)
    return jsonify({'total': len(packages), 'packages': packages})


@packages_bp.route('/', methods=['POST'])
@permissions_required(PermissionName.PACKAGE_CREATE)
def create_package(current_user):
    """
    POST /api/packages/
    {"name": "Growth", "description": "...", "totalMonths": 6}
    """
    data = get_json_body(request)
    name = str(data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'name is required'}), 400
    if data_service.get_package_by_name(name):
        return jsonify({'error': 'A package with this name already exists'}), 409

    package = DBPackage(
        name=name,
        description=data.get('description'),
        total_months=_optional_int(data.get('totalMonths'))
    )
    data_service.save_package(package)
    activity_service.log(
        entity_type=activity_service.ENTITY_PACKAGE,
        entity_id=package.id,
        action=activity_service.ACTION_CREATE,
        user_id=current_user.id,
        details={'name': package.name}
    )
    return jsonify({'message': 'Package created', 'package': package.to_dict()}), 201


@packages_bp.route('/<package_id>', methods=['GET'])
@permissions_required(PermissionName.VIEW_PACKAGES_LIST)
def get_package(current_user, package_id):
    package = data_service.get_package(package_id)
    if not package:
        return jsonify({'error': 'Package not found'}), 404
    return jsonify(package.to_dict(include_templates=True))


@packages_bp.route('/<package_id>', methods=['PUT'])
@permissions_required(PermissionName.PACKAGE_EDIT)
def update_package(current_user, package_id):
    package = data_service.get_package(package_id)
    if not package:
        return jsonify({'error': 'Package not found'}), 404

    data = get_json_body(request)
    if 'name' in data:
        name = str(data.get('name') or '').strip()
        if not name:
            return jsonify({'error': 'name cannot be empty'}), 400
        other = data_service.get_package_by_name(name)
        if other and other.id != package.id:
            return jsonify({'error': 'A package with this name already exists'}), 409
        package.name = name
    if 'description' in data:
        package.description = data['description']
    if 'totalMonths' in data:
        package.total_months = _optional_int(data['totalMonths'])

    data_service.save_package(package)
    return jsonify({'message': 'Package updated', 'package': package.to_dict()})


@packages_bp.route('/<package_id>', methods=['DELETE'])
@permissions_required(PermissionName.PACKAGE_DELETE)
def delete_package(current_user, package_id):
    package = data_service.get_package(package_id)
    if not package:
        return jsonify({'error': 'Package not found'}), 404
    if data_service.package_has_clients(package_id):
        return jsonify({'error': 'Package is assigned to clients'}), 409

    data_service.delete_package(package_id)
    activity_service.log(
        entity_type=activity_service.ENTITY_PACKAGE,
        entity_id=package_id,
        action=activity_service.ACTION_DELETE,
        user_id=current_user.id
    )
    return jsonify({'message': 'Package deleted'})


# ==========================================
# Templates
# ==========================================

@packages_bp.route('/<package_id>/templates', methods=['POST'])
@permissions_required(PermissionName.TEMPLATE_EDIT)
def create_template(current_user, package_id):
    """
    POST /api/packages/<id>/templates
    {
        "name": "Starter Template",
        "sitesAssets": [{"type": "social_site", "name": "Facebook Page", "defaultPostingFrequency": 4}]
    }
    """
    package = data_service.get_package(package_id)
    if not package:
        return jsonify({'error': 'Package not found'}), 404

    data = get_json_body(request)
    name = str(data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'name is required'}), 400

    try:
        assets = _build_assets(data.get('sitesAssets'))
    except ValidationError as e:
        return jsonify(e.to_dict()), e.status_code

    template = DBTemplate(
        name=name,
        package_id=package.id,
        description=data.get('description'),
        status=data.get('status', 'active')
    )
    data_service.save_template(template)
    if assets:
        data_service.add_site_assets(template, assets)

    return jsonify({'message': 'Template created', 'template': template.to_dict(include_assets=True)}), 201


@packages_bp.route('/templates/<template_id>', methods=['GET'])
@permissions_required(PermissionName.VIEW_PACKAGES_LIST)
def get_template(current_user, template_id):
    template = data_service.get_template(template_id)
    if not template:
        return jsonify({'error': 'Template not found'}), 404
    return jsonify(template.to_dict(include_assets=True))


@packages_bp.route('/templates/<template_id>/assets', methods=['POST'])
@permissions_required(PermissionName.TEMPLATE_EDIT)
def add_template_assets(current_user, template_id):
    """POST /api/packages/templates/<id>/assets {"sitesAssets": [...]}"""
    template = data_service.get_template(template_id)
    if not template:
        return jsonify({'error': 'Template not found'}), 404

    data = get_json_body(request)
    try:
        assets = _build_assets(data.get('sitesAssets'))
    except ValidationError as e:
        return jsonify(e.to_dict()), e.status_code
    if not assets:
        return jsonify({'error': 'sitesAssets is required'}), 400

    data_service.add_site_assets(template, assets)
    return jsonify({
        'message': f'Added {len(assets)} assets',
        'assets': [a.to_dict() for a in assets]
    }), 201


@packages_bp.route('/templates/<template_id>', methods=['DELETE'])
@permissions_required(PermissionName.TEMPLATE_DELETE)
def delete_template(current_user, template_id):
    counts = data_service.delete_template(template_id, actor_id=current_user.id)
    if counts is None:
        return jsonify({'error': 'Template not found'}), 404
    return jsonify({'message': 'Template deleted', 'deletedCounts': counts})
