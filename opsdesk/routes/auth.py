"""
OpsDesk - Authentication Routes
User login, registration, and permission guards
"""
import re
from functools import wraps
from datetime import datetime

import jwt
from flask import Blueprint, request, jsonify, current_app, g

from opsdesk.models.db_models import DBUser, PermissionName, UserRole
from opsdesk.services.db_service import DataService
from opsdesk.utils import get_json_body

auth_bp = Blueprint('auth', __name__)
data_service = DataService()


def validate_password(password):
    """
    Validate password meets security requirements.
    Returns: (is_valid: bool, error_message: str or None)
    """
    if not password:
        return False, "Password is required"
    if len(password) < 8:
        return False, "Password must be at least 8 characters"
    if not re.search(r'[A-Z]', password):
        return False, "Password must contain at least one uppercase letter"
    if not re.search(r'[a-z]', password):
        return False, "Password must contain at least one lowercase letter"
    if not re.search(r'[0-9]', password):
        return False, "Password must contain at least one number"
    return True, None


def token_required(f):
    """Decorator to require valid JWT token"""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = None

        if 'Authorization' in request.headers:
            auth_header = request.headers['Authorization']
            if auth_header.startswith('Bearer '):
                token = auth_header.split(' ')[1]

        if not token:
            return jsonify({'error': 'Token is missing'}), 401

        try:
            payload = jwt.decode(
                token,
                current_app.config['JWT_SECRET_KEY'],
                algorithms=['HS256']
            )
            current_user = data_service.get_user(payload['user_id'])
            if not current_user:
                return jsonify({'error': 'User not found'}), 401
            if not current_user.is_active:
                return jsonify({'error': 'User is deactivated'}), 401
        except jwt.ExpiredSignatureError:
            return jsonify({'error': 'Token has expired'}), 401
        except jwt.InvalidTokenError:
            return jsonify({'error': 'Invalid token'}), 401

        # Resolved once; every capability check in this request reads g.permissions
        g.current_user = current_user
        g.permissions = current_user.get_permissions()

        return f(current_user, *args, **kwargs)

    return decorated


def has_permission(user: DBUser, name: str) -> bool:
    """Check against the permission set resolved for this request"""
    return user.has_permission(name, g.get('permissions'))


def has_any_permission(user: DBUser, names) -> bool:
    return any(has_permission(user, name) for name in names)


def permissions_required(*names, any_of=False):
    """
    Require every listed permission (or at least one with any_of=True).

    Missing or invalid token -> 401, missing permission -> 403.
    """
    def decorator(f):
        @wraps(f)
        @token_required
        def decorated(current_user, *args, **kwargs):
            granted = [name for name in names if has_permission(current_user, name)]
            allowed = bool(granted) if any_of else len(granted) == len(names)
            if not allowed:
                return jsonify({
                    'error': 'Forbidden',
                    'required': list(names)
                }), 403
            return f(current_user, *args, **kwargs)
        return decorated
    return decorator


def generate_token(user: DBUser) -> str:
    """Generate JWT token for user"""
    payload = {
        'user_id': user.id,
        'email': user.email,
        'role': user.role_name,
        'exp': datetime.utcnow() + current_app.config['JWT_ACCESS_TOKEN_EXPIRES']
    }
    return jwt.encode(
        payload,
        current_app.config['JWT_SECRET_KEY'],
        algorithm='HS256'
    )


@auth_bp.route('/login', methods=['POST'])
def login():
    """
    User login

    POST /api/auth/login
    {
        "email": "user@example.com",
        "password": "password123"
    }
    """
    data = get_json_body(request)

    if not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password required'}), 400

    user = data_service.get_user_by_email(data['email'])

    if not user or not user.verify_password(data['password']):
        return jsonify({'error': 'Invalid email or password'}), 401

    if not user.is_active:
        return jsonify({'error': 'Account is deactivated'}), 401

    data_service.update_last_login(user.id)

    token = generate_token(user)

    return jsonify({
        'token': token,
        'user': user.to_dict()
    })


@auth_bp.route('/me', methods=['GET'])
@token_required
def me(current_user):
    """Current user with resolved permissions"""
    result = current_user.to_dict()
    result['permissions'] = sorted(g.permissions)
    return jsonify(result)


@auth_bp.route('/register', methods=['POST'])
@permissions_required(PermissionName.VIEW_USER_MANAGEMENT)
def register(current_user):
    """
    Register new user

    POST /api/auth/register
    {
        "email": "user@example.com",
        "name": "John Doe",
        "password": "Password123",
        "role": "agent",
        "client_id": "client_abc123"
    }
    """
    data = get_json_body(request)

    required = ['email', 'name', 'password']
    for field in required:
        if not data.get(field):
            return jsonify({'error': f'{field} is required'}), 400

    is_valid, error_msg = validate_password(data['password'])
    if not is_valid:
        return jsonify({'error': error_msg}), 400

    if data_service.get_user_by_email(data['email']):
        return jsonify({'error': 'Email already registered'}), 400

    role_name = data.get('role', UserRole.USER)
    if role_name == UserRole.ADMIN and not current_user.is_admin:
        return jsonify({'error': 'Only admins can create admins'}), 403

    role = data_service.get_role_by_name(role_name)
    if not role:
        return jsonify({'error': f'Unknown role: {role_name}'}), 400

    client_id = data.get('client_id')
    if role_name == UserRole.CLIENT:
        if not client_id or not data_service.get_client(client_id):
            return jsonify({'error': 'client_id of an existing client is required for client users'}), 400

    user = DBUser(
        email=data['email'],
        name=data['name'],
        password=data['password'],
        role_id=role.id,
        client_id=client_id if role_name == UserRole.CLIENT else None
    )
    data_service.save_user(user)

    return jsonify({
        'message': 'User created successfully',
        'user': user.to_dict()
    }), 201
