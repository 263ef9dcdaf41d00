"""
OpsDesk - Seed Data
Default roles, permissions and the role -> permission map
"""
import logging

from opsdesk.database import db
from opsdesk.models.db_models import (
    DBPermission, DBRole, DBRolePermission, DBUser, PermissionName as P, UserRole
)
from opsdesk.services.task_generation_service import task_generation_service, POSTING_CATEGORY

logger = logging.getLogger(__name__)


ROLES = [
    (UserRole.ADMIN, 'Administrator'),
    (UserRole.MANAGER, 'Manager'),
    (UserRole.AGENT, 'Agent'),
    (UserRole.QC, 'Quality Control'),
    (UserRole.AM, 'Account Manager'),
    (UserRole.AM_CEO, 'AM CEO'),
    (UserRole.DATA_ENTRY, 'Data Entry'),
    (UserRole.CLIENT, 'Client'),
    (UserRole.USER, 'General User'),
]

PERMISSIONS = [
    (P.VIEW_DASHBOARD, 'Sidebar: Dashboard'),
    (P.DATA_ENTRY_DASHBOARD, 'Sidebar: Data Entry Dashboard'),
    (P.VIEW_NOTIFICATIONS, 'Sidebar: Notifications'),
    (P.VIEW_CLIENTS_LIST, 'Clients: list all'),
    (P.VIEW_CLIENTS_CREATE, 'Clients: create'),
    (P.VIEW_AM_CLIENTS_LIST, 'Clients: list managed (AM)'),
    (P.VIEW_AM_CEO_CLIENTS_LIST, 'Clients: list all (AM CEO)'),
    (P.VIEW_AM_CLIENTS_CREATE, 'Clients: create (AM)'),
    (P.DATA_ENTRY_CLIENTS_CREATE, 'Clients: create (data entry)'),
    (P.CLIENT_EDIT, 'Clients: edit'),
    (P.CLIENT_DELETE, 'Clients: delete'),
    (P.CLIENT_PACKAGE_UPGRADE, 'Clients: upgrade package'),
    (P.VIEW_PACKAGES_LIST, 'Packages: list'),
    (P.PACKAGE_CREATE, 'Packages: create'),
    (P.PACKAGE_EDIT, 'Packages: edit'),
    (P.PACKAGE_DELETE, 'Packages: delete'),
    (P.TEMPLATE_EDIT, 'Templates: edit'),
    (P.TEMPLATE_DELETE, 'Templates: delete'),
    (P.VIEW_TASKS_LIST, 'Tasks: list all'),
    (P.VIEW_AGENT_TASKS, 'Tasks: own tasks (agent)'),
    (P.TASK_MANAGE, 'Tasks: create, edit, regenerate'),
    (P.VIEW_QC_DASHBOARD, 'QC: dashboard'),
    (P.VIEW_QC_REVIEW, 'QC: review and approve'),
    (P.VIEW_ACTIVITY_LOGS, 'Activity logs'),
    (P.VIEW_USER_MANAGEMENT, 'User management'),
]

# Admin is granted every permission
ROLE_PERMISSION_MAP = {
    UserRole.MANAGER: [
        P.VIEW_DASHBOARD, P.VIEW_CLIENTS_LIST, P.VIEW_CLIENTS_CREATE, P.CLIENT_EDIT,
        P.CLIENT_PACKAGE_UPGRADE, P.VIEW_PACKAGES_LIST, P.PACKAGE_CREATE, P.PACKAGE_EDIT,
        P.TEMPLATE_EDIT, P.VIEW_TASKS_LIST, P.TASK_MANAGE, P.VIEW_QC_DASHBOARD,
        P.VIEW_QC_REVIEW, P.VIEW_USER_MANAGEMENT, P.VIEW_ACTIVITY_LOGS, P.VIEW_NOTIFICATIONS,
    ],
    UserRole.AGENT: [
        P.VIEW_DASHBOARD, P.VIEW_AGENT_TASKS, P.VIEW_NOTIFICATIONS,
    ],
    UserRole.QC: [
        P.VIEW_DASHBOARD, P.VIEW_QC_DASHBOARD, P.VIEW_QC_REVIEW, P.VIEW_NOTIFICATIONS,
    ],
    UserRole.AM: [
        P.VIEW_DASHBOARD, P.VIEW_AM_CLIENTS_LIST, P.VIEW_AM_CLIENTS_CREATE, P.CLIENT_EDIT,
        P.CLIENT_PACKAGE_UPGRADE, P.VIEW_NOTIFICATIONS,
    ],
    UserRole.AM_CEO: [
        P.VIEW_DASHBOARD, P.VIEW_AM_CEO_CLIENTS_LIST, P.VIEW_NOTIFICATIONS,
    ],
    UserRole.DATA_ENTRY: [
        P.DATA_ENTRY_DASHBOARD, P.DATA_ENTRY_CLIENTS_CREATE, P.VIEW_PACKAGES_LIST,
        P.VIEW_NOTIFICATIONS,
    ],
    UserRole.CLIENT: [P.VIEW_DASHBOARD, P.VIEW_NOTIFICATIONS],
    UserRole.USER: [P.VIEW_DASHBOARD],
}


def seed_roles_and_permissions() -> dict:
    """Idempotent: creates missing roles, permissions and grants"""
    created = {'roles': 0, 'permissions': 0, 'grants': 0}
    try:
        for name, description in ROLES:
            if not DBRole.query.get(name):
                db.session.add(DBRole(id=name, name=name, description=description))
                created['roles'] += 1

        for name, description in PERMISSIONS:
            if not DBPermission.query.get(name):
                db.session.add(DBPermission(id=name, name=name, description=description))
                created['permissions'] += 1
        db.session.flush()

        grants = dict(ROLE_PERMISSION_MAP)
        grants[UserRole.ADMIN] = [name for name, _ in PERMISSIONS]
        for role_name, permission_names in grants.items():
            existing = {
                row.permission_id for row in DBRolePermission.query.filter_by(role_id=role_name).all()
            }
            for permission_name in permission_names:
                if permission_name in existing:
                    continue
                db.session.add(DBRolePermission(role_id=role_name, permission_id=permission_name))
                created['grants'] += 1

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"Seeded {created['roles']} roles, {created['permissions']} permissions, {created['grants']} grants")
    return created


def seed_task_categories() -> int:
    try:
        names = task_generation_service.ensure_asset_categories()
        task_generation_service.ensure_category(POSTING_CATEGORY)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return len(names) + 1


def create_user(email: str, name: str, password: str, role_name: str, client_id=None) -> DBUser:
    """Create a user with a named role; raises ValueError for an unknown role"""
    role = DBRole.query.filter_by(name=role_name).first()
    if not role:
        raise ValueError(f"Unknown role: {role_name}")
    user = DBUser(email=email, name=name, password=password, role_id=role.id, client_id=client_id)
    db.session.add(user)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return user
