"""
OpsDesk - Data Models
SQLAlchemy ORM models for PostgreSQL
"""
from opsdesk.models.db_models import (
    DBUser as User,
    DBRole as Role,
    DBPermission as Permission,
    DBClient as Client,
    DBPackage as Package,
    DBTemplate as Template,
    DBTemplateSiteAsset as TemplateSiteAsset,
    DBAssignment as Assignment,
    DBAssignmentSiteAssetSetting as AssignmentSiteAssetSetting,
    DBTask as Task,
    DBTaskCategory as TaskCategory,
    DBActivityLog as ActivityLog,
    DBNotification as Notification,
    UserRole,
    PermissionName,
    TaskStatus,
    TaskPriority,
    PeriodType,
    SiteAssetType
)

__all__ = [
    'User',
    'Role',
    'Permission',
    'Client',
    'Package',
    'Template',
    'TemplateSiteAsset',
    'Assignment',
    'AssignmentSiteAssetSetting',
    'Task',
    'TaskCategory',
    'ActivityLog',
    'Notification',
    'UserRole',
    'PermissionName',
    'TaskStatus',
    'TaskPriority',
    'PeriodType',
    'SiteAssetType'
]
