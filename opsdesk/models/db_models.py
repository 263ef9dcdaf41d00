"""
OpsDesk - SQLAlchemy Database Models
PostgreSQL-backed models for production deployment
"""
from datetime import datetime
from typing import Optional, List, Set
import uuid
import hashlib
import secrets
import json

from sqlalchemy import String, Text, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opsdesk.database import db
from opsdesk.utils import safe_json_loads, isoformat


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# ============================================
# Enumerations
# ============================================

class UserRole:
    ADMIN = 'admin'
    MANAGER = 'manager'
    AGENT = 'agent'
    QC = 'qc'
    AM = 'am'
    AM_CEO = 'am_ceo'
    DATA_ENTRY = 'data_entry'
    CLIENT = 'client'
    USER = 'user'

    ALL = [ADMIN, MANAGER, AGENT, QC, AM, AM_CEO, DATA_ENTRY, CLIENT, USER]

    # Roles that see every client
    GLOBAL_CLIENT_ACCESS = [ADMIN, MANAGER, AM_CEO]


class TaskStatus:
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    PAUSED = 'paused'
    COMPLETED = 'completed'
    OVERDUE = 'overdue'
    CANCELLED = 'cancelled'
    REASSIGNED = 'reassigned'
    QC_APPROVED = 'qc_approved'
    DATA_ENTERED = 'data_entered'

    ALL = [
        PENDING, IN_PROGRESS, PAUSED, COMPLETED, OVERDUE,
        CANCELLED, REASSIGNED, QC_APPROVED, DATA_ENTERED,
    ]

    # Work that counts as delivered and survives a package upgrade
    DONE = [COMPLETED, QC_APPROVED, DATA_ENTERED]


class TaskPriority:
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    URGENT = 'urgent'

    ALL = [LOW, MEDIUM, HIGH, URGENT]


class PeriodType:
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'

    ALL = [DAILY, WEEKLY, MONTHLY]


class SiteAssetType:
    SOCIAL_SITE = 'social_site'
    WEB2_SITE = 'web2_site'
    OTHER_ASSET = 'other_asset'
    GRAPHICS_DESIGN = 'graphics_design'
    IMAGE_OPTIMIZATION = 'image_optimization'
    CONTENT_STUDIO = 'content_studio'
    CONTENT_WRITING = 'content_writing'
    BACKLINKS = 'backlinks'
    COMPLETED_COM = 'completed_com'
    YOUTUBE_VIDEO_OPTIMIZATION = 'youtube_video_optimization'
    MONITORING = 'monitoring'
    REVIEW_REMOVAL = 'review_removal'
    SUMMARY_REPORT = 'summary_report'
    GUEST_POSTING = 'guest_posting'

    ALL = [
        SOCIAL_SITE, WEB2_SITE, OTHER_ASSET, GRAPHICS_DESIGN, IMAGE_OPTIMIZATION,
        CONTENT_STUDIO, CONTENT_WRITING, BACKLINKS, COMPLETED_COM,
        YOUTUBE_VIDEO_OPTIMIZATION, MONITORING, REVIEW_REMOVAL, SUMMARY_REPORT,
        GUEST_POSTING,
    ]


class PermissionName:
    VIEW_DASHBOARD = 'view_dashboard'
    DATA_ENTRY_DASHBOARD = 'data_entry_dashboard'
    VIEW_NOTIFICATIONS = 'view_notifications'

    VIEW_CLIENTS_LIST = 'view_clients_list'
    VIEW_CLIENTS_CREATE = 'view_clients_create'
    VIEW_AM_CLIENTS_LIST = 'view_am_clients_list'
    VIEW_AM_CEO_CLIENTS_LIST = 'view_am_ceo_clients_list'
    VIEW_AM_CLIENTS_CREATE = 'view_am_clients_create'
    DATA_ENTRY_CLIENTS_CREATE = 'data_entry_clients_create'
    CLIENT_EDIT = 'client_edit'
    CLIENT_DELETE = 'client_delete'
    CLIENT_PACKAGE_UPGRADE = 'client_package_upgrade'

    VIEW_PACKAGES_LIST = 'view_packages_list'
    PACKAGE_CREATE = 'package_create'
    PACKAGE_EDIT = 'package_edit'
    PACKAGE_DELETE = 'package_delete'
    TEMPLATE_EDIT = 'template_edit'
    TEMPLATE_DELETE = 'template_delete'

    VIEW_TASKS_LIST = 'view_tasks_list'
    VIEW_AGENT_TASKS = 'view_agent_tasks'
    TASK_MANAGE = 'task_manage'
    VIEW_QC_DASHBOARD = 'view_qc_dashboard'
    VIEW_QC_REVIEW = 'view_qc_review'

    VIEW_ACTIVITY_LOGS = 'view_activity_logs'
    VIEW_USER_MANAGEMENT = 'view_user_management'

    CLIENT_LIST_ANY = [VIEW_CLIENTS_LIST, VIEW_AM_CLIENTS_LIST, VIEW_AM_CEO_CLIENTS_LIST]
    CLIENT_CREATE_ANY = [VIEW_CLIENTS_CREATE, VIEW_AM_CLIENTS_CREATE, DATA_ENTRY_CLIENTS_CREATE]


# ============================================
# Roles & Permissions
# ============================================

class DBRolePermission(db.Model):
    """Role -> permission grant"""
    __tablename__ = 'role_permissions'
    __table_args__ = (UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_id: Mapped[str] = mapped_column(String(50), ForeignKey('roles.id'), index=True)
    permission_id: Mapped[str] = mapped_column(String(100), ForeignKey('permissions.id'), index=True)


class DBPermission(db.Model):
    __tablename__ = 'permissions'

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'description': self.description}


class DBRole(db.Model):
    __tablename__ = 'roles'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    permissions: Mapped[List["DBPermission"]] = relationship(
        "DBPermission", secondary='role_permissions', lazy='selectin', viewonly=True
    )

    def permission_names(self) -> Set[str]:
        return {p.name for p in self.permissions}

    def to_dict(self, include_permissions: bool = False) -> dict:
        result = {'id': self.id, 'name': self.name, 'description': self.description}
        if include_permissions:
            result['permissions'] = sorted(self.permission_names())
        return result


# ============================================
# User Model
# ============================================

class DBUser(db.Model):
    """Staff or client login"""
    __tablename__ = 'users'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    password_salt: Mapped[str] = mapped_column(String(64), nullable=False)
    role_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('roles.id'), nullable=True, index=True)
    # Set for users with the client role: the client they log in as
    client_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    role: Mapped[Optional["DBRole"]] = relationship("DBRole", lazy='joined')

    def __init__(self, email: str, name: str, password: str, role_id: Optional[str] = None, **kwargs):
        self.id = kwargs.get('id') or _new_id('user')
        self.email = email.lower()
        self.name = name
        self.role_id = role_id
        self.client_id = kwargs.get('client_id')
        self.password_salt = secrets.token_hex(16)
        self.password_hash = self._hash_password(password, self.password_salt)
        self.is_active = True
        self.created_at = datetime.utcnow()

    @staticmethod
    def _hash_password(password: str, salt: str) -> str:
        return hashlib.sha256(f"{password}{salt}".encode()).hexdigest()

    def verify_password(self, password: str) -> bool:
        return secrets.compare_digest(self.password_hash, self._hash_password(password, self.password_salt))

    def set_password(self, password: str):
        self.password_salt = secrets.token_hex(16)
        self.password_hash = self._hash_password(password, self.password_salt)

    @property
    def role_name(self) -> Optional[str]:
        return self.role.name if self.role else None

    def get_permissions(self) -> Set[str]:
        return self.role.permission_names() if self.role else set()

    def has_permission(self, name: str, granted: Optional[Set[str]] = None) -> bool:
        """Admins hold every permission; `granted` is a set already resolved for this request"""
        if self.is_admin:
            return True
        return name in (granted if granted is not None else self.get_permissions())

    @property
    def is_admin(self) -> bool:
        return self.role_name == UserRole.ADMIN

    @property
    def is_client_user(self) -> bool:
        return self.role_name == UserRole.CLIENT

    @property
    def has_global_client_access(self) -> bool:
        return self.role_name in UserRole.GLOBAL_CLIENT_ACCESS

    def can_access_client(self, client_id: str) -> bool:
        """
        admin/manager/am_ceo: every client; am: clients they manage;
        client: their own; everyone else: clients they hold tasks for.
        """
        if self.has_global_client_access:
            return True
        if self.is_client_user:
            return self.client_id == client_id
        if self.role_name == UserRole.AM:
            return DBClient.query.filter_by(id=client_id, am_id=self.id).first() is not None
        return DBTask.query.filter_by(client_id=client_id, assigned_to_id=self.id).first() is not None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role_name,
            'client_id': self.client_id,
            'is_active': self.is_active,
            'created_at': isoformat(self.created_at),
            'last_login': isoformat(self.last_login)
        }


# ============================================
# Package / Template Models
# ============================================

class DBPackage(db.Model):
    """Sellable service plan; owns the templates a client is assigned"""
    __tablename__ = 'packages'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    total_months: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    templates: Mapped[List["DBTemplate"]] = relationship("DBTemplate", back_populates="package", lazy="selectin")

    def __init__(self, name: str, **kwargs):
        self.id = kwargs.get('id') or _new_id('pkg')
        self.name = name
        self.description = kwargs.get('description')
        self.total_months = kwargs.get('total_months')
        self.created_at = datetime.utcnow()
        self.updated_at = datetime.utcnow()

    def to_dict(self, include_templates: bool = False) -> dict:
        result = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'total_months': self.total_months,
            'template_count': len(self.templates),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }
        if include_templates:
            result['templates'] = [t.to_dict(include_assets=True) for t in self.templates]
        return result


class DBTemplate(db.Model):
    """Reusable set of deliverable site assets under a package"""
    __tablename__ = 'templates'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(30), default='active')
    package_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('packages.id'), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    package: Mapped[Optional["DBPackage"]] = relationship("DBPackage", back_populates="templates")
    site_assets: Mapped[List["DBTemplateSiteAsset"]] = relationship(
        "DBTemplateSiteAsset", back_populates="template", lazy="selectin",
        order_by="DBTemplateSiteAsset.id"
    )

    def __init__(self, name: str, package_id: Optional[str] = None, **kwargs):
        self.id = kwargs.get('id') or _new_id('tpl')
        self.name = name
        self.package_id = package_id
        self.description = kwargs.get('description')
        self.status = kwargs.get('status', 'active')
        self.created_at = datetime.utcnow()

    def to_dict(self, include_assets: bool = False) -> dict:
        result = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'status': self.status,
            'package_id': self.package_id,
            'asset_count': len(self.site_assets),
            'created_at': isoformat(self.created_at)
        }
        if include_assets:
            result['site_assets'] = [a.to_dict() for a in self.site_assets]
        return result


class DBTemplateSiteAsset(db.Model):
    """A deliverable (social profile, web 2.0 site, ...) that seeds recurring tasks"""
    __tablename__ = 'template_site_assets'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template_id: Mapped[str] = mapped_column(String(50), ForeignKey('templates.id'), index=True)
    type: Mapped[str] = mapped_column(String(50), default=SiteAssetType.OTHER_ASSET)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    default_posting_frequency: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    default_ideal_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    template: Mapped["DBTemplate"] = relationship("DBTemplate", back_populates="site_assets")

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'template_id': self.template_id,
            'type': self.type,
            'name': self.name,
            'url': self.url,
            'description': self.description,
            'is_required': self.is_required,
            'default_posting_frequency': self.default_posting_frequency,
            'default_ideal_duration_minutes': self.default_ideal_duration_minutes
        }


# ============================================
# Client Model
# ============================================

class DBClient(db.Model):
    """Agency client profile"""
    __tablename__ = 'clients'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    designation: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    biography: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(30), default='active')

    package_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('packages.id'), nullable=True, index=True)
    am_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('users.id'), nullable=True, index=True)

    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Opaque structured data (stored as JSON)
    social_media: Mapped[str] = mapped_column(Text, default='[]')
    other_field: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    article_topics: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    package: Mapped[Optional["DBPackage"]] = relationship("DBPackage")
    account_manager: Mapped[Optional["DBUser"]] = relationship("DBUser", foreign_keys=[am_id])
    assignments: Mapped[List["DBAssignment"]] = relationship(
        "DBAssignment", back_populates="client", lazy="selectin", order_by="DBAssignment.assigned_at"
    )

    def __init__(self, name: str, **kwargs):
        self.id = kwargs.get('id') or _new_id('client')
        self.name = name
        self.company = kwargs.get('company')
        self.designation = kwargs.get('designation')
        self.location = kwargs.get('location')
        self.email = kwargs.get('email')
        self.phone = kwargs.get('phone')
        self.website = kwargs.get('website')
        self.biography = kwargs.get('biography')
        self.status = kwargs.get('status', 'active')
        self.package_id = kwargs.get('package_id')
        self.am_id = kwargs.get('am_id')
        self.start_date = kwargs.get('start_date')
        self.due_date = kwargs.get('due_date')
        self.set_social_media(kwargs.get('social_media', []))
        self.set_other_field(kwargs.get('other_field'))
        self.set_article_topics(kwargs.get('article_topics'))
        self.is_active = True
        self.created_at = datetime.utcnow()
        self.updated_at = datetime.utcnow()

    def get_social_media(self) -> list:
        result = safe_json_loads(self.social_media, [])
        return result if isinstance(result, list) else []

    def set_social_media(self, value):
        # Anything that isn't a list is coerced to an empty list
        self.social_media = json.dumps(value if isinstance(value, list) else [])

    def get_other_field(self):
        return safe_json_loads(self.other_field, {}) if self.other_field else None

    def set_other_field(self, value):
        self.other_field = json.dumps(value) if value is not None else None

    def get_article_topics(self):
        return safe_json_loads(self.article_topics, []) if self.article_topics else None

    def set_article_topics(self, value):
        self.article_topics = json.dumps(value) if value is not None else None

    def to_dict(self, include_assignments: bool = False) -> dict:
        result = {
            'id': self.id,
            'name': self.name,
            'company': self.company,
            'designation': self.designation,
            'location': self.location,
            'email': self.email,
            'phone': self.phone,
            'website': self.website,
            'biography': self.biography,
            'status': self.status,
            'package_id': self.package_id,
            'package': self.package.to_dict() if self.package else None,
            'am_id': self.am_id,
            'account_manager': self.account_manager.to_dict() if self.account_manager else None,
            'start_date': isoformat(self.start_date),
            'due_date': isoformat(self.due_date),
            'social_media': self.get_social_media(),
            'other_field': self.get_other_field(),
            'article_topics': self.get_article_topics(),
            'is_active': self.is_active,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }
        if include_assignments:
            result['assignments'] = [a.to_dict() for a in self.assignments]
        return result


# ============================================
# Assignment Models
# ============================================

class DBAssignment(db.Model):
    """Client <-> template link; the unit tasks are generated against"""
    __tablename__ = 'assignments'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(50), ForeignKey('clients.id'), index=True)
    template_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('templates.id'), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(30), default='active')
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    client: Mapped["DBClient"] = relationship("DBClient", back_populates="assignments")
    template: Mapped[Optional["DBTemplate"]] = relationship("DBTemplate", lazy="joined")
    site_asset_settings: Mapped[List["DBAssignmentSiteAssetSetting"]] = relationship(
        "DBAssignmentSiteAssetSetting", back_populates="assignment", lazy="selectin"
    )

    def __init__(self, client_id: str, template_id: Optional[str], **kwargs):
        self.id = kwargs.get('id') or _new_id('assignment')
        self.client_id = client_id
        self.template_id = template_id
        self.status = kwargs.get('status', 'active')
        self.assigned_at = kwargs.get('assigned_at') or datetime.utcnow()

    def setting_for(self, asset_id: int) -> Optional["DBAssignmentSiteAssetSetting"]:
        for setting in self.site_asset_settings:
            if setting.template_site_asset_id == asset_id:
                return setting
        return None

    def to_dict(self, include_tasks: bool = False) -> dict:
        result = {
            'id': self.id,
            'client_id': self.client_id,
            'template_id': self.template_id,
            'template': self.template.to_dict(include_assets=True) if self.template else None,
            'status': self.status,
            'assigned_at': isoformat(self.assigned_at),
            'site_asset_settings': [s.to_dict() for s in self.site_asset_settings]
        }
        if include_tasks:
            tasks = DBTask.query.filter_by(assignment_id=self.id).order_by(DBTask.created_at.desc()).all()
            result['tasks'] = [t.to_dict() for t in tasks]
        return result


class DBAssignmentSiteAssetSetting(db.Model):
    """Client-specific override of an asset's posting cadence"""
    __tablename__ = 'assignment_site_asset_settings'
    __table_args__ = (UniqueConstraint('assignment_id', 'template_site_asset_id', name='uq_assignment_asset_setting'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assignment_id: Mapped[str] = mapped_column(String(50), ForeignKey('assignments.id'), index=True)
    template_site_asset_id: Mapped[int] = mapped_column(Integer, ForeignKey('template_site_assets.id'), index=True)
    required_frequency: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    period: Mapped[str] = mapped_column(String(20), default=PeriodType.MONTHLY)
    ideal_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    assignment: Mapped["DBAssignment"] = relationship("DBAssignment", back_populates="site_asset_settings")

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'assignment_id': self.assignment_id,
            'template_site_asset_id': self.template_site_asset_id,
            'required_frequency': self.required_frequency,
            'period': self.period,
            'ideal_duration_minutes': self.ideal_duration_minutes
        }


# ============================================
# Task Models
# ============================================

class DBTaskCategory(db.Model):
    __tablename__ = 'task_categories'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __init__(self, name: str, **kwargs):
        self.id = kwargs.get('id') or _new_id('cat')
        self.name = name
        self.description = kwargs.get('description')

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'description': self.description}


class DBTask(db.Model):
    """Unit of work assigned to an agent"""
    __tablename__ = 'tasks'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default=TaskStatus.PENDING, index=True)
    priority: Mapped[str] = mapped_column(String(20), default=TaskPriority.MEDIUM)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    ideal_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Deliverable details
    completion_link: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relations
    client_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('clients.id'), nullable=True, index=True)
    assignment_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('assignments.id'), nullable=True, index=True)
    category_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('task_categories.id'), nullable=True, index=True)
    template_site_asset_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey('template_site_assets.id'), nullable=True, index=True
    )
    assigned_to_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('users.id'), nullable=True, index=True)

    # QC
    performance_rating: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    qc_review: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON
    qc_total_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    pause_reasons: Mapped[str] = mapped_column(Text, default='[]')  # JSON array

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    category: Mapped[Optional["DBTaskCategory"]] = relationship("DBTaskCategory", lazy="joined")
    template_site_asset: Mapped[Optional["DBTemplateSiteAsset"]] = relationship("DBTemplateSiteAsset", lazy="joined")
    assigned_to: Mapped[Optional["DBUser"]] = relationship("DBUser", foreign_keys=[assigned_to_id])
    assignment: Mapped[Optional["DBAssignment"]] = relationship("DBAssignment")
    client: Mapped[Optional["DBClient"]] = relationship("DBClient")

    def __init__(self, name: str, **kwargs):
        self.id = kwargs.pop('id', None) or _new_id('task')
        self.name = name
        self.status = kwargs.pop('status', TaskStatus.PENDING)
        self.priority = kwargs.pop('priority', TaskPriority.MEDIUM)
        self.pause_reasons = '[]'
        now = datetime.utcnow()
        self.created_at = kwargs.pop('created_at', None) or now
        self.updated_at = now
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)

    @property
    def category_name(self) -> str:
        return self.category.name if self.category else ''

    def get_qc_review(self) -> Optional[dict]:
        return safe_json_loads(self.qc_review, {}) if self.qc_review else None

    def set_qc_review(self, review: dict):
        self.qc_review = json.dumps(review, default=str)

    def get_pause_reasons(self) -> list:
        result = safe_json_loads(self.pause_reasons, [])
        return result if isinstance(result, list) else []

    def set_pause_reasons(self, reasons: list):
        self.pause_reasons = json.dumps(reasons, default=str)

    def append_note(self, note: str):
        self.notes = f"{self.notes or ''}\n\n{note}" if self.notes else note

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'status': self.status,
            'priority': self.priority,
            'due_date': isoformat(self.due_date),
            'ideal_duration_minutes': self.ideal_duration_minutes,
            'completion_link': self.completion_link,
            'username': self.username,
            'email': self.email,
            'notes': self.notes,
            'client_id': self.client_id,
            'assignment_id': self.assignment_id,
            'category_id': self.category_id,
            'category': self.category.to_dict() if self.category else None,
            'template_site_asset_id': self.template_site_asset_id,
            'template_site_asset': self.template_site_asset.to_dict() if self.template_site_asset else None,
            'assigned_to_id': self.assigned_to_id,
            'performance_rating': self.performance_rating,
            'qc_review': self.get_qc_review(),
            'qc_total_score': self.qc_total_score,
            'pause_reasons': self.get_pause_reasons(),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
            'completed_at': isoformat(self.completed_at)
        }


# ============================================
# Activity & Notifications
# ============================================

class DBActivityLog(db.Model):
    """Append-only audit trail of business actions"""
    __tablename__ = 'activity_logs'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    entity_type: Mapped[str] = mapped_column(String(50), index=True)  # Client, Assignment, Task, ...
    entity_id: Mapped[str] = mapped_column(String(50), index=True)
    action: Mapped[str] = mapped_column(String(50), index=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON
    user_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('users.id'), nullable=True, index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    user: Mapped[Optional["DBUser"]] = relationship("DBUser")

    def __init__(self, entity_type: str, entity_id: str, action: str, **kwargs):
        self.id = _new_id('log')
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.action = action
        self.user_id = kwargs.get('user_id')
        details = kwargs.get('details')
        self.details = json.dumps(details, default=str) if details is not None else None
        self.timestamp = datetime.utcnow()

    def get_details(self):
        return safe_json_loads(self.details, {}) if self.details else None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'action': self.action,
            'details': self.get_details(),
            'user_id': self.user_id,
            'user': {'id': self.user.id, 'name': self.user.name, 'email': self.user.email} if self.user else None,
            'timestamp': isoformat(self.timestamp)
        }


class NotificationType:
    GENERAL = 'general'
    PERFORMANCE = 'performance'


class DBNotification(db.Model):
    __tablename__ = 'notifications'

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(50), ForeignKey('users.id'), index=True)
    task_id: Mapped[Optional[str]] = mapped_column(String(50), ForeignKey('tasks.id'), nullable=True)
    type: Mapped[str] = mapped_column(String(30), default=NotificationType.GENERAL)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __init__(self, user_id: str, message: str, **kwargs):
        self.id = _new_id('notif')
        self.user_id = user_id
        self.message = message
        self.task_id = kwargs.get('task_id')
        self.type = kwargs.get('type', NotificationType.GENERAL)
        self.is_read = False
        self.created_at = datetime.utcnow()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'task_id': self.task_id,
            'type': self.type,
            'message': self.message,
            'is_read': self.is_read,
            'created_at': isoformat(self.created_at)
        }
