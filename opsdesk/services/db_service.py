"""
OpsDesk - Database Service
PostgreSQL-backed data operations
"""
from typing import Optional, List, Tuple
from datetime import datetime

from sqlalchemy import func, or_

from opsdesk.database import db
from opsdesk.models.db_models import (
    DBUser, DBRole, DBClient, DBPackage, DBTemplate, DBTemplateSiteAsset,
    DBAssignment, DBAssignmentSiteAssetSetting, DBTask, DBNotification, UserRole
)
from opsdesk.services.activity_service import activity_service


class DataService:
    """Database-backed data service"""

    def _commit(self):
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    # ============================================
    # User Operations
    # ============================================

    def get_user(self, user_id: str) -> Optional[DBUser]:
        """Get user by ID"""
        return DBUser.query.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[DBUser]:
        """Get user by email"""
        return DBUser.query.filter_by(email=email.lower()).first()

    def get_role_by_name(self, name: str) -> Optional[DBRole]:
        return DBRole.query.filter_by(name=name).first()

    def save_user(self, user: DBUser) -> DBUser:
        db.session.add(user)
        self._commit()
        return user

    def update_last_login(self, user_id: str):
        """Update user's last login timestamp"""
        user = DBUser.query.get(user_id)
        if user:
            user.last_login = datetime.utcnow()
            self._commit()

    def is_account_manager(self, user_id: str) -> bool:
        user = DBUser.query.get(user_id)
        return bool(user and user.role_name == UserRole.AM)

    # ============================================
    # Client Operations
    # ============================================

    def get_client(self, client_id: str) -> Optional[DBClient]:
        """Get client by ID"""
        return DBClient.query.get(client_id)

    def get_clients_for_user(self, user: DBUser, search: Optional[str] = None) -> List[DBClient]:
        """Active clients visible to the user"""
        query = DBClient.query.filter_by(is_active=True)

        if user.has_global_client_access:
            pass
        elif user.is_client_user:
            query = query.filter(DBClient.id == user.client_id)
        elif user.role_name == UserRole.AM:
            query = query.filter(DBClient.am_id == user.id)
        else:
            task_clients = db.session.query(DBTask.client_id).filter(DBTask.assigned_to_id == user.id)
            query = query.filter(DBClient.id.in_(task_clients))

        if search:
            like = f"%{search}%"
            query = query.filter(or_(DBClient.name.ilike(like), DBClient.company.ilike(like), DBClient.email.ilike(like)))

        return query.order_by(DBClient.created_at.desc()).all()

    def save_client(self, client: DBClient) -> DBClient:
        client.updated_at = datetime.utcnow()
        db.session.add(client)
        self._commit()
        return client

    def delete_client(self, client_id: str) -> bool:
        """Soft delete a client"""
        client = DBClient.query.get(client_id)
        if not client:
            return False
        client.is_active = False
        client.status = 'inactive'
        self._commit()
        return True

    # ============================================
    # Package / Template Operations
    # ============================================

    def get_package(self, package_id: str) -> Optional[DBPackage]:
        return DBPackage.query.get(package_id)

    def get_package_by_name(self, name: str) -> Optional[DBPackage]:
        return DBPackage.query.filter(func.lower(DBPackage.name) == name.lower()).first()

    def get_all_packages(self) -> List[DBPackage]:
        return DBPackage.query.order_by(DBPackage.created_at.desc()).all()

    def count_clients_by_package(self) -> dict:
        rows = (
            db.session.query(DBClient.package_id, func.count(DBClient.id))
            .filter(DBClient.is_active.is_(True), DBClient.package_id.isnot(None))
            .group_by(DBClient.package_id)
            .all()
        )
        return {package_id: count for package_id, count in rows}

    def package_has_clients(self, package_id: str) -> bool:
        """Any client referencing the package, soft-deleted ones included"""
        return db.session.query(DBClient.id).filter(DBClient.package_id == package_id).first() is not None

    def save_package(self, package: DBPackage) -> DBPackage:
        package.updated_at = datetime.utcnow()
        db.session.add(package)
        self._commit()
        return package

    def delete_package(self, package_id: str) -> bool:
        package = DBPackage.query.get(package_id)
        if not package:
            return False
        for template in list(package.templates):
            template.package_id = None
        db.session.delete(package)
        self._commit()
        return True

    def get_template(self, template_id: str) -> Optional[DBTemplate]:
        return DBTemplate.query.get(template_id)

    def save_template(self, template: DBTemplate) -> DBTemplate:
        db.session.add(template)
        self._commit()
        return template

    def add_site_assets(self, template: DBTemplate, assets: List[DBTemplateSiteAsset]) -> List[DBTemplateSiteAsset]:
        for asset in assets:
            asset.template_id = template.id
            db.session.add(asset)
        self._commit()
        return assets

    def delete_template(self, template_id: str, actor_id: Optional[str] = None) -> Optional[dict]:
        """
        Delete a template together with everything generated from it.

        Assignments on the template, tasks on those assignments or on its
        assets, the tasks' notifications and the per-asset settings are
        removed in one transaction with a `delete` activity row.
        Returns the deleted counts, or None when the template does not exist.
        """
        template = DBTemplate.query.get(template_id)
        if not template:
            return None

        name, package_id = template.name, template.package_id
        asset_ids = [a.id for a in template.site_assets]
        assignment_ids = [row.id for row in db.session.query(DBAssignment.id).filter_by(template_id=template_id)]

        task_filter = or_(
            DBTask.assignment_id.in_(assignment_ids),
            DBTask.template_site_asset_id.in_(asset_ids)
        )
        setting_filter = or_(
            DBAssignmentSiteAssetSetting.assignment_id.in_(assignment_ids),
            DBAssignmentSiteAssetSetting.template_site_asset_id.in_(asset_ids)
        )

        try:
            task_ids = [row.id for row in db.session.query(DBTask.id).filter(task_filter)]
            counts = {
                'notifications': DBNotification.query.filter(
                    DBNotification.task_id.in_(task_ids)
                ).delete(synchronize_session=False),
                'tasks': DBTask.query.filter(task_filter).delete(synchronize_session=False),
                'assignmentSiteAssetSettings': DBAssignmentSiteAssetSetting.query.filter(
                    setting_filter
                ).delete(synchronize_session=False),
                'assignments': DBAssignment.query.filter(
                    DBAssignment.id.in_(assignment_ids)
                ).delete(synchronize_session=False),
                'siteAssets': DBTemplateSiteAsset.query.filter_by(
                    template_id=template_id
                ).delete(synchronize_session=False),
            }
            DBTemplate.query.filter_by(id=template_id).delete(synchronize_session=False)

            entry = activity_service.log(
                entity_type=activity_service.ENTITY_TEMPLATE,
                entity_id=template_id,
                action=activity_service.ACTION_DELETE,
                user_id=actor_id,
                details={'name': name, 'packageId': package_id, 'deletedCounts': counts},
                commit=False
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        activity_service.broadcast(entry)
        return counts

    # ============================================
    # Assignment Operations
    # ============================================

    def get_assignment(self, assignment_id: str) -> Optional[DBAssignment]:
        return DBAssignment.query.get(assignment_id)

    def get_client_assignment(self, client_id: str, template_id: str) -> Optional[DBAssignment]:
        return (
            DBAssignment.query
            .filter_by(client_id=client_id, template_id=template_id)
            .order_by(DBAssignment.assigned_at.desc())
            .first()
        )

    def save_assignment(self, assignment: DBAssignment) -> DBAssignment:
        db.session.add(assignment)
        self._commit()
        return assignment

    # ============================================
    # Task Operations
    # ============================================

    def get_task(self, task_id: str) -> Optional[DBTask]:
        return DBTask.query.get(task_id)

    def list_tasks(
        self,
        client_id: Optional[str] = None,
        assignment_id: Optional[str] = None,
        status: Optional[str] = None,
        assigned_to_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[DBTask], int]:
        query = DBTask.query
        if client_id:
            query = query.filter(DBTask.client_id == client_id)
        if assignment_id:
            query = query.filter(DBTask.assignment_id == assignment_id)
        if status:
            query = query.filter(DBTask.status == status)
        if assigned_to_id:
            query = query.filter(DBTask.assigned_to_id == assigned_to_id)

        total = query.count()
        tasks = query.order_by(DBTask.created_at.desc()).offset(offset).limit(limit).all()
        return tasks, total

    def save_task(self, task: DBTask) -> DBTask:
        task.updated_at = datetime.utcnow()
        db.session.add(task)
        self._commit()
        return task

    def delete_task(self, task_id: str) -> bool:
        task = DBTask.query.get(task_id)
        if not task:
            return False
        DBNotification.query.filter_by(task_id=task.id).delete()
        db.session.delete(task)
        self._commit()
        return True
