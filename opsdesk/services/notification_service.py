"""
OpsDesk - Notification Service
In-app notifications for task events
"""
import logging
from typing import List, Optional

from opsdesk.database import db
from opsdesk.models.db_models import DBNotification, DBRole, DBUser, NotificationType, UserRole

logger = logging.getLogger(__name__)


class NotificationService:

    def notify(self, user_id: str, message: str, task_id: Optional[str] = None,
               type: str = NotificationType.GENERAL) -> DBNotification:
        """Queue a notification in the current unit of work (caller commits)"""
        notification = DBNotification(user_id=user_id, message=message, task_id=task_id, type=type)
        db.session.add(notification)
        return notification

    def notify_roles(self, role_names: List[str], message: str, task_id: Optional[str] = None,
                     exclude_user_id: Optional[str] = None) -> int:
        users = (
            DBUser.query
            .join(DBRole, DBUser.role_id == DBRole.id)
            .filter(DBRole.name.in_(role_names), DBUser.is_active.is_(True))
            .all()
        )
        count = 0
        for user in users:
            if user.id == exclude_user_id:
                continue
            self.notify(user.id, message, task_id=task_id)
            count += 1
        return count

    def notify_task_updated(self, task, actor: Optional[DBUser] = None) -> int:
        """Tell admins and QC reviewers that a task changed"""
        who = actor.name if actor else 'Someone'
        return self.notify_roles(
            [UserRole.ADMIN, UserRole.QC],
            f'{who} updated task "{task.name}" (status: {task.status}).',
            task_id=task.id,
            exclude_user_id=actor.id if actor else None
        )

    def notify_qc_approved(self, task, rating: str, total: int) -> Optional[DBNotification]:
        if not task.assigned_to_id:
            return None
        return self.notify(
            task.assigned_to_id,
            f'Task "{task.name}" has been QC approved. Rating: {rating}. Score: {total}%.',
            task_id=task.id,
            type=NotificationType.PERFORMANCE
        )

    def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[DBNotification]:
        query = DBNotification.query.filter_by(user_id=user_id)
        if unread_only:
            query = query.filter_by(is_read=False)
        return query.order_by(DBNotification.created_at.desc()).limit(limit).all()

    def mark_read(self, user_id: str, notification_id: str) -> bool:
        notification = DBNotification.query.filter_by(id=notification_id, user_id=user_id).first()
        if not notification:
            return False
        notification.is_read = True
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return True


notification_service = NotificationService()
