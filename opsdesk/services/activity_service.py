"""
OpsDesk - Activity Log Service
Append-only record of business actions, with optional broadcast
"""
import logging
from typing import Optional, Dict, Any, Tuple, List

import requests
from flask import current_app, has_app_context
from sqlalchemy import or_

from opsdesk.database import db
from opsdesk.models.db_models import DBActivityLog

logger = logging.getLogger(__name__)


class ActivityService:
    """Service for writing and querying activity rows"""

    # Entity types
    ENTITY_CLIENT = 'Client'
    ENTITY_ASSIGNMENT = 'Assignment'
    ENTITY_TASK = 'Task'
    ENTITY_PACKAGE = 'Package'
    ENTITY_TEMPLATE = 'Template'

    # Actions
    ACTION_CREATE = 'create'
    ACTION_UPDATE = 'update'
    ACTION_DELETE = 'delete'
    ACTION_UPGRADE_PACKAGE = 'upgrade_package'
    ACTION_REGENERATE_TASKS = 'regenerate_tasks'
    ACTION_SYNC_TEMPLATE = 'sync_template'
    ACTION_TRIGGER_POSTING = 'trigger_posting'
    ACTION_QC_APPROVE = 'qc_approve'
    ACTION_UPDATE_STATUS = 'update_status'
    ACTION_PAUSE = 'pause'

    def log(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        commit: bool = True
    ) -> DBActivityLog:
        """
        Append an activity row.

        With commit=False the row joins the caller's unit of work and the
        caller is expected to commit, then call broadcast(). With commit=True
        the row is committed and broadcast immediately.
        """
        entry = DBActivityLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            user_id=user_id,
            details=details
        )
        db.session.add(entry)

        if commit:
            try:
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
            self.broadcast(entry)

        logger.debug(f"Activity: {action} {entity_type} {entity_id} by {user_id}")
        return entry

    def broadcast(self, entry: DBActivityLog) -> bool:
        """POST the row to ACTIVITY_WEBHOOK_URL. Failures are logged and ignored."""
        if not has_app_context():
            return False
        url = current_app.config.get('ACTIVITY_WEBHOOK_URL')
        if not url:
            return False

        try:
            response = requests.post(
                url,
                json={'event': 'activity:new', 'activity': entry.to_dict()},
                timeout=current_app.config.get('ACTIVITY_WEBHOOK_TIMEOUT', 5)
            )
            if response.status_code >= 400:
                logger.warning(f"Activity broadcast rejected: HTTP {response.status_code}")
                return False
            return True
        except requests.exceptions.Timeout:
            logger.warning("Activity broadcast timed out")
        except requests.exceptions.RequestException as e:
            logger.warning(f"Activity broadcast failed: {e}")
        return False

    def list(
        self,
        limit: int = 20,
        offset: int = 0,
        action: Optional[str] = None,
        q: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None
    ) -> Tuple[List[DBActivityLog], int]:
        """Newest-first page of activity rows and the total matching count"""
        query = DBActivityLog.query

        if action:
            query = query.filter(DBActivityLog.action == action)
        if entity_type:
            query = query.filter(DBActivityLog.entity_type == entity_type)
        if entity_id:
            query = query.filter(DBActivityLog.entity_id == entity_id)
        if q:
            like = f"%{q}%"
            query = query.filter(or_(
                DBActivityLog.entity_type.ilike(like),
                DBActivityLog.entity_id.ilike(like),
                DBActivityLog.action.ilike(like),
            ))

        total = query.count()
        rows = query.order_by(DBActivityLog.timestamp.desc()).offset(offset).limit(limit).all()
        return rows, total


activity_service = ActivityService()
