"""
OpsDesk - QC Service
QC scoring and approval, manual status changes and pauses
"""
import logging
from datetime import datetime
from typing import Optional

from opsdesk.database import db
from opsdesk.exceptions import NotFoundError, ValidationError
from opsdesk.models.db_models import DBTask, DBUser, TaskStatus
from opsdesk.services.activity_service import activity_service
from opsdesk.services.notification_service import notification_service
from opsdesk.services.task_generation_service import task_generation_service, is_qc_category
from opsdesk.utils import clamp_int

logger = logging.getLogger(__name__)


RATING_BASE_SCORES = {
    'Excellent': 70,
    'Good': 60,
    'Average': 50,
    'Lazy': 40,
}

QC_METRICS = ['keyword', 'contentQuality', 'image', 'seo', 'grammar', 'humanization']
METRIC_MAX = 5


def compute_qc_score(rating: str, metrics: Optional[dict] = None) -> dict:
    """
    Score a QC review.

    The rating sets a base of 40-70; each of the six metrics adds 0-5 after
    clamping; the total is clamped to 0-100.

    Raises:
        ValidationError: rating is not one of Excellent, Good, Average, Lazy
    """
    if not isinstance(rating, str) or rating not in RATING_BASE_SCORES:
        raise ValidationError('Valid performanceRating is required (Excellent|Good|Average|Lazy).')

    metrics = metrics or {}
    scored = {name: clamp_int(metrics.get(name, 0), 0, METRIC_MAX) for name in QC_METRICS}
    timer_score = RATING_BASE_SCORES[rating]
    total = max(0, min(100, timer_score + sum(scored.values())))

    result = {'timerScore': timer_score}
    result.update(scored)
    result['total'] = total
    return result


class QCService:

    def _get_task(self, task_id: str) -> DBTask:
        task = DBTask.query.get(task_id)
        if not task:
            raise NotFoundError('Task not found')
        return task

    def approve_task(self, task_id: str, data: dict, reviewer: Optional[DBUser] = None) -> dict:
        """
        Record a QC approval, notify the assignee and, for QC-category tasks,
        generate posting tasks in-process.

        Posting failures never fail the approval; they are logged and
        reported in the autoTrigger block.
        """
        score = compute_qc_score(data.get('performanceRating'), data)
        task = self._get_task(task_id)

        reviewer_id = reviewer.id if reviewer else data.get('reviewerId')
        notes = data.get('notes')
        review = dict(score)
        review.update({
            'reviewerId': reviewer_id,
            'reviewedAt': datetime.utcnow().isoformat(),
            'notes': notes if isinstance(notes, str) else None
        })

        try:
            task.status = TaskStatus.QC_APPROVED
            task.performance_rating = data['performanceRating']
            task.set_qc_review(review)
            task.qc_total_score = score['total']
            task.updated_at = datetime.utcnow()
            notification_service.notify_qc_approved(task, data['performanceRating'], score['total'])
            entry = activity_service.log(
                entity_type=activity_service.ENTITY_TASK,
                entity_id=task.id,
                action=activity_service.ACTION_QC_APPROVE,
                user_id=reviewer.id if reviewer else None,
                details={'rating': data['performanceRating'], 'total': score['total']},
                commit=False
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        activity_service.broadcast(entry)

        should_trigger = is_qc_category(task.category_name)
        auto_trigger = {'shouldTriggerPosting': should_trigger, 'postingTriggered': False, 'postingResult': None}

        if should_trigger and task.template_site_asset_id and task.assignment_id:
            try:
                result = task_generation_service.trigger_posting(
                    task.id, actor_id=reviewer.id if reviewer else None
                )
                auto_trigger['postingTriggered'] = not result.get('skipped', False)
                auto_trigger['postingResult'] = result
            except Exception as e:
                logger.warning(f"Failed to auto-trigger posting for task {task.id}: {e}")
                auto_trigger['error'] = str(e)
        elif should_trigger:
            logger.warning(
                f"Task {task.id} missing data for posting: asset={bool(task.template_site_asset_id)} "
                f"assignment={bool(task.assignment_id)}"
            )

        result = task.to_dict()
        result['autoTrigger'] = auto_trigger
        return result

    def update_status(self, task_id: str, status: Optional[str], notes: Optional[str] = None,
                      actor: Optional[DBUser] = None) -> dict:
        if not status:
            raise ValidationError('status is required')
        if status not in TaskStatus.ALL:
            raise ValidationError('Invalid status value')

        task = self._get_task(task_id)
        old_status = task.status

        try:
            task.status = status
            if notes:
                task.append_note(notes)
            if status in TaskStatus.DONE and old_status not in TaskStatus.DONE:
                task.completed_at = datetime.utcnow()
            entry = activity_service.log(
                entity_type=activity_service.ENTITY_TASK,
                entity_id=task.id,
                action=activity_service.ACTION_UPDATE_STATUS,
                user_id=actor.id if actor else None,
                details={
                    'taskId': task.id,
                    'taskName': task.name,
                    'oldStatus': old_status,
                    'newStatus': status,
                    'assignmentId': task.assignment_id,
                    'clientId': task.client_id,
                    'clientName': task.client.name if task.client else None
                },
                commit=False
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        activity_service.broadcast(entry)

        return {
            'message': 'Task status updated successfully',
            'task': task.to_dict(),
            'statusChange': {'from': old_status, 'to': status}
        }

    def status_preview(self, task_id: str) -> dict:
        task = self._get_task(task_id)
        is_qc = is_qc_category(task.category_name)

        posting_preview = None
        if is_qc and task.template_site_asset_id:
            frequency, period, _, setting = task_generation_service.resolve_posting_settings(
                task.assignment_id, task.template_site_asset
            )
            posting_preview = {
                'wouldTriggerPosting': task.status not in (TaskStatus.COMPLETED, TaskStatus.QC_APPROVED),
                'postingTasksToCreate': frequency,
                'period': period,
                'clientOverride': setting is not None
            }

        return {
            'task': {
                'id': task.id,
                'name': task.name,
                'status': task.status,
                'categoryName': task.category_name or None
            },
            'isQcTask': is_qc,
            'autoTriggers': {'postingPreview': posting_preview}
        }

    def pause_task(self, task_id: str, reason: Optional[str], actor: Optional[DBUser] = None) -> dict:
        if not reason or not str(reason).strip():
            raise ValidationError('Pause reason is required')

        task = self._get_task(task_id)
        reasons = task.get_pause_reasons()
        reasons.append({
            'reason': str(reason).strip(),
            'timestamp': datetime.utcnow().isoformat(),
            'durationInSeconds': 0,
            'pausedBy': actor.id if actor else None
        })

        try:
            task.set_pause_reasons(reasons)
            task.status = TaskStatus.PAUSED
            entry = activity_service.log(
                entity_type=activity_service.ENTITY_TASK,
                entity_id=task.id,
                action=activity_service.ACTION_PAUSE,
                user_id=actor.id if actor else None,
                details={'reason': str(reason).strip()},
                commit=False
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        activity_service.broadcast(entry)

        return {'message': 'Task paused successfully', 'task': task.to_dict()}


qc_service = QCService()
