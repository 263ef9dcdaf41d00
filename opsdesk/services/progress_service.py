"""
OpsDesk - Client Progress
Completion percentage derived from task status counts, computed on read
"""
from typing import Dict

from sqlalchemy import func

from opsdesk.database import db
from opsdesk.models.db_models import DBTask, TaskStatus
from opsdesk.utils import round_half_up

# Paused and data_entered tasks do not count toward the total
COUNTED_STATUSES = [
    TaskStatus.PENDING,
    TaskStatus.IN_PROGRESS,
    TaskStatus.COMPLETED,
    TaskStatus.OVERDUE,
    TaskStatus.CANCELLED,
    TaskStatus.REASSIGNED,
    TaskStatus.QC_APPROVED,
]


def count_tasks_by_status(client_id: str) -> Dict[str, int]:
    counts = {status: 0 for status in TaskStatus.ALL}
    rows = (
        db.session.query(DBTask.status, func.count(DBTask.id))
        .filter(DBTask.client_id == client_id)
        .group_by(DBTask.status)
        .all()
    )
    for status, count in rows:
        if status in counts:
            counts[status] = count
    return counts


def compute_client_progress(client_id: str) -> dict:
    """
    Returns {'progress': int, 'task_counts': {...}}.

    progress = completed / total * 100, rounded half up; 0 when total is 0.
    """
    counts = count_tasks_by_status(client_id)
    total = sum(counts[s] for s in COUNTED_STATUSES)
    progress = round_half_up(counts[TaskStatus.COMPLETED] / total * 100) if total > 0 else 0

    task_counts = {'total': total}
    task_counts.update({s: counts[s] for s in COUNTED_STATUSES})
    return {'progress': progress, 'task_counts': task_counts}
