"""
OpsDesk - Services
Business logic over the ORM
"""
from opsdesk.services.db_service import DataService
from opsdesk.services.activity_service import ActivityService, activity_service
from opsdesk.services.task_generation_service import TaskGenerationService, task_generation_service
from opsdesk.services.upgrade_service import UpgradeService, upgrade_service
from opsdesk.services.qc_service import QCService, qc_service, compute_qc_score
from opsdesk.services.notification_service import NotificationService, notification_service
from opsdesk.services.progress_service import compute_client_progress

__all__ = [
    'DataService',
    'ActivityService',
    'activity_service',
    'TaskGenerationService',
    'task_generation_service',
    'UpgradeService',
    'upgrade_service',
    'QCService',
    'qc_service',
    'compute_qc_score',
    'NotificationService',
    'notification_service',
    'compute_client_progress'
]
