"""
OpsDesk - Task Generation Service
Creates base tasks from template site assets and recurring posting tasks
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Iterable, Tuple

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError

from opsdesk.database import db
from opsdesk.exceptions import NotFoundError, ValidationError
from opsdesk.models.db_models import (
    DBAssignment, DBAssignmentSiteAssetSetting, DBTask, DBTaskCategory,
    DBTemplate, DBTemplateSiteAsset, TaskStatus, TaskPriority, PeriodType, SiteAssetType
)
from opsdesk.services.activity_service import activity_service
from opsdesk.utils import norm, safe_int, strip_task_suffix, normalize_for_dedupe

logger = logging.getLogger(__name__)


CATEGORY_NAME_BY_TYPE = {
    SiteAssetType.SOCIAL_SITE: 'Social Asset Creation',
    SiteAssetType.WEB2_SITE: 'Web 2.0 Asset Creation',
    SiteAssetType.OTHER_ASSET: 'Additional Asset Creation',
    SiteAssetType.GRAPHICS_DESIGN: 'Graphics Design',
    SiteAssetType.IMAGE_OPTIMIZATION: 'Image Optimization',
    SiteAssetType.CONTENT_STUDIO: 'Content Studio',
    SiteAssetType.CONTENT_WRITING: 'Content Writing',
    SiteAssetType.BACKLINKS: 'Backlinks',
    SiteAssetType.COMPLETED_COM: 'Completed Communication',
    SiteAssetType.YOUTUBE_VIDEO_OPTIMIZATION: 'YouTube Video Optimization',
    SiteAssetType.MONITORING: 'Monitoring',
    SiteAssetType.REVIEW_REMOVAL: 'Review Removal',
    SiteAssetType.SUMMARY_REPORT: 'Summary Report',
    SiteAssetType.GUEST_POSTING: 'Guest Posting',
}

FALLBACK_CATEGORY = 'Other Task'
POSTING_CATEGORY = 'Posting'

DEFAULT_IDEAL_DURATION = 30
DEFAULT_SEED_DURATION = 60

SPREAD_DAYS = {
    PeriodType.MONTHLY: 30,
    PeriodType.WEEKLY: 7,
}


def _config(key, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def is_qc_category(name: Optional[str]) -> bool:
    lowered = (name or '').lower()
    return 'qc' in lowered or 'quality' in lowered


def posting_due_dates(frequency: int, period: str, start: datetime) -> List[datetime]:
    """
    Spread `frequency` due dates across the period.

    Monthly spreads over 30 days, weekly over 7; daily postings are all due at start.
    """
    span = SPREAD_DAYS.get(period)
    dates = []
    for i in range(frequency):
        offset = math.floor(span / frequency * i) if span else 0
        dates.append(start + timedelta(days=offset))
    return dates


def parse_asset_pairs(items, field: str) -> List[Tuple[int, int]]:
    """[{"oldAssetId": 1, "newAssetId": 2}] -> [(1, 2)]; raises ValidationError on bad input"""
    if not items:
        return []
    if not isinstance(items, list):
        raise ValidationError(f'{field} must be a list')

    pairs = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f'{field}[{index}] must be an object')
        old_id = safe_int(item.get('oldAssetId'), None)
        new_id = safe_int(item.get('newAssetId'), None)
        if old_id is None or new_id is None:
            raise ValidationError(f'{field}[{index}] needs integer oldAssetId and newAssetId')
        pairs.append((old_id, new_id))
    return pairs


class TaskGenerationService:
    """Base-task seeding, regeneration and posting-task generation"""

    # ============================================
    # Categories
    # ============================================

    def ensure_category(self, name: str) -> DBTaskCategory:
        """Get or create a category by its unique name inside the current unit of work"""
        category = DBTaskCategory.query.filter_by(name=name).first()
        if category:
            return category
        try:
            with db.session.begin_nested():
                category = DBTaskCategory(name=name)
                db.session.add(category)
        except IntegrityError:
            # Another request inserted the same name first
            logger.info(f"Task category {name!r} created concurrently, reusing it")
            category = DBTaskCategory.query.filter_by(name=name).one()
        return category

    def ensure_asset_categories(self) -> Dict[str, str]:
        """Make sure every mapped category exists; returns name -> id"""
        names = set(CATEGORY_NAME_BY_TYPE.values())
        names.add(FALLBACK_CATEGORY)
        return {name: self.ensure_category(name).id for name in sorted(names)}

    # ============================================
    # Posting settings
    # ============================================

    def resolve_posting_settings(
        self,
        assignment_id: str,
        asset: Optional[DBTemplateSiteAsset]
    ) -> Tuple[int, str, int, Optional[DBAssignmentSiteAssetSetting]]:
        """
        Frequency, period and duration for an asset's postings.

        Precedence: assignment setting, then asset default, then configured
        default frequency / monthly / 30 minutes.
        """
        setting = None
        if asset is not None:
            setting = DBAssignmentSiteAssetSetting.query.filter_by(
                assignment_id=assignment_id,
                template_site_asset_id=asset.id
            ).first()

        frequency = None
        if setting and setting.required_frequency is not None:
            frequency = setting.required_frequency
        elif asset and asset.default_posting_frequency is not None:
            frequency = asset.default_posting_frequency
        if frequency is None:
            frequency = _config('POSTING_DEFAULT_FREQUENCY', 4)

        duration = None
        if setting and setting.ideal_duration_minutes is not None:
            duration = setting.ideal_duration_minutes
        elif asset and asset.default_ideal_duration_minutes is not None:
            duration = asset.default_ideal_duration_minutes
        if duration is None:
            duration = DEFAULT_IDEAL_DURATION

        period = setting.period if setting and setting.period else PeriodType.MONTHLY

        return max(int(frequency), 0), period, duration, setting

    def existing_posting_tasks(self, assignment_id: str, asset_id: int) -> List[DBTask]:
        return (
            DBTask.query
            .join(DBTaskCategory, DBTask.category_id == DBTaskCategory.id)
            .filter(
                DBTask.assignment_id == assignment_id,
                DBTask.template_site_asset_id == asset_id,
                DBTaskCategory.name == POSTING_CATEGORY,
                DBTask.status != TaskStatus.CANCELLED
            )
            .all()
        )

    def _create_posting_tasks(
        self,
        assignment: DBAssignment,
        asset: DBTemplateSiteAsset,
        frequency: int,
        period: str,
        duration: int,
        notes: str
    ) -> List[DBTask]:
        category = self.ensure_category(POSTING_CATEGORY)
        created = []
        for i, due_date in enumerate(posting_due_dates(frequency, period, datetime.utcnow())):
            task = DBTask(
                name=f"{asset.name or 'Asset'} - Posting {i + 1}/{frequency}",
                assignment_id=assignment.id,
                client_id=assignment.client_id,
                template_site_asset_id=asset.id,
                category_id=category.id,
                due_date=due_date,
                status=TaskStatus.PENDING,
                priority=TaskPriority.MEDIUM,
                ideal_duration_minutes=duration,
                notes=notes
            )
            db.session.add(task)
            created.append(task)
        db.session.flush()
        return created

    # ============================================
    # QC -> posting trigger
    # ============================================

    def _load_qc_task(self, task_id: str) -> DBTask:
        task = DBTask.query.get(task_id)
        if not task:
            raise NotFoundError('Task not found')
        return task

    def trigger_posting(self, task_id: str, actor_id: Optional[str] = None, force_override: bool = False) -> dict:
        """
        Generate posting tasks for the asset behind an approved QC task.

        Commits on success; rolls back and re-raises on failure.
        """
        qc_task = self._load_qc_task(task_id)

        if not is_qc_category(qc_task.category_name):
            raise ValidationError('Task is not a QC task')
        if qc_task.status not in (TaskStatus.COMPLETED, TaskStatus.QC_APPROVED):
            raise ValidationError('QC task is not approved/completed')
        if not qc_task.template_site_asset_id:
            raise ValidationError('Task has no linked site asset')
        if not qc_task.assignment_id:
            raise ValidationError('Task has no linked assignment')

        asset = qc_task.template_site_asset
        frequency, period, duration, setting = self.resolve_posting_settings(qc_task.assignment_id, asset)

        if not force_override:
            existing = self.existing_posting_tasks(qc_task.assignment_id, qc_task.template_site_asset_id)
            if existing:
                return {
                    'message': 'Posting tasks already exist for this asset',
                    'existingTasks': [t.to_dict() for t in existing],
                    'skipped': True
                }

        try:
            notes = (
                f"[AUTO-GENERATED] Triggered by QC Task: {qc_task.name}\n"
                f"Frequency: {frequency}/{period}\n"
                f"Client Override: {'Yes' if setting else 'No (using default)'}"
            )
            posting_tasks = self._create_posting_tasks(
                qc_task.assignment, asset, frequency, period, duration, notes
            )

            now = datetime.utcnow()
            qc_task.append_note(f"[POSTING TRIGGERED] Generated {frequency} posting tasks at {now.isoformat()}")

            entry = activity_service.log(
                entity_type=activity_service.ENTITY_TASK,
                entity_id=qc_task.id,
                action=activity_service.ACTION_TRIGGER_POSTING,
                user_id=actor_id,
                details={
                    'qcTaskId': qc_task.id,
                    'qcTaskName': qc_task.name,
                    'assetId': qc_task.template_site_asset_id,
                    'assetName': asset.name if asset else None,
                    'assignmentId': qc_task.assignment_id,
                    'clientId': qc_task.client_id,
                    'postingTasksCreated': len(posting_tasks),
                    'requiredFrequency': frequency,
                    'period': period,
                    'clientSpecificOverride': setting is not None,
                    'taskIds': [t.id for t in posting_tasks]
                },
                commit=False
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        activity_service.broadcast(entry)
        logger.info(f"Generated {len(posting_tasks)} posting tasks for QC task {qc_task.id}")

        return {
            'message': f"Successfully generated {len(posting_tasks)} posting tasks",
            'qcTask': {'id': qc_task.id, 'name': qc_task.name},
            'postingTasks': [
                {'id': t.id, 'name': t.name, 'due_date': t.due_date.isoformat()}
                for t in posting_tasks
            ],
            'settings': {
                'requiredFrequency': frequency,
                'period': period,
                'idealDurationMinutes': duration,
                'clientOverride': setting is not None
            }
        }

    def preview_posting(self, task_id: str) -> dict:
        """What trigger_posting would create, without writing"""
        qc_task = self._load_qc_task(task_id)
        if not qc_task.template_site_asset_id:
            raise ValidationError('Task has no linked site asset')

        frequency, period, _, setting = self.resolve_posting_settings(
            qc_task.assignment_id, qc_task.template_site_asset
        )
        existing = 0
        if qc_task.assignment_id:
            existing = len(self.existing_posting_tasks(qc_task.assignment_id, qc_task.template_site_asset_id))

        return {
            'qcTask': {
                'id': qc_task.id,
                'name': qc_task.name,
                'status': qc_task.status,
                'isQcTask': is_qc_category(qc_task.category_name)
            },
            'preview': {
                'postingTasksToCreate': frequency,
                'requiredFrequency': frequency,
                'period': period,
                'clientOverride': setting is not None,
                'existingPostingTasks': existing,
                'canTrigger': (
                    qc_task.status in (TaskStatus.COMPLETED, TaskStatus.QC_APPROVED)
                    and existing == 0
                )
            }
        }

    # ============================================
    # Posting for a set of assets (package upgrade)
    # ============================================

    def create_posting_for_assets(self, assignment: DBAssignment, asset_ids: Iterable[int]) -> int:
        """
        Posting tasks for each asset lacking live ones on the assignment.
        Caller owns the transaction.
        """
        created = 0
        for asset_id in asset_ids:
            asset = DBTemplateSiteAsset.query.get(asset_id)
            if asset is None:
                continue
            if self.existing_posting_tasks(assignment.id, asset.id):
                continue
            frequency, period, duration, setting = self.resolve_posting_settings(assignment.id, asset)
            notes = (
                "[AUTO-GENERATED] Package upgrade\n"
                f"Frequency: {frequency}/{period}\n"
                f"Client Override: {'Yes' if setting else 'No (using default)'}"
            )
            created += len(self._create_posting_tasks(assignment, asset, frequency, period, duration, notes))
        return created

    # ============================================
    # Base task seeding (package upgrade)
    # ============================================

    def seed_base_tasks(self, client_id: str, assignment: DBAssignment, assets: List[DBTemplateSiteAsset]) -> int:
        """
        One "<asset> Task" per asset whose type maps to a category.

        Deduplicated per category across every task the client has, by
        normalized name base, type + name base and asset + name base.
        Caller owns the transaction.
        """
        candidate_ids = {a.id for a in assets}
        existing_tasks = DBTask.query.filter_by(client_id=client_id).all()

        seen: Dict[str, Dict[str, set]] = {}

        def sets_for(category_name):
            return seen.setdefault(category_name, {'names': set(), 'types': set(), 'assets': set()})

        seeded_asset_ids = set()
        for task in existing_tasks:
            if task.template_site_asset_id in candidate_ids:
                seeded_asset_ids.add(task.template_site_asset_id)
            if not task.category_name:
                continue
            sets = sets_for(task.category_name)
            base = normalize_for_dedupe(task.name)
            sets['names'].add(base)
            asset = task.template_site_asset
            sets['types'].add(f"{norm(asset.type if asset else SiteAssetType.OTHER_ASSET)}::{base}")
            if asset is not None:
                sets['assets'].add(f"asset_{asset.id}::{base}")

        created = 0
        for asset in assets:
            raw_type = norm(asset.type)
            category_name = CATEGORY_NAME_BY_TYPE.get(raw_type)
            if not category_name:
                continue

            final_name = f"{strip_task_suffix(asset.name or f'Asset {asset.id}')} Task"
            base = normalize_for_dedupe(final_name)
            type_key = f"{raw_type}::{base}"
            asset_key = f"asset_{asset.id}::{base}"
            sets = sets_for(category_name)

            if (asset.id in seeded_asset_ids or base in sets['names']
                    or type_key in sets['types'] or asset_key in sets['assets']):
                continue

            sets['names'].add(base)
            sets['types'].add(type_key)
            sets['assets'].add(asset_key)

            category = self.ensure_category(category_name)
            db.session.add(DBTask(
                name=final_name,
                status=TaskStatus.PENDING,
                priority=TaskPriority.MEDIUM,
                due_date=datetime.utcnow(),
                ideal_duration_minutes=asset.default_ideal_duration_minutes or DEFAULT_SEED_DURATION,
                assignment_id=assignment.id,
                client_id=client_id,
                template_site_asset_id=asset.id,
                category_id=category.id
            ))
            created += 1

        db.session.flush()
        return created

    # ============================================
    # Base tasks and settings (regeneration / template sync)
    # ============================================

    def _base_task(
        self,
        assignment: DBAssignment,
        asset: DBTemplateSiteAsset,
        category_ids: Dict[str, str],
        due_date: datetime,
        notes: str
    ) -> DBTask:
        category_name = CATEGORY_NAME_BY_TYPE.get(asset.type, FALLBACK_CATEGORY)
        task = DBTask(
            name=f"{asset.name} Task",
            assignment_id=assignment.id,
            client_id=assignment.client_id,
            template_site_asset_id=asset.id,
            category_id=category_ids.get(category_name),
            due_date=due_date,
            status=TaskStatus.PENDING,
            priority=TaskPriority.MEDIUM,
            ideal_duration_minutes=asset.default_ideal_duration_minutes or DEFAULT_IDEAL_DURATION,
            notes=notes
        )
        db.session.add(task)
        return task

    @staticmethod
    def _created_row(task: DBTask, asset: DBTemplateSiteAsset, kind: Optional[str] = None) -> dict:
        row = {'taskId': task.id, 'taskName': task.name, 'assetId': asset.id, 'assetName': asset.name}
        if kind:
            row['type'] = kind
        return row

    def _ensure_setting(
        self,
        assignment: DBAssignment,
        asset: DBTemplateSiteAsset
    ) -> Tuple[DBAssignmentSiteAssetSetting, bool]:
        """The assignment's setting for the asset, created from the asset defaults when missing"""
        setting = assignment.setting_for(asset.id)
        if setting is not None:
            return setting, False
        setting = DBAssignmentSiteAssetSetting(
            assignment_id=assignment.id,
            template_site_asset_id=asset.id,
            required_frequency=asset.default_posting_frequency,
            period=PeriodType.MONTHLY,
            ideal_duration_minutes=asset.default_ideal_duration_minutes
        )
        db.session.add(setting)
        assignment.site_asset_settings.append(setting)
        return setting, True

    # ============================================
    # Regeneration
    # ============================================

    def regenerate_tasks(
        self,
        assignment_id: str,
        only_missing: bool = True,
        force_recreate: bool = False,
        actor_id: Optional[str] = None
    ) -> Tuple[DBAssignment, dict]:
        """
        Create a task for every template asset of the assignment that lacks a live one.

        force_recreate cancels every live task first and treats all assets as missing.
        Runs in one transaction.
        """
        assignment = DBAssignment.query.get(assignment_id)
        if not assignment:
            raise NotFoundError('Assignment not found')
        if not assignment.template:
            raise ValidationError('Assignment has no template attached')

        try:
            category_ids = self.ensure_asset_categories()

            live_tasks = DBTask.query.filter(
                DBTask.assignment_id == assignment.id,
                DBTask.status != TaskStatus.CANCELLED
            ).all()
            assets_with_tasks = {t.template_site_asset_id for t in live_tasks if t.template_site_asset_id is not None}

            archived = []
            if force_recreate:
                for task in live_tasks:
                    task.status = TaskStatus.CANCELLED
                    task.append_note('[AUTO-ARCHIVED] Task regenerated')
                    archived.append({'taskId': task.id, 'taskName': task.name, 'assetId': task.template_site_asset_id})
                assets_with_tasks.clear()

            assets = assignment.template.site_assets
            if only_missing and not force_recreate:
                assets = [a for a in assets if a.id not in assets_with_tasks]

            due_date = datetime.utcnow() + timedelta(days=_config('TASK_DEFAULT_DUE_DAYS', 7))
            created = []
            settings_created = []

            for asset in assets:
                task = self._base_task(
                    assignment, asset, category_ids, due_date,
                    '[REGENERATED] Task recreated' if force_recreate else '[GENERATED] Task created for missing asset'
                )
                created.append(self._created_row(task, asset))

                _, setting_created = self._ensure_setting(assignment, asset)
                if setting_created:
                    settings_created.append({'assetId': asset.id, 'assetName': asset.name})

            entry = activity_service.log(
                entity_type=activity_service.ENTITY_ASSIGNMENT,
                entity_id=assignment.id,
                action=activity_service.ACTION_REGENERATE_TASKS,
                user_id=actor_id,
                details={
                    'clientId': assignment.client_id,
                    'clientName': assignment.client.name if assignment.client else None,
                    'templateId': assignment.template.id,
                    'templateName': assignment.template.name,
                    'onlyMissing': only_missing,
                    'forceRecreate': force_recreate,
                    'tasksCreated': len(created),
                    'tasksArchived': len(archived),
                    'settingsCreated': len(settings_created)
                },
                commit=False
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        activity_service.broadcast(entry)
        logger.info(f"Regenerated {len(created)} tasks for assignment {assignment.id}")

        return assignment, {
            'tasksCreated': created,
            'tasksArchived': archived,
            'settingsCreated': settings_created
        }


    # ============================================
    # Template sync
    # ============================================

    def sync_template(
        self,
        assignment_id: str,
        new_template_id: str,
        replacements=None,
        auto_archive_old: bool = True,
        common_asset_mappings=None,
        actor_id: Optional[str] = None
    ) -> Tuple[DBAssignment, dict]:
        """
        Move an assignment onto a new or updated template.

        - assets of the new template without a setting on the assignment get
          a task and a setting
        - each replacement (oldAssetId -> newAssetId) cancels the live tasks of
          the old asset when auto_archive_old, then creates a task for the new
          asset and resets its setting to the asset defaults
        - each common asset mapping copies the client's setting of the old
          asset onto the new one

        Runs in one transaction.
        """
        if not new_template_id:
            raise ValidationError('newTemplateId is required')
        replacement_pairs = parse_asset_pairs(replacements, 'replacements')
        common_pairs = parse_asset_pairs(common_asset_mappings, 'commonAssetMappings')

        assignment = DBAssignment.query.get(assignment_id)
        if not assignment:
            raise NotFoundError('Assignment not found')
        new_template = DBTemplate.query.get(new_template_id)
        if not new_template:
            raise NotFoundError('New template not found')

        old_template_id = assignment.template_id
        assets_by_id = {a.id: a for a in new_template.site_assets}
        old_settings = {s.template_site_asset_id: s for s in assignment.site_asset_settings}
        replacement_targets = {new_id for _, new_id in replacement_pairs}

        try:
            category_ids = self.ensure_asset_categories()
            due_date = datetime.utcnow() + timedelta(days=_config('TASK_DEFAULT_DUE_DAYS', 7))

            live_tasks = DBTask.query.filter(
                DBTask.assignment_id == assignment.id,
                DBTask.status != TaskStatus.CANCELLED
            ).all()

            created = []
            archived = []
            settings_created = []
            settings_migrated = []

            for old_asset_id, new_asset_id in replacement_pairs:
                new_asset = assets_by_id.get(new_asset_id)
                if new_asset is None:
                    logger.warning(f"Replacement asset {new_asset_id} is not part of template {new_template.id}")
                    continue

                if auto_archive_old:
                    for task in live_tasks:
                        if task.template_site_asset_id != old_asset_id or task.status == TaskStatus.CANCELLED:
                            continue
                        task.status = TaskStatus.CANCELLED
                        task.append_note(f'[AUTO-ARCHIVED] Replaced by new asset: {new_asset.name}')
                        archived.append({
                            'taskId': task.id,
                            'taskName': task.name,
                            'oldAssetId': old_asset_id,
                            'newAssetId': new_asset_id,
                            'reason': 'replaced'
                        })

                task = self._base_task(
                    assignment, new_asset, category_ids, due_date,
                    f'[REPLACEMENT] This replaces old asset ID: {old_asset_id}'
                )
                created.append(self._created_row(task, new_asset, 'replacement'))
                setting, setting_created = self._ensure_setting(assignment, new_asset)
                if not setting_created:
                    setting.required_frequency = new_asset.default_posting_frequency
                    setting.ideal_duration_minutes = new_asset.default_ideal_duration_minutes
                settings_created.append({'assetId': new_asset.id, 'assetName': new_asset.name, 'type': 'replacement'})

            for asset in new_template.site_assets:
                if asset.id in old_settings or asset.id in replacement_targets:
                    continue
                task = self._base_task(
                    assignment, asset, category_ids, due_date,
                    '[NEW ASSET] Added to existing assignment'
                )
                created.append(self._created_row(task, asset, 'new'))
                self._ensure_setting(assignment, asset)
                settings_created.append({'assetId': asset.id, 'assetName': asset.name, 'type': 'new'})

            for old_asset_id, new_asset_id in common_pairs:
                old_setting = old_settings.get(old_asset_id)
                if old_setting is None:
                    continue
                if new_asset_id not in assets_by_id:
                    logger.warning(f"Mapped asset {new_asset_id} is not part of template {new_template.id}")
                    continue
                setting, _ = self._ensure_setting(assignment, assets_by_id[new_asset_id])
                setting.required_frequency = old_setting.required_frequency
                setting.period = old_setting.period
                setting.ideal_duration_minutes = old_setting.ideal_duration_minutes
                settings_migrated.append({
                    'oldAssetId': old_asset_id,
                    'newAssetId': new_asset_id,
                    'requiredFrequency': old_setting.required_frequency,
                    'period': old_setting.period
                })

            assignment.template = new_template

            summary = {
                'tasksCreated': created,
                'tasksArchived': archived,
                'settingsCreated': settings_created,
                'settingsMigrated': settings_migrated
            }
            entry = activity_service.log(
                entity_type=activity_service.ENTITY_ASSIGNMENT,
                entity_id=assignment.id,
                action=activity_service.ACTION_SYNC_TEMPLATE,
                user_id=actor_id,
                details={
                    'oldTemplateId': old_template_id,
                    'newTemplateId': new_template.id,
                    'clientId': assignment.client_id,
                    'clientName': assignment.client.name if assignment.client else None,
                    'tasksCreated': len(created),
                    'tasksArchived': len(archived),
                    'settingsCreated': len(settings_created),
                    'settingsMigrated': len(settings_migrated),
                    'replacements': len(replacement_pairs),
                    'commonAssetMappings': len(common_pairs),
                    'details': summary
                },
                commit=False
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        activity_service.broadcast(entry)
        logger.info(
            f"Synced assignment {assignment.id} to template {new_template.id}: "
            f"{len(created)} created, {len(archived)} archived"
        )
        return assignment, summary

task_generation_service = TaskGenerationService()
