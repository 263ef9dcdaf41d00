"""
OpsDesk - Package Upgrade Service
Moves a client to a new package, carrying delivered work across

Steps:
    1. Swap the package and create missing assignments (one transaction)
    2. Copy done tasks from the old package's assignments (best-effort)
    3. Seed base tasks and posting tasks for new assets (best-effort)
    4. Report the refreshed client with computed progress
"""
import logging
from datetime import datetime
from typing import Optional, List

from flask import current_app

from opsdesk.database import db
from opsdesk.exceptions import NotFoundError, ValidationError
from opsdesk.models.db_models import (
    DBAssignment, DBClient, DBPackage, DBTask, DBTemplate, DBTemplateSiteAsset, DBUser, TaskStatus
)
from opsdesk.services.activity_service import activity_service
from opsdesk.services.progress_service import compute_client_progress
from opsdesk.services.task_generation_service import task_generation_service
from opsdesk.utils import asset_key, safe_bool

logger = logging.getLogger(__name__)

MIGRATION_MAX_TASKS = 5000

# Fields copied verbatim onto migrated tasks
MIGRATED_FIELDS = [
    'status', 'priority', 'ideal_duration_minutes', 'due_date', 'completion_link',
    'email', 'password', 'username', 'notes', 'category_id', 'template_site_asset_id',
    'created_at', 'completed_at', 'assigned_to_id',
]


class UpgradeService:

    def upgrade(self, client_id: str, data: dict, actor: Optional[DBUser] = None) -> dict:
        """
        Upgrade a client to data['newPackageId'].

        Raises ValidationError / NotFoundError before anything is written.
        Failures after step 1 land in the returned 'warnings' list.
        """
        new_package_id = str(data.get('newPackageId') or '').strip()
        template_id = data.get('templateId')
        template_id = template_id.strip() if isinstance(template_id, str) and template_id.strip() else None

        create_assignments = safe_bool(data.get('createAssignments'), True)
        migrate_completed = safe_bool(data.get('migrateCompleted'), True)
        create_posting = safe_bool(data.get('createPostingTasks'), True)

        if not new_package_id:
            raise ValidationError('newPackageId is required')

        client = DBClient.query.get(client_id)
        if not client:
            raise NotFoundError('Client not found')
        package = DBPackage.query.get(new_package_id)
        if not package:
            raise NotFoundError('Package not found')
        if template_id and not DBTemplate.query.get(template_id):
            raise NotFoundError('Template not found')

        old_package_id = client.package_id
        actor_id = actor.id if actor else None
        warnings = []

        created_assignments = self._swap_package(
            client, package, template_id, create_assignments, actor_id
        )

        migrated = 0
        if migrate_completed and old_package_id:
            try:
                migrated = self._migrate_done_tasks(client.id, old_package_id, new_package_id, template_id)
            except Exception as e:
                db.session.rollback()
                logger.warning(f"[Upgrade] Copy done tasks failed for client {client.id}: {e}")
                warnings.append(f"Task migration failed: {e}")

        posting = {'seededTasks': 0, 'createdPostingNewOnly': 0, 'skippedCommonAssets': 0}
        if create_posting:
            try:
                posting = self._seed_and_post(client.id, old_package_id, new_package_id, template_id, warnings)
            except Exception as e:
                db.session.rollback()
                logger.warning(f"[Upgrade] Posting task flow failed for client {client.id}: {e}")
                warnings.append(f"Posting task generation failed: {e}")

        db.session.refresh(client)
        client_data = client.to_dict(include_assignments=True)
        client_data.update(compute_client_progress(client.id))

        logger.info(
            f"Client {client.id} upgraded {old_package_id} -> {new_package_id}: "
            f"{created_assignments} assignments, {migrated} migrated, "
            f"{posting['createdPostingNewOnly']} posting tasks, {len(warnings)} warnings"
        )

        return {
            'message': 'Client upgraded successfully',
            'createdAssignments': created_assignments,
            'migratedTasks': migrated,
            'seededTasks': posting['seededTasks'],
            'createdPostingNewOnly': posting['createdPostingNewOnly'],
            'createdPosting': posting['createdPostingNewOnly'],
            'skippedCommonAssets': posting['skippedCommonAssets'],
            'warnings': warnings,
            'client': client_data
        }

    # ============================================
    # Step 1: package swap
    # ============================================

    def _swap_package(self, client: DBClient, package: DBPackage, template_id: Optional[str],
                      create_assignments: bool, actor_id: Optional[str]) -> int:
        created = 0
        try:
            client.package_id = package.id
            client.updated_at = datetime.utcnow()

            if create_assignments:
                assigned = {
                    row.template_id
                    for row in DBAssignment.query.filter_by(client_id=client.id).all()
                }
                for template in package.templates:
                    if template.id in assigned:
                        continue
                    db.session.add(DBAssignment(client_id=client.id, template_id=template.id, status='active'))
                    assigned.add(template.id)
                    created += 1

            entry = activity_service.log(
                entity_type=activity_service.ENTITY_CLIENT,
                entity_id=client.id,
                action=activity_service.ACTION_UPGRADE_PACKAGE,
                user_id=actor_id,
                details={
                    'newPackageId': package.id,
                    'templateId': template_id,
                    'createdAssignments': bool(create_assignments),
                    'assignmentsCreated': created
                },
                commit=False
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        activity_service.broadcast(entry)
        return created

    # ============================================
    # Target assignment
    # ============================================

    def _target_assignment(self, client_id: str, new_package_id: str,
                           template_id: Optional[str]) -> Optional[DBAssignment]:
        """
        Latest assignment for the selected template, else the latest under the
        new package. Created for the selected template when absent.
        """
        if template_id:
            target = (
                DBAssignment.query
                .filter_by(client_id=client_id, template_id=template_id)
                .order_by(DBAssignment.assigned_at.desc())
                .first()
            )
            if target is None:
                target = DBAssignment(client_id=client_id, template_id=template_id, status='active')
                db.session.add(target)
                db.session.commit()
            return target

        return (
            DBAssignment.query
            .join(DBTemplate, DBAssignment.template_id == DBTemplate.id)
            .filter(DBAssignment.client_id == client_id, DBTemplate.package_id == new_package_id)
            .order_by(DBAssignment.assigned_at.desc())
            .first()
        )

    # ============================================
    # Step 2: migrate done work
    # ============================================

    def _migrate_done_tasks(self, client_id: str, old_package_id: str, new_package_id: str,
                            template_id: Optional[str]) -> int:
        old_ids = [
            a.id for a in
            DBAssignment.query
            .join(DBTemplate, DBAssignment.template_id == DBTemplate.id)
            .filter(DBAssignment.client_id == client_id, DBTemplate.package_id == old_package_id)
            .all()
        ]
        if not old_ids:
            return 0

        target = self._target_assignment(client_id, new_package_id, template_id)
        if target is None:
            return 0

        taken = {
            name for (name,) in
            db.session.query(DBTask.name).filter(DBTask.assignment_id == target.id).all()
        }
        done = (
            DBTask.query
            .filter(DBTask.assignment_id.in_(old_ids), DBTask.status.in_(TaskStatus.DONE))
            .order_by(DBTask.created_at)
            .limit(MIGRATION_MAX_TASKS)
            .all()
        )

        copies = []
        for src in done:
            if not src.name or src.name in taken:
                continue
            taken.add(src.name)
            fields = {field: getattr(src, field) for field in MIGRATED_FIELDS}
            copies.append(DBTask(
                name=src.name,
                client_id=client_id,
                assignment_id=target.id,
                **fields
            ))

        chunk_size = current_app.config.get('MIGRATION_CHUNK_SIZE', 100)
        migrated = 0
        for start in range(0, len(copies), chunk_size):
            chunk = copies[start:start + chunk_size]
            try:
                db.session.add_all(chunk)
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
            migrated += len(chunk)

        return migrated

    # ============================================
    # Step 3: base tasks + posting for new assets
    # ============================================

    def _scoped_assets(self, package_id: str, template_id: Optional[str] = None) -> List[DBTemplateSiteAsset]:
        query = DBTemplateSiteAsset.query
        if template_id:
            query = query.filter(DBTemplateSiteAsset.template_id == template_id)
        else:
            query = query.join(DBTemplate, DBTemplateSiteAsset.template_id == DBTemplate.id).filter(
                DBTemplate.package_id == package_id
            )
        return query.order_by(DBTemplateSiteAsset.id).all()

    def _seed_and_post(self, client_id: str, old_package_id: Optional[str], new_package_id: str,
                       template_id: Optional[str], warnings: list) -> dict:
        old_keys = set()
        if old_package_id:
            old_keys = {asset_key(a.type, a.name) for a in self._scoped_assets(old_package_id)}

        new_assets = self._scoped_assets(new_package_id, template_id)
        new_only = [a for a in new_assets if asset_key(a.type, a.name) not in old_keys]
        common = [a for a in new_assets if asset_key(a.type, a.name) in old_keys]

        target = self._target_assignment(client_id, new_package_id, template_id)
        if target is None:
            warnings.append('No assignment under the new package; posting tasks were not created')
            return {'seededTasks': 0, 'createdPostingNewOnly': 0, 'skippedCommonAssets': len(common)}

        try:
            seeded = task_generation_service.seed_base_tasks(client_id, target, new_assets)
            posting = task_generation_service.create_posting_for_assets(target, [a.id for a in new_only])
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        return {'seededTasks': seeded, 'createdPostingNewOnly': posting, 'skippedCommonAssets': len(common)}


upgrade_service = UpgradeService()
