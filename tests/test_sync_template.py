"""
OpsDesk - Template Sync Tests
"""
import pytest

from opsdesk.database import db
from opsdesk.exceptions import NotFoundError, ValidationError
from opsdesk.models.db_models import DBActivityLog, DBAssignmentSiteAssetSetting, DBTask, TaskStatus, UserRole
from opsdesk.services.activity_service import activity_service
from opsdesk.services.task_generation_service import task_generation_service


@pytest.fixture
def setup(make_package, make_client, assign):
    """
    Assignment on T1 (Facebook, Medium) with base tasks; T2 is its successor
    (Facebook, Substack, Pinterest) in the same package.
    """
    package = make_package('Starter', {
        'T1': [
            {'type': 'social_site', 'name': 'Facebook', 'default_posting_frequency': 4},
            {'type': 'web2_site', 'name': 'Medium'},
        ],
        'T2': [
            {'type': 'social_site', 'name': 'Facebook', 'default_posting_frequency': 4},
            {'type': 'web2_site', 'name': 'Substack', 'default_posting_frequency': 3},
            {'type': 'social_site', 'name': 'Pinterest', 'default_posting_frequency': 2},
        ],
    })
    templates = {t.name: t for t in package.templates}
    assignment = assign(make_client(package_id=package.id), templates['T1'])
    return {
        'assignment': assignment,
        't1': templates['T1'],
        't2': templates['T2'],
        'old': {a.name: a for a in templates['T1'].site_assets},
        'new': {a.name: a for a in templates['T2'].site_assets},
    }


def _tasks_by_name(assignment_id, status=None):
    query = DBTask.query.filter_by(assignment_id=assignment_id)
    if status:
        query = query.filter_by(status=status)
    return {t.name: t for t in query.all()}


class TestSyncTemplate:

    def test_new_assets_get_tasks_and_settings(self, app, setup):
        assignment, summary = task_generation_service.sync_template(setup['assignment'].id, setup['t2'].id)

        assert assignment.template_id == setup['t2'].id
        assert sorted(row['taskName'] for row in summary['tasksCreated']) == [
            'Facebook Task', 'Pinterest Task', 'Substack Task'
        ]
        assert {row['type'] for row in summary['tasksCreated']} == {'new'}
        assert summary['tasksArchived'] == []
        assert len(summary['settingsCreated']) == 3

        pinterest = setup['new']['Pinterest']
        setting = DBAssignmentSiteAssetSetting.query.filter_by(
            assignment_id=assignment.id, template_site_asset_id=pinterest.id
        ).one()
        assert setting.required_frequency == 2

        created = DBTask.query.filter_by(template_site_asset_id=pinterest.id).one()
        assert created.notes == '[NEW ASSET] Added to existing assignment'
        assert created.category_name == 'Social Asset Creation'

    def test_replacement_archives_old_tasks(self, app, setup):
        medium, substack = setup['old']['Medium'], setup['new']['Substack']

        _, summary = task_generation_service.sync_template(
            setup['assignment'].id,
            setup['t2'].id,
            replacements=[{'oldAssetId': medium.id, 'newAssetId': substack.id}]
        )

        assert [row['taskName'] for row in summary['tasksArchived']] == ['Medium Task']
        assert summary['tasksArchived'][0]['reason'] == 'replaced'
        kinds = sorted(row['type'] for row in summary['tasksCreated'])
        assert kinds == ['new', 'new', 'replacement']

        cancelled = _tasks_by_name(setup['assignment'].id, TaskStatus.CANCELLED)
        assert '[AUTO-ARCHIVED] Replaced by new asset: Substack' in cancelled['Medium Task'].notes

        replacement = _tasks_by_name(setup['assignment'].id)['Substack Task']
        assert replacement.notes == f'[REPLACEMENT] This replaces old asset ID: {medium.id}'
        assert replacement.status == TaskStatus.PENDING

    def test_replacement_can_keep_old_tasks(self, app, setup):
        medium, substack = setup['old']['Medium'], setup['new']['Substack']

        _, summary = task_generation_service.sync_template(
            setup['assignment'].id,
            setup['t2'].id,
            replacements=[{'oldAssetId': medium.id, 'newAssetId': substack.id}],
            auto_archive_old=False
        )

        assert summary['tasksArchived'] == []
        assert _tasks_by_name(setup['assignment'].id)['Medium Task'].status == TaskStatus.PENDING

    def test_common_mapping_carries_client_setting(self, app, setup):
        old_facebook, new_facebook = setup['old']['Facebook'], setup['new']['Facebook']
        override = setup['assignment'].setting_for(old_facebook.id)
        override.required_frequency = 10
        override.period = 'weekly'
        db.session.commit()

        _, summary = task_generation_service.sync_template(
            setup['assignment'].id,
            setup['t2'].id,
            common_asset_mappings=[{'oldAssetId': old_facebook.id, 'newAssetId': new_facebook.id}]
        )

        assert summary['settingsMigrated'] == [{
            'oldAssetId': old_facebook.id,
            'newAssetId': new_facebook.id,
            'requiredFrequency': 10,
            'period': 'weekly'
        }]
        migrated = DBAssignmentSiteAssetSetting.query.filter_by(
            assignment_id=setup['assignment'].id, template_site_asset_id=new_facebook.id
        ).one()
        assert migrated.required_frequency == 10
        assert migrated.period == 'weekly'

    def test_resync_to_same_template_changes_nothing(self, app, setup):
        before = len(_tasks_by_name(setup['assignment'].id))

        _, summary = task_generation_service.sync_template(setup['assignment'].id, setup['t1'].id)

        assert summary == {'tasksCreated': [], 'tasksArchived': [], 'settingsCreated': [], 'settingsMigrated': []}
        assert len(_tasks_by_name(setup['assignment'].id)) == before

        entry = DBActivityLog.query.filter_by(action=activity_service.ACTION_SYNC_TEMPLATE).one()
        assert entry.get_details()['oldTemplateId'] == setup['t1'].id
        assert entry.get_details()['newTemplateId'] == setup['t1'].id

    def test_validation(self, app, setup):
        assignment_id = setup['assignment'].id

        with pytest.raises(ValidationError):
            task_generation_service.sync_template(assignment_id, None)
        with pytest.raises(ValidationError):
            task_generation_service.sync_template(assignment_id, setup['t2'].id, replacements='medium')
        with pytest.raises(ValidationError):
            task_generation_service.sync_template(
                assignment_id, setup['t2'].id, replacements=[{'oldAssetId': 'x', 'newAssetId': 1}]
            )
        with pytest.raises(NotFoundError):
            task_generation_service.sync_template('assignment_missing', setup['t2'].id)
        with pytest.raises(NotFoundError):
            task_generation_service.sync_template(assignment_id, 'tpl_missing')


class TestSyncTemplateRoute:

    def test_sync_via_api(self, client, admin, auth_headers, setup):
        response = client.post(
            f"/api/assignments/{setup['assignment'].id}/sync-template",
            json={'newTemplateId': setup['t2'].id, 'autoArchiveOld': 'true'},
            headers=auth_headers(admin)
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data['assignment']['template_id'] == setup['t2'].id
        assert len(data['summary']['tasksCreated']) == 3

    def test_unknown_template(self, client, admin, auth_headers, setup):
        response = client.post(
            f"/api/assignments/{setup['assignment'].id}/sync-template",
            json={'newTemplateId': 'tpl_missing'},
            headers=auth_headers(admin)
        )
        assert response.status_code == 404
        assert response.get_json()['error'] == 'New template not found'

    def test_missing_template_id(self, client, admin, auth_headers, setup):
        response = client.post(
            f"/api/assignments/{setup['assignment'].id}/sync-template",
            json={},
            headers=auth_headers(admin)
        )
        assert response.status_code == 400

    def test_requires_task_manage(self, client, make_user, auth_headers, setup):
        response = client.post(
            f"/api/assignments/{setup['assignment'].id}/sync-template",
            json={'newTemplateId': setup['t2'].id},
            headers=auth_headers(make_user(UserRole.AGENT))
        )
        assert response.status_code == 403
