"""
OpsDesk - Task Regeneration Tests
"""
import pytest

from opsdesk.database import db
from opsdesk.exceptions import NotFoundError, ValidationError
from opsdesk.models.db_models import (
    DBAssignment, DBAssignmentSiteAssetSetting, DBTask, DBTemplateSiteAsset, TaskStatus, UserRole
)
from opsdesk.services.task_generation_service import FALLBACK_CATEGORY, task_generation_service


@pytest.fixture
def setup(make_package, make_client):
    package = make_package('Starter', {
        'T1': [
            {'type': 'social_site', 'name': 'Facebook', 'default_posting_frequency': 4},
            {'type': 'web2_site', 'name': 'Medium', 'default_ideal_duration_minutes': 45},
        ]
    })
    template = package.templates[0]
    customer = make_client(package_id=package.id)
    assignment = DBAssignment(client_id=customer.id, template_id=template.id)
    db.session.add(assignment)
    db.session.commit()
    return {'assignment': assignment, 'template': template}


def _live_tasks(assignment_id):
    return DBTask.query.filter(
        DBTask.assignment_id == assignment_id,
        DBTask.status != TaskStatus.CANCELLED
    ).all()


class TestRegenerate:

    def test_creates_one_task_per_asset(self, app, setup):
        assignment, summary = task_generation_service.regenerate_tasks(setup['assignment'].id)

        assert len(summary['tasksCreated']) == 2
        assert len(summary['settingsCreated']) == 2
        tasks = {t.name: t for t in _live_tasks(assignment.id)}
        assert tasks['Facebook Task'].category_name == 'Social Asset Creation'
        assert tasks['Medium Task'].category_name == 'Web 2.0 Asset Creation'
        assert tasks['Medium Task'].ideal_duration_minutes == 45
        assert tasks['Facebook Task'].ideal_duration_minutes == 30

    def test_settings_copy_asset_defaults(self, app, setup):
        task_generation_service.regenerate_tasks(setup['assignment'].id)

        facebook = setup['template'].site_assets[0]
        setting = DBAssignmentSiteAssetSetting.query.filter_by(
            assignment_id=setup['assignment'].id, template_site_asset_id=facebook.id
        ).one()
        assert setting.required_frequency == 4
        assert setting.period == 'monthly'

    def test_only_missing_is_idempotent(self, app, setup):
        task_generation_service.regenerate_tasks(setup['assignment'].id)
        _, summary = task_generation_service.regenerate_tasks(setup['assignment'].id)

        assert summary['tasksCreated'] == []
        assert summary['settingsCreated'] == []
        assert len(_live_tasks(setup['assignment'].id)) == 2

    def test_fills_newly_added_asset(self, app, setup):
        task_generation_service.regenerate_tasks(setup['assignment'].id)
        db.session.add(DBTemplateSiteAsset(template_id=setup['template'].id, type='youtube', name='Channel'))
        db.session.commit()

        _, summary = task_generation_service.regenerate_tasks(setup['assignment'].id)

        assert [t['taskName'] for t in summary['tasksCreated']] == ['Channel Task']
        channel = DBTask.query.filter_by(name='Channel Task').one()
        assert channel.category_name == FALLBACK_CATEGORY

    def test_cancelled_task_counts_as_missing(self, app, setup):
        task_generation_service.regenerate_tasks(setup['assignment'].id)
        task = DBTask.query.filter_by(name='Facebook Task').one()
        task.status = TaskStatus.CANCELLED
        db.session.commit()

        _, summary = task_generation_service.regenerate_tasks(setup['assignment'].id)
        assert [t['taskName'] for t in summary['tasksCreated']] == ['Facebook Task']

    def test_force_recreate_archives_everything(self, app, setup):
        task_generation_service.regenerate_tasks(setup['assignment'].id)
        _, summary = task_generation_service.regenerate_tasks(setup['assignment'].id, force_recreate=True)

        assert len(summary['tasksArchived']) == 2
        assert len(summary['tasksCreated']) == 2
        assert len(_live_tasks(setup['assignment'].id)) == 2
        cancelled = DBTask.query.filter_by(assignment_id=setup['assignment'].id, status=TaskStatus.CANCELLED).all()
        assert len(cancelled) == 2
        assert all('[AUTO-ARCHIVED]' in t.notes for t in cancelled)

    def test_unknown_assignment(self, app):
        with pytest.raises(NotFoundError):
            task_generation_service.regenerate_tasks('assignment_missing')

    def test_assignment_without_template(self, app, make_client):
        assignment = DBAssignment(client_id=make_client().id, template_id=None)
        db.session.add(assignment)
        db.session.commit()

        with pytest.raises(ValidationError):
            task_generation_service.regenerate_tasks(assignment.id)


class TestAssignmentRoutes:

    def test_create_assignment_generates_tasks(self, client, admin, auth_headers, make_package, make_client):
        package = make_package('Starter', {'T1': [{'type': 'social_site', 'name': 'Facebook'}]})
        customer = make_client(package_id=package.id)
        payload = {'clientId': customer.id, 'templateId': package.templates[0].id}

        response = client.post('/api/assignments/', json=payload, headers=auth_headers(admin))
        assert response.status_code == 201
        assert [t['name'] for t in response.get_json()['assignment']['tasks']] == ['Facebook Task']

        again = client.post('/api/assignments/', json=payload, headers=auth_headers(admin))
        assert again.status_code == 200
        assert again.get_json()['message'] == 'Assignment already exists'

    def test_regenerate_route(self, client, admin, auth_headers, setup):
        response = client.post(
            f"/api/assignments/{setup['assignment'].id}/regenerate-tasks",
            json={'onlyMissing': True},
            headers=auth_headers(admin)
        )

        assert response.status_code == 200
        data = response.get_json()
        assert len(data['summary']['tasksCreated']) == 2
        assert len(data['assignment']['tasks']) == 2

    def test_regenerate_route_404(self, client, admin, auth_headers):
        response = client.post('/api/assignments/missing/regenerate-tasks', json={}, headers=auth_headers(admin))
        assert response.status_code == 404

    def test_regenerate_requires_task_manage(self, client, make_user, auth_headers, setup):
        response = client.post(
            f"/api/assignments/{setup['assignment'].id}/regenerate-tasks",
            json={},
            headers=auth_headers(make_user(UserRole.AGENT))
        )
        assert response.status_code == 403

    def test_site_asset_settings(self, client, admin, auth_headers, setup):
        asset = setup['template'].site_assets[1]
        response = client.put(
            f"/api/assignments/{setup['assignment'].id}/site-asset-settings",
            json={'settings': [{'templateSiteAssetId': asset.id, 'requiredFrequency': 8, 'period': 'weekly'}]},
            headers=auth_headers(admin)
        )

        assert response.status_code == 200
        settings = response.get_json()['site_asset_settings']
        assert settings[0]['required_frequency'] == 8
        assert settings[0]['period'] == 'weekly'

    def test_site_asset_settings_rejects_foreign_asset(self, client, admin, auth_headers, setup):
        response = client.put(
            f"/api/assignments/{setup['assignment'].id}/site-asset-settings",
            json={'settings': [{'templateSiteAssetId': 9999, 'requiredFrequency': 8}]},
            headers=auth_headers(admin)
        )
        assert response.status_code == 400
