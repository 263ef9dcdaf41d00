"""
OpsDesk - Package Upgrade Tests
"""
import pytest

from opsdesk.database import db
from opsdesk.exceptions import NotFoundError, ValidationError
from opsdesk.models.db_models import DBActivityLog, DBAssignment, DBTask, TaskStatus, UserRole
from opsdesk.services.task_generation_service import POSTING_CATEGORY, task_generation_service
from opsdesk.services.upgrade_service import upgrade_service


@pytest.fixture
def scenario(make_package, make_client, assign):
    """
    Client C on P1 (T1: Facebook) upgrading to P2 (T2: Facebook, Medium).
    C's Facebook task is already completed.
    """
    p1 = make_package('P1', {
        'T1': [{'type': 'social_site', 'name': 'Facebook', 'default_posting_frequency': 2}]
    })
    p2 = make_package('P2', {
        'T2': [
            {'type': 'social_site', 'name': 'Facebook', 'default_posting_frequency': 2},
            {'type': 'web2_site', 'name': 'Medium', 'default_posting_frequency': 3},
        ]
    })
    customer = make_client('C', package_id=p1.id)
    old_assignment = assign(customer, p1.templates[0])

    done = DBTask.query.filter_by(assignment_id=old_assignment.id).one()
    done.status = TaskStatus.COMPLETED
    db.session.commit()

    return {'client': customer, 'p1': p1, 'p2': p2, 'old_assignment': old_assignment}


def _new_assignment(client_id, package):
    return DBAssignment.query.filter_by(client_id=client_id, template_id=package.templates[0].id).one()


def _posting_asset_names(assignment_id):
    return sorted({
        t.template_site_asset.name
        for t in DBTask.query.filter_by(assignment_id=assignment_id).all()
        if t.category_name == POSTING_CATEGORY
    })


class TestUpgradeService:

    def test_example_scenario(self, app, admin, scenario):
        customer, p2 = scenario['client'], scenario['p2']

        result = upgrade_service.upgrade(customer.id, {'newPackageId': p2.id}, actor=admin)

        assert result['createdAssignments'] == 1
        assert result['migratedTasks'] == 1
        assert result['skippedCommonAssets'] == 1
        assert result['createdPostingNewOnly'] == 3
        assert result['createdPosting'] == 3
        assert result['warnings'] == []
        assert result['client']['package_id'] == p2.id

        target = _new_assignment(customer.id, p2)
        assert _posting_asset_names(target.id) == ['Medium']

    def test_base_tasks_seeded_only_for_new_work(self, app, scenario):
        customer, p2 = scenario['client'], scenario['p2']

        result = upgrade_service.upgrade(customer.id, {'newPackageId': p2.id})

        assert result['seededTasks'] == 1
        target = _new_assignment(customer.id, p2)
        names = sorted(t.name for t in DBTask.query.filter_by(assignment_id=target.id).all()
                       if t.category_name != POSTING_CATEGORY)
        assert names == ['Facebook Task', 'Medium Task']

    def test_migrated_task_keeps_status(self, app, scenario):
        customer, p2 = scenario['client'], scenario['p2']
        upgrade_service.upgrade(customer.id, {'newPackageId': p2.id, 'createPostingTasks': False})

        target = _new_assignment(customer.id, p2)
        migrated = DBTask.query.filter_by(assignment_id=target.id, name='Facebook Task').one()
        assert migrated.status == TaskStatus.COMPLETED
        assert migrated.client_id == customer.id

    def test_repeat_upgrade_is_idempotent(self, app, scenario):
        customer, p2 = scenario['client'], scenario['p2']

        upgrade_service.upgrade(customer.id, {'newPackageId': p2.id})
        second = upgrade_service.upgrade(customer.id, {'newPackageId': p2.id})

        assert second['createdAssignments'] == 0
        assert second['seededTasks'] == 0
        assert second['createdPostingNewOnly'] == 0
        assert DBAssignment.query.filter_by(client_id=customer.id).count() == 2

        target = _new_assignment(customer.id, p2)
        names = [t.name for t in DBTask.query.filter_by(assignment_id=target.id).all()]
        assert len(names) == len(set(names))

    def test_migration_skips_names_already_present(self, app, scenario):
        customer, p2 = scenario['client'], scenario['p2']
        old = scenario['old_assignment']
        for name in ['Blog Post', 'Blog Post']:
            db.session.add(DBTask(name=name, assignment_id=old.id, client_id=customer.id,
                                  status=TaskStatus.QC_APPROVED))
        db.session.add(DBTask(name='Draft', assignment_id=old.id, client_id=customer.id,
                              status=TaskStatus.IN_PROGRESS))
        db.session.commit()

        result = upgrade_service.upgrade(customer.id, {'newPackageId': p2.id, 'createPostingTasks': False})

        assert result['migratedTasks'] == 2
        target = _new_assignment(customer.id, p2)
        names = sorted(t.name for t in DBTask.query.filter_by(assignment_id=target.id).all())
        assert names == ['Blog Post', 'Facebook Task']

    def test_flags_disable_steps(self, app, scenario):
        customer, p2 = scenario['client'], scenario['p2']

        result = upgrade_service.upgrade(customer.id, {
            'newPackageId': p2.id,
            'createAssignments': 'false',
            'migrateCompleted': False,
            'createPostingTasks': False,
        })

        assert result['createdAssignments'] == 0
        assert result['migratedTasks'] == 0
        assert result['createdPostingNewOnly'] == 0
        assert result['client']['package_id'] == p2.id

    def test_selected_template_gets_assignment(self, app, scenario):
        customer, p2 = scenario['client'], scenario['p2']
        template_id = p2.templates[0].id

        result = upgrade_service.upgrade(customer.id, {
            'newPackageId': p2.id, 'templateId': template_id, 'createAssignments': False
        })

        assert result['migratedTasks'] == 1
        assert DBAssignment.query.filter_by(client_id=customer.id, template_id=template_id).count() == 1

    def test_no_target_assignment_is_a_warning(self, app, scenario):
        customer, p2 = scenario['client'], scenario['p2']

        result = upgrade_service.upgrade(customer.id, {'newPackageId': p2.id, 'createAssignments': False})

        assert result['createdPostingNewOnly'] == 0
        assert len(result['warnings']) == 1
        assert customer.package_id == p2.id

    def test_posting_failure_keeps_package_swap(self, app, scenario, monkeypatch):
        customer, p2 = scenario['client'], scenario['p2']

        def boom(*args, **kwargs):
            raise RuntimeError('seed failed')
        monkeypatch.setattr(task_generation_service, 'seed_base_tasks', boom)

        result = upgrade_service.upgrade(customer.id, {'newPackageId': p2.id})

        assert result['createdAssignments'] == 1
        assert result['migratedTasks'] == 1
        assert any('seed failed' in w for w in result['warnings'])
        assert result['client']['package_id'] == p2.id

    def test_logs_upgrade_activity(self, app, admin, scenario):
        customer, p2 = scenario['client'], scenario['p2']
        upgrade_service.upgrade(customer.id, {'newPackageId': p2.id}, actor=admin)

        entry = DBActivityLog.query.filter_by(action='upgrade_package', entity_id=customer.id).one()
        assert entry.user_id == admin.id
        assert entry.get_details()['assignmentsCreated'] == 1

    def test_validation(self, app, scenario):
        customer = scenario['client']

        with pytest.raises(ValidationError):
            upgrade_service.upgrade(customer.id, {})
        with pytest.raises(NotFoundError):
            upgrade_service.upgrade('client_missing', {'newPackageId': scenario['p2'].id})
        with pytest.raises(NotFoundError):
            upgrade_service.upgrade(customer.id, {'newPackageId': 'pkg_missing'})
        with pytest.raises(NotFoundError):
            upgrade_service.upgrade(customer.id, {'newPackageId': scenario['p2'].id, 'templateId': 'tpl_missing'})


class TestUpgradeRoute:

    def test_upgrade_via_api(self, client, admin, auth_headers, scenario):
        customer, p2 = scenario['client'], scenario['p2']

        response = client.post(
            f'/api/clients/{customer.id}',
            json={'action': 'upgrade', 'newPackageId': p2.id},
            headers=auth_headers(admin)
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data['createdPostingNewOnly'] == 3
        assert data['client']['task_counts']['total'] >= 1
        assert 'progress' in data['client']

    def test_unsupported_action(self, client, admin, auth_headers, scenario):
        response = client.post(f"/api/clients/{scenario['client'].id}", json={'action': 'archive'},
                               headers=auth_headers(admin))
        assert response.status_code == 400

    def test_missing_package_id(self, client, admin, auth_headers, scenario):
        response = client.post(f"/api/clients/{scenario['client'].id}", json={'action': 'upgrade'},
                               headers=auth_headers(admin))
        assert response.status_code == 400

    def test_unknown_client(self, client, admin, auth_headers, scenario):
        response = client.post('/api/clients/client_missing',
                               json={'action': 'upgrade', 'newPackageId': scenario['p2'].id},
                               headers=auth_headers(admin))
        assert response.status_code == 404

    def test_unexpected_error_is_500(self, client, admin, auth_headers, scenario, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError('database unavailable')
        monkeypatch.setattr(upgrade_service, 'upgrade', boom)

        response = client.post(f"/api/clients/{scenario['client'].id}",
                               json={'action': 'upgrade', 'newPackageId': scenario['p2'].id},
                               headers=auth_headers(admin))

        assert response.status_code == 500
        assert response.get_json()['error'] == 'Failed to upgrade client'

    def test_am_limited_to_own_clients(self, client, make_user, auth_headers, scenario):
        am = make_user(UserRole.AM)
        response = client.post(f"/api/clients/{scenario['client'].id}",
                               json={'action': 'upgrade', 'newPackageId': scenario['p2'].id},
                               headers=auth_headers(am))
        assert response.status_code == 403

        scenario['client'].am_id = am.id
        db.session.commit()
        response = client.post(f"/api/clients/{scenario['client'].id}",
                               json={'action': 'upgrade', 'newPackageId': scenario['p2'].id},
                               headers=auth_headers(am))
        assert response.status_code == 200

    def test_agent_forbidden(self, client, make_user, auth_headers, scenario):
        response = client.post(f"/api/clients/{scenario['client'].id}",
                               json={'action': 'upgrade', 'newPackageId': scenario['p2'].id},
                               headers=auth_headers(make_user(UserRole.AGENT)))
        assert response.status_code == 403
