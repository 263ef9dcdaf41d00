"""
OpsDesk - API Tests
Auth, permission guards and the CRUD surface
"""
from sqlalchemy import text

from opsdesk.database import db
from opsdesk.models.db_models import (
    DBActivityLog, DBAssignment, DBAssignmentSiteAssetSetting, DBNotification, DBTask, DBTemplate,
    PermissionName, TaskStatus, UserRole
)
from opsdesk.services.activity_service import activity_service


class TestAppShell:

    def test_health(self, client):
        data = client.get('/health').get_json()
        assert data['status'] == 'healthy'
        assert data['database'] == 'connected'

    def test_api_responses_are_not_cached(self, client):
        response = client.get('/api')
        assert response.headers['Cache-Control'].startswith('no-store')

    def test_unknown_route_is_json_404(self, client):
        response = client.get('/api/nothing-here')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Not found'


class TestAuth:

    def test_login(self, client, make_user):
        user = make_user(UserRole.AGENT)
        response = client.post('/api/auth/login', json={'email': user.email, 'password': 'Password123'})

        assert response.status_code == 200
        assert response.get_json()['user']['role'] == 'agent'
        assert response.get_json()['token']

    def test_login_wrong_password(self, client, make_user):
        user = make_user(UserRole.AGENT)
        response = client.post('/api/auth/login', json={'email': user.email, 'password': 'nope'})
        assert response.status_code == 401

    def test_missing_token(self, client):
        assert client.get('/api/auth/me').status_code == 401

    def test_invalid_token(self, client):
        response = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-jwt'})
        assert response.status_code == 401

    def test_me_lists_permissions(self, client, make_user, auth_headers):
        data = client.get('/api/auth/me', headers=auth_headers(make_user(UserRole.QC))).get_json()

        assert PermissionName.VIEW_QC_REVIEW in data['permissions']
        assert PermissionName.TASK_MANAGE not in data['permissions']

    def test_forbidden_lists_required_permissions(self, client, make_user, auth_headers):
        response = client.get('/api/activity/', headers=auth_headers(make_user(UserRole.AGENT)))

        assert response.status_code == 403
        assert response.get_json()['required'] == [PermissionName.VIEW_ACTIVITY_LOGS]

    def test_register(self, client, admin, auth_headers):
        response = client.post('/api/auth/register', json={
            'email': 'New.Agent@test.com', 'name': 'New Agent', 'password': 'Password123', 'role': 'agent'
        }, headers=auth_headers(admin))

        assert response.status_code == 201
        assert response.get_json()['user']['email'] == 'new.agent@test.com'

    def test_register_rejects_weak_password(self, client, admin, auth_headers):
        response = client.post('/api/auth/register', json={
            'email': 'x@test.com', 'name': 'X', 'password': 'password'
        }, headers=auth_headers(admin))
        assert response.status_code == 400

    def test_register_client_user_needs_client(self, client, admin, auth_headers):
        response = client.post('/api/auth/register', json={
            'email': 'c@test.com', 'name': 'C', 'password': 'Password123', 'role': 'client'
        }, headers=auth_headers(admin))
        assert response.status_code == 400

    def test_manager_cannot_create_admin(self, client, make_user, auth_headers):
        response = client.post('/api/auth/register', json={
            'email': 'boss@test.com', 'name': 'Boss', 'password': 'Password123', 'role': 'admin'
        }, headers=auth_headers(make_user(UserRole.MANAGER)))
        assert response.status_code == 403


class TestClients:

    def test_create_and_get(self, client, admin, auth_headers, make_package):
        package = make_package('Starter', {})
        response = client.post('/api/clients/', json={
            'name': '  Jane Roe ',
            'company': 'Roe Roofing',
            'packageId': package.id,
            'socialMedia': 'not-a-list',
            'otherField': {'tier': 'gold'},
        }, headers=auth_headers(admin))

        assert response.status_code == 201
        created = response.get_json()['client']
        assert created['name'] == 'Jane Roe'
        assert created['social_media'] == []
        assert created['other_field'] == {'tier': 'gold'}

        detail = client.get(f"/api/clients/{created['id']}", headers=auth_headers(admin)).get_json()
        assert detail['progress'] == 0
        assert detail['task_counts']['total'] == 0
        assert detail['package']['name'] == 'Starter'

    def test_create_requires_name(self, client, admin, auth_headers):
        response = client.post('/api/clients/', json={'company': 'Nameless'}, headers=auth_headers(admin))
        assert response.status_code == 400

    def test_am_id_must_be_account_manager(self, client, admin, make_user, auth_headers):
        agent = make_user(UserRole.AGENT)
        response = client.post('/api/clients/', json={'name': 'Acme', 'amId': agent.id},
                               headers=auth_headers(admin))
        assert response.status_code == 400

    def test_am_becomes_default_manager(self, client, make_user, auth_headers):
        am = make_user(UserRole.AM)
        response = client.post('/api/clients/', json={'name': 'Acme'}, headers=auth_headers(am))

        assert response.status_code == 201
        assert response.get_json()['client']['am_id'] == am.id

    def test_list_is_scoped(self, client, admin, make_user, make_client, auth_headers):
        am = make_user(UserRole.AM)
        make_client('Managed', am_id=am.id)
        make_client('Someone Else')

        everything = client.get('/api/clients/', headers=auth_headers(admin)).get_json()
        managed = client.get('/api/clients/', headers=auth_headers(am)).get_json()

        assert everything['total'] == 2
        assert [c['name'] for c in managed['clients']] == ['Managed']

    def test_list_search(self, client, admin, make_client, auth_headers):
        make_client('Acme Roofing')
        make_client('Bolt Plumbing')

        data = client.get('/api/clients/?q=roof', headers=auth_headers(admin)).get_json()
        assert [c['name'] for c in data['clients']] == ['Acme Roofing']

    def test_client_user_sees_only_own(self, client, make_user, make_client, auth_headers):
        own = make_client('Own')
        other = make_client('Other')
        client_user = make_user(UserRole.CLIENT, client_id=own.id)

        assert client.get(f'/api/clients/{own.id}', headers=auth_headers(client_user)).status_code == 200
        assert client.get(f'/api/clients/{other.id}', headers=auth_headers(client_user)).status_code == 403

    def test_update_and_soft_delete(self, client, admin, make_client, auth_headers):
        customer = make_client()

        response = client.put(f'/api/clients/{customer.id}', json={'phone': '555-0100'},
                              headers=auth_headers(admin))
        assert response.get_json()['client']['phone'] == '555-0100'

        assert client.delete(f'/api/clients/{customer.id}', headers=auth_headers(admin)).status_code == 200
        assert client.get('/api/clients/', headers=auth_headers(admin)).get_json()['total'] == 0

    def test_get_unknown_client(self, client, admin, auth_headers):
        assert client.get('/api/clients/client_missing', headers=auth_headers(admin)).status_code == 404


class TestPackages:

    def test_package_and_template(self, client, admin, auth_headers):
        headers = auth_headers(admin)
        package = client.post('/api/packages/', json={'name': 'Growth', 'totalMonths': 6},
                              headers=headers).get_json()['package']

        response = client.post(f"/api/packages/{package['id']}/templates", json={
            'name': 'Growth Template',
            'sitesAssets': [
                {'type': 'social_site', 'name': 'Facebook', 'defaultPostingFrequency': 4},
                {'type': 'web2_site', 'name': 'Medium'},
            ]
        }, headers=headers)

        assert response.status_code == 201
        template = response.get_json()['template']
        assert [a['name'] for a in template['site_assets']] == ['Facebook', 'Medium']
        assert template['site_assets'][0]['default_posting_frequency'] == 4

        detail = client.get(f"/api/packages/{package['id']}", headers=headers).get_json()
        assert detail['template_count'] == 1

    def test_duplicate_package_name(self, client, admin, auth_headers):
        client.post('/api/packages/', json={'name': 'Growth'}, headers=auth_headers(admin))
        response = client.post('/api/packages/', json={'name': 'growth'}, headers=auth_headers(admin))
        assert response.status_code == 409

    def test_invalid_asset_type(self, client, admin, auth_headers, make_package):
        package = make_package('Starter', {})
        response = client.post(f'/api/packages/{package.id}/templates', json={
            'name': 'Bad', 'sitesAssets': [{'type': 'billboard', 'name': 'Highway'}]
        }, headers=auth_headers(admin))

        assert response.status_code == 400
        assert 'social_site' in response.get_json()['allowed']

    def test_package_in_use_cannot_be_deleted(self, client, admin, auth_headers, make_package, make_client):
        package = make_package('Starter', {})
        make_client(package_id=package.id)

        response = client.delete(f'/api/packages/{package.id}', headers=auth_headers(admin))
        assert response.status_code == 409

    def test_package_of_soft_deleted_client_cannot_be_deleted(self, client, admin, auth_headers,
                                                              make_package, make_client):
        package = make_package('Starter', {})
        customer = make_client(package_id=package.id)
        client.delete(f'/api/clients/{customer.id}', headers=auth_headers(admin))

        response = client.delete(f'/api/packages/{package.id}', headers=auth_headers(admin))
        assert response.status_code == 409

    def test_template_delete_removes_generated_work(self, client, admin, auth_headers,
                                                    make_package, make_client, assign):
        package = make_package('Starter', {'T1': [{'type': 'social_site', 'name': 'Facebook'}]})
        template_id = package.templates[0].id
        assignment = assign(make_client(package_id=package.id), package.templates[0])
        assignment_id = assignment.id
        task = DBTask.query.filter_by(assignment_id=assignment_id).one()
        db.session.add(DBNotification(user_id=admin.id, message='Task updated', task_id=task.id))
        db.session.commit()

        response = client.delete(f'/api/packages/templates/{template_id}', headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.get_json()['deletedCounts'] == {
            'notifications': 1,
            'tasks': 1,
            'assignmentSiteAssetSettings': 1,
            'assignments': 1,
            'siteAssets': 1
        }
        assert DBTemplate.query.filter_by(id=template_id).count() == 0
        assert DBAssignment.query.filter_by(id=assignment_id).count() == 0
        assert DBAssignmentSiteAssetSetting.query.filter_by(assignment_id=assignment_id).count() == 0
        assert db.session.execute(text('PRAGMA foreign_key_check')).fetchall() == []

        entry = DBActivityLog.query.filter_by(
            entity_type=activity_service.ENTITY_TEMPLATE, action=activity_service.ACTION_DELETE
        ).one()
        assert entry.entity_id == template_id
        assert entry.get_details()['deletedCounts']['tasks'] == 1

    def test_delete_unknown_template(self, client, admin, auth_headers):
        response = client.delete('/api/packages/templates/tpl_missing', headers=auth_headers(admin))
        assert response.status_code == 404


class TestRequestBodies:

    def test_array_body_is_rejected(self, client, admin, auth_headers):
        for path in ['/api/clients/', '/api/tasks/', '/api/packages/']:
            response = client.post(path, json=['not', 'an', 'object'], headers=auth_headers(admin))
            assert response.status_code == 400
            assert response.get_json()['error'] == 'Request body must be a JSON object'

    def test_numeric_names_are_stored_as_text(self, client, admin, make_client, auth_headers):
        headers = auth_headers(admin)

        created = client.post('/api/clients/', json={'name': 123}, headers=headers)
        assert created.status_code == 201
        assert created.get_json()['client']['name'] == '123'

        task = client.post('/api/tasks/', json={'name': 42, 'clientId': make_client().id}, headers=headers)
        assert task.status_code == 201
        assert task.get_json()['task']['name'] == '42'

        updated = client.put(f"/api/tasks/{task.get_json()['task']['id']}", json={'name': 7}, headers=headers)
        assert updated.get_json()['task']['name'] == '7'

    def test_non_string_asset_name(self, client, admin, auth_headers, make_package):
        package = make_package('Starter', {})
        response = client.post(f'/api/packages/{package.id}/templates', json={
            'name': 'Numbers', 'sitesAssets': [{'type': 'social_site', 'name': 2024}]
        }, headers=auth_headers(admin))

        assert response.status_code == 201
        assert response.get_json()['template']['site_assets'][0]['name'] == '2024'


class TestTasks:

    def test_agent_sees_only_own_tasks(self, client, make_user, make_client, auth_headers):
        agent = make_user(UserRole.AGENT)
        customer = make_client()
        db.session.add(DBTask(name='Mine', client_id=customer.id, assigned_to_id=agent.id))
        db.session.add(DBTask(name='Not mine', client_id=customer.id))
        db.session.commit()

        data = client.get('/api/tasks/', headers=auth_headers(agent)).get_json()
        assert [t['name'] for t in data['tasks']] == ['Mine']

    def test_create_and_filter(self, client, admin, make_client, auth_headers):
        customer = make_client()
        headers = auth_headers(admin)

        response = client.post('/api/tasks/', json={'name': 'Write bio', 'clientId': customer.id,
                                                    'priority': 'high'}, headers=headers)
        assert response.status_code == 201
        assert response.get_json()['task']['priority'] == 'high'

        data = client.get(f'/api/tasks/?clientId={customer.id}&status=pending', headers=headers).get_json()
        assert data['total'] == 1

    def test_invalid_status_filter(self, client, admin, auth_headers):
        response = client.get('/api/tasks/?status=finished', headers=auth_headers(admin))
        assert response.status_code == 400

    def test_update_notifies_admins_and_qc(self, client, admin, make_user, make_client, auth_headers):
        qc = make_user(UserRole.QC)
        agent = make_user(UserRole.AGENT)
        task = DBTask(name='Write bio', client_id=make_client().id, assigned_to_id=agent.id)
        db.session.add(task)
        db.session.commit()

        response = client.put(f'/api/tasks/{task.id}', json={'completionLink': 'https://example.com/bio'},
                              headers=auth_headers(agent))

        assert response.status_code == 200
        recipients = {n.user_id for n in DBNotification.query.all()}
        assert recipients == {admin.id, qc.id}

    def test_agent_cannot_edit_others_task(self, client, make_user, make_client, auth_headers):
        agent = make_user(UserRole.AGENT)
        task = DBTask(name='Write bio', client_id=make_client().id)
        db.session.add(task)
        db.session.commit()

        response = client.put(f'/api/tasks/{task.id}', json={'notes': 'x'}, headers=auth_headers(agent))
        assert response.status_code == 403

    def test_status_change_via_api(self, client, admin, make_client, auth_headers):
        task = DBTask(name='Write bio', client_id=make_client().id)
        db.session.add(task)
        db.session.commit()

        response = client.patch(f'/api/tasks/{task.id}/update-status', json={'status': 'completed'},
                                headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.get_json()['statusChange'] == {'from': 'pending', 'to': 'completed'}

    def test_delete_task(self, client, admin, make_client, auth_headers):
        task = DBTask(name='Write bio', client_id=make_client().id, status=TaskStatus.PENDING)
        db.session.add(task)
        db.session.commit()
        task_id = task.id

        assert client.delete(f'/api/tasks/{task_id}', headers=auth_headers(admin)).status_code == 200
        assert DBTask.query.get(task_id) is None


class TestActivityAndDashboard:

    def test_activity_pagination_and_filters(self, client, admin, auth_headers):
        for i in range(3):
            activity_service.log(activity_service.ENTITY_CLIENT, f'client_{i}', activity_service.ACTION_CREATE)
        activity_service.log(activity_service.ENTITY_TASK, 'task_1', activity_service.ACTION_PAUSE)

        data = client.get('/api/activity/?limit=2&page=1', headers=auth_headers(admin)).get_json()
        assert data['success'] is True
        assert len(data['logs']) == 2
        assert data['pagination']['totalCount'] == 4
        assert data['pagination']['totalPages'] == 2
        assert data['pagination']['hasNextPage'] is True
        assert data['pagination']['hasPrevPage'] is False

        paused = client.get('/api/activity/?action=pause', headers=auth_headers(admin)).get_json()
        assert [log['entity_id'] for log in paused['logs']] == ['task_1']

        everything = client.get('/api/activity/?action=all', headers=auth_headers(admin)).get_json()
        assert everything['pagination']['totalCount'] == 4

    def test_dashboard_stats(self, client, admin, make_client, auth_headers):
        customer = make_client()
        db.session.add(DBTask(name='A', client_id=customer.id, status=TaskStatus.COMPLETED))
        db.session.add(DBTask(name='B', client_id=customer.id, status=TaskStatus.PENDING))
        db.session.commit()

        data = client.get('/api/dashboard/stats', headers=auth_headers(admin)).get_json()

        assert data['overview']['totalClients'] == 1
        assert data['tasks']['byStatus']['completed'] == 1
        assert data['tasks']['completionRate'] == 50

    def test_notifications(self, client, make_user, auth_headers):
        agent = make_user(UserRole.AGENT)
        notification = DBNotification(user_id=agent.id, message='Hello')
        db.session.add(notification)
        db.session.commit()

        data = client.get('/api/notifications/?unread=true', headers=auth_headers(agent)).get_json()
        assert data['total'] == 1

        response = client.post(f'/api/notifications/{notification.id}/read', headers=auth_headers(agent))
        assert response.status_code == 200
        data = client.get('/api/notifications/?unread=true', headers=auth_headers(agent)).get_json()
        assert data['total'] == 0
