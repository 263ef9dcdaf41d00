"""
OpsDesk - Test Fixtures
"""
import pytest

from opsdesk import create_app
from opsdesk.database import db
from opsdesk.models.db_models import (
    DBAssignment, DBClient, DBPackage, DBTask, DBTemplate, DBTemplateSiteAsset, TaskStatus, UserRole
)
from opsdesk.routes.auth import generate_token
from opsdesk.services.seed_service import create_user, seed_roles_and_permissions
from opsdesk.services.task_generation_service import task_generation_service

PASSWORD = 'Password123'


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        seed_roles_and_permissions()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(role=UserRole.ADMIN, email=None, client_id=None):
        return create_user(email or f"{role}@test.com", f"Test {role}", PASSWORD, role, client_id=client_id)
    return _make


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN)


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {'Authorization': f'Bearer {generate_token(user)}'}
    return _headers


@pytest.fixture
def make_package(app):
    """
    make_package('Growth', {'T1': [{'type': 'social_site', 'name': 'Facebook'}]})
    """
    def _make(name, templates):
        package = DBPackage(name=name)
        db.session.add(package)
        for template_name, assets in templates.items():
            template = DBTemplate(name=template_name, package_id=package.id)
            db.session.add(template)
            for asset in assets:
                db.session.add(DBTemplateSiteAsset(template_id=template.id, **asset))
        db.session.commit()
        return package
    return _make


@pytest.fixture
def make_client(app):
    def _make(name='Acme Roofing', **kwargs):
        client = DBClient(name=name, **kwargs)
        db.session.add(client)
        db.session.commit()
        return client
    return _make


@pytest.fixture
def assign(app):
    """Assign a template to a client and generate its base tasks"""
    def _assign(client, template):
        assignment = DBAssignment(client_id=client.id, template_id=template.id)
        db.session.add(assignment)
        db.session.commit()
        task_generation_service.regenerate_tasks(assignment.id)
        return assignment
    return _assign


@pytest.fixture
def qc_task(app):
    """A QC-category task for an assignment's asset"""
    def _make(assignment, asset, status=TaskStatus.COMPLETED, category='QC Review', **kwargs):
        category = task_generation_service.ensure_category(category)
        task = DBTask(
            name=f"{asset.name} QC",
            assignment_id=assignment.id,
            client_id=assignment.client_id,
            template_site_asset_id=asset.id,
            category_id=category.id,
            status=status,
            **kwargs
        )
        db.session.add(task)
        db.session.commit()
        return task
    return _make
