#!/usr/bin/env python3
"""
OpsDesk - Seed Database
Creates tables, roles, permissions and task categories.

Usage:
    python scripts/seed.py            # roles, permissions, categories
    python scripts/seed.py --demo     # plus one demo user per role
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from opsdesk import create_app
from opsdesk.models.db_models import DBUser
from opsdesk.services.seed_service import (
    ROLES, create_user, seed_roles_and_permissions, seed_task_categories
)

DEMO_PASSWORD = os.environ.get('DEMO_PASSWORD', 'Demo#pass123')


def seed(demo=False):
    app = create_app()

    with app.app_context():
        created = seed_roles_and_permissions()
        print(f"Roles: +{created['roles']}  Permissions: +{created['permissions']}  Grants: +{created['grants']}")

        categories = seed_task_categories()
        print(f"Task categories ensured: {categories}")

        if not demo:
            return

        for role_name, label in ROLES:
            email = f"{role_name}@opsdesk.local"
            if DBUser.query.filter_by(email=email).first():
                continue
            create_user(email, f"Demo {label}", DEMO_PASSWORD, role_name)
            print(f"  created {email}")


if __name__ == '__main__':
    seed(demo='--demo' in sys.argv[1:])
