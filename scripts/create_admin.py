#!/usr/bin/env python3
"""
OpsDesk - Create Admin User
Run this script to create the first admin user for production.

Usage:
    python scripts/create_admin.py

Or with environment variables:
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD='Secure#pass123' python scripts/create_admin.py
"""
import os
import sys
import secrets
import string
import getpass

# Add parent directory to path so we can import the app
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from opsdesk import create_app
from opsdesk.models.db_models import DBUser, UserRole
from opsdesk.routes.auth import validate_password
from opsdesk.services.seed_service import create_user, seed_roles_and_permissions


def generate_password(length=16):
    """Generate a password that satisfies the login policy"""
    alphabet = string.ascii_letters + string.digits + "!@#$%^&*"
    while True:
        password = ''.join(secrets.choice(alphabet) for _ in range(length))
        if validate_password(password)[0]:
            return password


def create_admin_user():
    app = create_app()

    with app.app_context():
        seed_roles_and_permissions()

        existing = DBUser.query.filter_by(role_id=UserRole.ADMIN).first()
        if existing:
            print(f"\nAdmin user already exists: {existing.email}")
            response = input("Create another admin? (y/N): ")
            if response.lower() != 'y':
                print("Aborted.")
                return

        email = os.environ.get('ADMIN_EMAIL')
        password = os.environ.get('ADMIN_PASSWORD')

        if not email:
            print("\n" + "=" * 50)
            print("  OPSDESK")
            print("  Admin User Setup")
            print("=" * 50 + "\n")
            email = input("Admin email: ").strip()

        if not email or '@' not in email:
            print("Error: Valid email required")
            return

        if DBUser.query.filter_by(email=email.lower()).first():
            print(f"Error: User with email {email} already exists")
            return

        if not password:
            use_generated = input("Generate password? (Y/n): ").strip().lower()
            if use_generated != 'n':
                password = generate_password()
                print(f"\nGenerated password: {password}")
                print("   (Save this somewhere safe!)\n")
            else:
                password = getpass.getpass("Enter password: ")
                password2 = getpass.getpass("Confirm password: ")
                if password != password2:
                    print("Error: Passwords don't match")
                    return

        valid, message = validate_password(password)
        if not valid:
            print(f"Error: {message}")
            return

        create_user(email.lower(), 'Admin', password, UserRole.ADMIN)

        print("\n" + "=" * 50)
        print("  ADMIN USER CREATED")
        print("=" * 50)
        print(f"\n  Email:    {email}")
        print(f"  Role:     {UserRole.ADMIN}")
        print(f"  Password: {'*' * len(password)}")
        print("=" * 50 + "\n")


if __name__ == '__main__':
    create_admin_user()
