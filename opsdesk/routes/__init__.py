"""
OpsDesk - Routes
API endpoint registration
"""
from flask import Flask


def register_routes(app: Flask):
    """Register all API blueprints"""

    from opsdesk.routes.auth import auth_bp
    from opsdesk.routes.clients import clients_bp
    from opsdesk.routes.packages import packages_bp
    from opsdesk.routes.assignments import assignments_bp
    from opsdesk.routes.tasks import tasks_bp
    from opsdesk.routes.activity import activity_bp
    from opsdesk.routes.dashboard import dashboard_bp
    from opsdesk.routes.notifications import notifications_bp

    # Register with /api prefix
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(clients_bp, url_prefix='/api/clients')
    app.register_blueprint(packages_bp, url_prefix='/api/packages')
    app.register_blueprint(assignments_bp, url_prefix='/api/assignments')
    app.register_blueprint(tasks_bp, url_prefix='/api/tasks')
    app.register_blueprint(activity_bp, url_prefix='/api/activity')
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')
