"""
OpsDesk - Database Configuration
SQLAlchemy ORM setup for PostgreSQL
"""
from flask_sqlalchemy import SQLAlchemy
import logging
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)


def init_db(app):
    """Initialize database with app"""
    db.init_app(app)

    with app.app_context():
        # Import models to register them
        from opsdesk.models import db_models  # noqa

        # Create all tables
        db.create_all()

        logger.info("Database tables created")
