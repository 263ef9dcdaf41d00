"""
OpsDesk - Domain Exceptions

Services raise these; the route layer and the app-level error handler turn
them into JSON error bodies with the matching HTTP status.

    OpsDeskError (base, 500)
    ├── ValidationError (400)
    └── NotFoundError (404)
"""
from typing import Optional, Dict, Any


class OpsDeskError(Exception):
    """
    Base exception for all domain errors.

    Attributes:
        message: Human-readable error message
        context: Extra fields merged into the JSON error body
    """
    status_code = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        body = {'error': self.message}
        body.update(self.context)
        return body


class ValidationError(OpsDeskError):
    status_code = 400


class NotFoundError(OpsDeskError):
    status_code = 404

