"""
Domain exceptions raised by the service layer.

Lookups filtered by owner raise NotFoundError for both "missing" and
"belongs to someone else" so that existence is never leaked.
"""


class StudyPlannerException(Exception):
    """Base exception for all study planner exceptions."""
    pass


class ValidationError(StudyPlannerException):
    """Raised when input passes schema validation but breaks a domain rule."""
    pass


class NotFoundError(StudyPlannerException):
    """Raised when an entity does not exist or is not owned by the caller."""

    def __init__(self, entity: str):
        super().__init__(f"{entity} not found or access denied")
        self.entity = entity


class ConflictError(StudyPlannerException):
    """Raised when an entity is not in the state an operation requires."""
    pass


class AuthenticationError(StudyPlannerException):
    """Raised when the request carries no user identity."""
    pass
