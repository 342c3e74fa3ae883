"""
Domain error taxonomy and the persistence-to-domain translation used by
every service entry point.

The HTTP layer maps each class to a status code (see ``app.main``); the
services themselves never deal in status codes.
"""
import functools
import logging

from sqlalchemy.exc import SQLAlchemyError

from app.store import DuplicateKeyError

logger = logging.getLogger(__name__)


class BlogError(Exception):
    """Base class for every error a service operation may raise."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BlogError):
    """A required field is missing or malformed."""


class NotFoundError(BlogError):
    """A referenced entity id does not resolve to a document."""


class ConflictError(BlogError):
    """A unique constraint (username, email, category/tag name) was violated."""


class InternalError(BlogError):
    """The persistence layer failed unexpectedly."""


def translate_errors(conflict_message: str = "Resource already exists"):
    """
    Decorate an async service function so that persistence-layer signals
    surface as domain errors.

    - ``BlogError`` subclasses pass through untouched.
    - ``DuplicateKeyError`` becomes ``ConflictError(conflict_message)``.
    - Any other ``SQLAlchemyError`` becomes ``InternalError``; it is not
      retried and the original exception stays chained for debugging.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except BlogError:
                raise
            except DuplicateKeyError as exc:
                raise ConflictError(conflict_message) from exc
            except SQLAlchemyError as exc:
                logger.exception("Persistence failure in %s", func.__qualname__)
                raise InternalError("An unexpected storage error occurred") from exc

        return wrapper

    return decorator
