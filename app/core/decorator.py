from functools import wraps

from sqlalchemy.exc import IntegrityError, SQLAlchemyError


class DBException(Exception):
    error_type = "database_error"

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class FinalizationError(DBException):
    """A test attempt could not be graded or its Result could not be saved."""

    error_type = "finalization_error"

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message, status_code)


def db_exception(func):
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except IntegrityError:
            self.db.rollback()
            # Usually a duplicate title / email
            raise DBException("Duplicate entry: already exists", 409)
        except SQLAlchemyError:
            self.db.rollback()
            raise DBException("Database error occurred", 500)

    return wrapper
