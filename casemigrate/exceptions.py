"""Exceptions raised by the migration pipeline."""


class MigrationError(Exception):
    """Base class for all pipeline errors."""


class UserInputError(MigrationError):
    """A rejected request. Reported synchronously and never retried."""


class InvalidFileError(UserInputError):
    """Uploaded file is missing, too large, of the wrong type or unreadable."""


class MappingValidationError(UserInputError):
    """A submitted mapping set is structurally invalid."""

    def __init__(self, problems):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class InvalidTransitionError(UserInputError):
    """The requested operation is not allowed in the job's current status."""


class RollbackError(UserInputError):
    """Rollback was refused (bad confirmation, window expired, nothing to undo)."""


class JobNotFoundError(MigrationError):
    """No job with this id exists for the tenant."""
