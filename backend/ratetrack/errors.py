from __future__ import annotations

from typing import Optional


class RateTrackError(Exception):
    """Base class for recoverable, user-facing failures.

    Every subclass carries a stable ``code`` so callers can tell outcomes apart
    without inspecting messages.
    """

    code = "error"
    status_code = 400

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "code": self.code}


class ValidationError(RateTrackError):
    code = "validation_error"
    status_code = 400


class DuplicateProjectNameError(ValidationError):
    code = "duplicate_name"
    status_code = 409

    def __init__(self, name: str):
        super().__init__("A project with this name already exists")
        self.name = name


class NoProjectSelectedError(RateTrackError):
    code = "no_project_selected"
    status_code = 409

    def __init__(self, message: str = "Select a project before starting the timer"):
        super().__init__(message)


class TimerRunningError(RateTrackError):
    code = "timer_running"
    status_code = 409

    def __init__(self, message: str = "Stop the running timer first"):
        super().__init__(message)


class TimerAlreadyRunningError(RateTrackError):
    code = "timer_already_running"
    status_code = 409

    def __init__(self, message: str = "Timer is already running"):
        super().__init__(message)


class ConfirmationRequiredError(RateTrackError):
    code = "confirmation_required"
    status_code = 409


class ProjectNotFoundError(RateTrackError):
    code = "project_not_found"
    status_code = 404

    def __init__(self, project_id: str):
        super().__init__("Project not found")
        self.project_id = project_id


class NothingToExportError(RateTrackError):
    code = "nothing_to_export"
    status_code = 409

    def __init__(self, message: str = "No projects to export"):
        super().__init__(message)


class PersistenceError(RateTrackError):
    code = "persistence_error"
    status_code = 503


class InvalidIntervalError(ValueError):
    """Raised by the time arithmetic for empty or inverted intervals."""
