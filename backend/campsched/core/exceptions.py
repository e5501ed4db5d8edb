class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class SchedulerError(AppError):
    """Raised when the scheduler encounters a logical error or invalid state."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ConfigurationError(AppError):
    """Raised when camp configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)

class NoPartitionAssignedError(AppError):
    """Raised when a caller has no divisions to generate; aborts before any state is touched."""
    def __init__(self, role: str):
        super().__init__(
            "You have no divisions assigned to schedule.",
            status_code=403,
            details={"role": role},
        )

class PermissionDeniedError(AppError):
    """Raised when a write targets a bunk outside the caller's partition without bypass."""
    def __init__(self, bunk: str, division: str | None = None):
        super().__init__(
            f"Bunk {bunk} is outside your divisions",
            status_code=403,
            details={"bunk": bunk, "division": division},
        )

class ForeignConflictError(AppError):
    """Raised when a placement collides with another scheduler's bunks and no resolution was chosen."""
    def __init__(self, report: dict):
        super().__init__(
            "Placement conflicts with bunks owned by another scheduler; choose notify or bypass",
            status_code=409,
            details={"report": report},
        )

class VersionConflictError(AppError):
    """Raised by the day store when a write carries a stale expected version."""
    def __init__(self, day: str, expected_version: int, actual_version: int | None):
        super().__init__(
            f"Schedule for {day} was modified by someone else",
            status_code=409,
            details={"day": day, "expected_version": expected_version, "actual_version": actual_version},
        )

class RetryBudgetExhaustedError(AppError):
    """Raised when optimistic-write retries run out; the caller must reload manually."""
    def __init__(self, day: str, attempts: int):
        super().__init__(
            f"Could not save schedule for {day} after {attempts} attempt(s); reload and try again",
            status_code=409,
            details={"day": day, "attempts": attempts},
        )
