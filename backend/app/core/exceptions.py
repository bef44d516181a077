class AppError(Exception):
    """Base class for all application exceptions."""

    code = "ERROR"

    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Raised for caller errors detected before any conflict check."""

    code = "VALIDATION"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)


class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""

    code = "NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class TimetableConflictError(AppError):
    """Raised when a placement overlaps existing lessons or forbidden windows.

    ``reasons`` is the list of :class:`ConflictReason` reported by the checker.
    """

    code = "CONFLICT"

    def __init__(self, reasons: list, message: str | None = None):
        self.reasons = list(reasons)
        codes = sorted({reason.code.value for reason in self.reasons})
        super().__init__(
            message or f"Timetable conflict detected: {', '.join(codes)}",
            status_code=409,
            details={"codes": codes, "reasons": [reason.as_dict() for reason in self.reasons]},
        )


class NoSlotAvailableError(AppError):
    """Raised when the suggester exhausts the grid."""

    code = "NO_SLOT_AVAILABLE"

    def __init__(self, details: dict = None):
        super().__init__(
            "No conflict-free slot found for the specified criteria",
            status_code=404,
            details=details,
        )


class GenerationBusyError(AppError):
    """Raised when another generation holds the lock for overlapping sections."""

    code = "BUSY"

    def __init__(self, section_ids: list[str]):
        super().__init__(
            "Another timetable generation is running for these sections; retry later",
            status_code=409,
            details={"section_ids": sorted(section_ids)},
        )


class DuplicateResourceError(AppError):
    """Raised when a record already exists for the same natural key."""

    code = "DUPLICATE"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)
