class FinanceTrackerError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, dict[str, str]]:
        return {"error": {"code": self.code, "message": self.message}}


class NotFoundError(FinanceTrackerError):
    code = "NOT_FOUND"
    status_code = 404


class ValidationError(FinanceTrackerError):
    code = "VALIDATION_ERROR"
    status_code = 400


class ConflictError(FinanceTrackerError):
    code = "CONFLICT"
    status_code = 409
