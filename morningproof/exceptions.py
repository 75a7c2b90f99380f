"""
Custom exceptions for the Morning Proof service.
Provides specific exception types for better error handling and recovery.
"""


class MorningProofException(Exception):
    """Base exception for Morning Proof"""
    pass


class HabitNotFoundException(MorningProofException):
    """Raised when a habit type is not in the catalog"""
    def __init__(self, habit_type: str):
        self.habit_type = habit_type
        super().__init__(f"Habit '{habit_type}' not found")


class HabitNotEnabledException(MorningProofException):
    """Raised when completing a habit that has no entry in the day's log"""
    def __init__(self, habit_type: str):
        self.habit_type = habit_type
        super().__init__(f"Habit '{habit_type}' is not enabled for this day")


class LogNotFoundException(MorningProofException):
    """Raised when no daily log exists for a date"""
    def __init__(self, log_date):
        self.log_date = log_date
        super().__init__(f"No daily log for {log_date}")


class VerificationFailedException(MorningProofException):
    """Raised when photo verification did not pass; the client should prompt a retake"""
    def __init__(self, habit_type: str, feedback: str = ""):
        self.habit_type = habit_type
        self.feedback = feedback
        message = f"Verification failed for '{habit_type}'"
        if feedback:
            message += f": {feedback}"
        super().__init__(message)


class StreakNotRecoverableException(MorningProofException):
    """Raised when a streak recovery is requested but not allowed"""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Streak cannot be recovered: {reason}")


class InvalidDeadlineException(MorningProofException):
    """Raised when deadline settings cannot be resolved"""
    def __init__(self, message: str):
        super().__init__(f"Invalid deadline configuration: {message}")


class InvalidTimeFormatException(MorningProofException):
    """Raised when time format is invalid"""
    def __init__(self, time_str: str):
        self.time_str = time_str
        super().__init__(f"Invalid time format: {time_str}. Expected HH:MM")


class DatabaseException(MorningProofException):
    """Raised when database operations fail"""
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"Database {operation} failed: {details}")


class ValidationException(MorningProofException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for {field}: {message}")
