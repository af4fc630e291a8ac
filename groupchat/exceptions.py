"""
Custom exceptions for consistent error responses
"""
from fastapi import HTTPException, status


class PersistenceError(HTTPException):
    """Raised when the store rejects an operation (constraint violation, driver error)"""

    def __init__(self, exc: Exception, fallback: str = "persistence failure"):
        self.original = exc
        orig = getattr(exc, "orig", None)
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(orig or exc) or fallback,
        )


class MessageNotFoundError(HTTPException):
    def __init__(self):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND,
                         detail="Message not found")


class NotMessageAuthorError(HTTPException):
    """Raised when someone other than the author edits or deletes a message"""

    def __init__(self):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN,
                         detail="Only the author can modify this message")
