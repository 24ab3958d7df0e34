"""Service-layer errors. Routers turn them into HTTPException(status_code, message)."""

from typing import Optional

from fastapi import status


class ServiceError(Exception):
    """A request the service refuses, with the HTTP status the router should answer with."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class LockConflictError(ServiceError):
    """A fee or payment write could not get its row lock. Nothing was written; the client may retry."""

    status_code = status.HTTP_409_CONFLICT
