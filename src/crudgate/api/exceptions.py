from fastapi import HTTPException, status
from typing import Any, Dict, Optional


class CrudgateException(HTTPException):
    """Base for all errors raised by the query and permission engine.

    ``code`` is a stable machine-readable identifier, ``detail`` is the
    caller-facing message.
    """
    code: str = "ERROR"
    default_detail: str = "Error"
    status_code_default: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: Any = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(
            status_code=self.status_code_default,
            detail=detail or self.default_detail,
            headers=headers,
        )

    def __str__(self) -> str:
        return f"{self.code}: {self.detail}"


class BadRequestException(CrudgateException):
    code = "BAD_REQUEST"
    default_detail = "Bad request"
    status_code_default = status.HTTP_400_BAD_REQUEST

class InvalidFilterException(BadRequestException):
    code = "INVALID_FILTER"
    default_detail = "Invalid filter syntax"

class InvalidSortException(BadRequestException):
    code = "INVALID_SORT"
    default_detail = "Invalid sort syntax"

class ValidationException(BadRequestException):
    code = "VALIDATION_ERROR"
    default_detail = "Validation failed"

class UnauthorizedException(CrudgateException):
    code = "UNAUTHORIZED"
    default_detail = "Unauthorized"
    status_code_default = status.HTTP_401_UNAUTHORIZED

class ForbiddenException(CrudgateException):
    code = "FORBIDDEN"
    default_detail = "Forbidden"
    status_code_default = status.HTTP_403_FORBIDDEN

class NotFoundException(CrudgateException):
    code = "NOT_FOUND"
    default_detail = "Not found"
    status_code_default = status.HTTP_404_NOT_FOUND

class CollectionNotFoundException(NotFoundException):
    code = "COLLECTION_NOT_FOUND"
    default_detail = "Collection not found"

class ConflictException(CrudgateException):
    code = "CONFLICT"
    default_detail = "Resource already exists"
    status_code_default = status.HTTP_409_CONFLICT

class InternalServerException(CrudgateException):
    code = "INTERNAL_ERROR"
    default_detail = "Internal server error"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR


def response_to_http_exception(status_code: int, details: Any):
    if status_code == status.HTTP_404_NOT_FOUND:
        return NotFoundException(detail=details)
    elif status_code == status.HTTP_403_FORBIDDEN:
        return ForbiddenException(detail=details)
    elif status_code == status.HTTP_400_BAD_REQUEST:
        return BadRequestException(detail=details)
    elif status_code == status.HTTP_401_UNAUTHORIZED:
        return UnauthorizedException(detail=details)
    elif status_code == status.HTTP_409_CONFLICT:
        return ConflictException(detail=details)
    elif status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
        return InternalServerException(detail=details)
    else:
        return None
