"""
Tests for settings, the exception taxonomy and session handling.
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from crudgate import database
from crudgate.api.exceptions import (
    BadRequestException,
    CollectionNotFoundException,
    ConflictException,
    CrudgateException,
    ForbiddenException,
    InternalServerException,
    InvalidFilterException,
    NotFoundException,
    response_to_http_exception,
)
from crudgate.settings import BackendSettings, settings


# ============================================================================
# Settings
# ============================================================================

class TestSettings:

    def test_singleton(self):
        assert BackendSettings() is settings

    def test_defaults(self):
        assert settings.DEFAULT_PAGE_LIMIT == 20
        assert settings.MAX_PAGE_LIMIT == 100
        assert settings.ADMIN_ROLE == "admin"

    def test_bad_integer_falls_back(self, monkeypatch):
        monkeypatch.setenv("CRUDGATE_MAX_PAGE_LIMIT", "lots")
        assert BackendSettings().MAX_PAGE_LIMIT == 100


# ============================================================================
# Exceptions
# ============================================================================

class TestExceptions:

    @pytest.mark.parametrize("cls,status_code,code", [
        (BadRequestException, 400, "BAD_REQUEST"),
        (InvalidFilterException, 400, "INVALID_FILTER"),
        (ForbiddenException, 403, "FORBIDDEN"),
        (CollectionNotFoundException, 404, "COLLECTION_NOT_FOUND"),
        (ConflictException, 409, "CONFLICT"),
        (InternalServerException, 500, "INTERNAL_ERROR"),
    ])
    def test_taxonomy(self, cls, status_code, code):
        e = cls(detail="boom")
        assert isinstance(e, CrudgateException)
        assert e.status_code == status_code
        assert e.code == code
        assert str(e) == f"{code}: boom"

    def test_default_detail(self):
        assert NotFoundException().detail == "Not found"

    def test_subclasses_share_status(self):
        assert issubclass(InvalidFilterException, BadRequestException)
        assert issubclass(CollectionNotFoundException, NotFoundException)

    def test_response_to_http_exception(self):
        assert isinstance(response_to_http_exception(409, "dup"), ConflictException)
        assert response_to_http_exception(404, "gone").detail == "gone"
        assert response_to_http_exception(418, "teapot") is None


# ============================================================================
# Database sessions
# ============================================================================

class TestGetDb:

    def test_yields_and_closes(self, monkeypatch, session_factory):
        monkeypatch.setattr(database, "_SessionLocal", session_factory)

        gen = database.get_db()
        db = next(gen)
        assert db.execute(text("SELECT 1")).scalar() == 1

        with pytest.raises(StopIteration):
            next(gen)

    def test_operational_error_is_reraised(self, monkeypatch, session_factory):
        monkeypatch.setattr(database, "_SessionLocal", session_factory)

        gen = database.get_db()
        next(gen)
        with pytest.raises(OperationalError):
            gen.throw(OperationalError("SELECT 1", {}, Exception("connection lost")))
