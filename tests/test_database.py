"""
Engine setup: ``DATABASE_URL`` selection, supported dialects, and the
commit-or-rollback contract of ``session_scope``.
"""

import pytest
from sqlalchemy import select

from workforce_kernel.db.engine import (
    DEFAULT_DATABASE_URL,
    database_url,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from workforce_kernel.exceptions import ConfigurationError
from workforce_kernel.models.identity import Tenant
from workforce_kernel.services.identity_service import IdentityService


@pytest.fixture
def no_engine():
    reset_engine()
    yield
    reset_engine()


class TestDatabaseUrl:
    def test_environment_wins(self):
        url = "postgresql://kernel:secret@db/workforce"
        assert database_url({"DATABASE_URL": url}) == url

    @pytest.mark.parametrize("environ", [{}, {"DATABASE_URL": ""}])
    def test_falls_back_to_in_memory_sqlite(self, environ):
        assert database_url(environ) == DEFAULT_DATABASE_URL


class TestInitEngine:
    def test_unsupported_database_is_a_configuration_error(self, no_engine):
        with pytest.raises(ConfigurationError) as exc:
            init_engine_from_url("mysql://kernel@db/workforce")
        assert exc.value.setting == "DATABASE_URL"
        assert "mysql" in str(exc.value)

    def test_malformed_url_is_a_configuration_error(self, no_engine):
        with pytest.raises(ConfigurationError):
            init_engine_from_url("not a database url")

    def test_sessions_need_an_engine(self, no_engine):
        with pytest.raises(RuntimeError, match="init_engine_from_url"):
            get_session_factory()


class TestSessionScope:
    def test_commits_on_success(self, engine, clock):
        with session_scope() as s:
            tenant_id = IdentityService(s, clock).create_tenant("Harbour Staffing")

        with session_scope() as s:
            assert s.get(Tenant, tenant_id).name == "Harbour Staffing"

    def test_rolls_back_and_reraises(self, engine, clock, captured_logs):
        with pytest.raises(LookupError):
            with session_scope() as s:
                IdentityService(s, clock).create_tenant("Never Onboarded")
                raise LookupError("seed file missing")

        with session_scope() as s:
            names = s.scalars(select(Tenant.name)).all()
        assert "Never Onboarded" not in names
        rolled_back = [r for r in captured_logs() if r["message"] == "session_scope_rolled_back"]
        assert rolled_back[-1]["error_type"] == "LookupError"
