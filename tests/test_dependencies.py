"""
Tests for dependency resolution scopes.
"""

import pytest

from mvcmachine.dependencies import Injector
from mvcmachine.exceptions import DependencyResolutionError, RegistryFrozenError


class Database:
    pass


class Session:
    pass


class TestInjector:
    """Test request and session scoped dependencies."""

    def test_instance_binding(self):
        injector = Injector()
        db = Database()
        injector.bind(Database, instance=db)
        assert injector.for_request().resolve(Database) is db
        assert injector.for_request().resolve(Database) is db

    def test_request_scope_is_per_request(self):
        injector = Injector()
        calls = []

        @injector.provider(Session)
        def make_session():
            calls.append(1)
            return Session()

        first_scope = injector.for_request()
        first = first_scope.resolve(Session)
        assert first_scope.resolve(Session) is first
        second = injector.for_request().resolve(Session)
        assert second is not first
        assert len(calls) == 2

    def test_session_scope_is_shared(self):
        injector = Injector()
        injector.bind(Database, provider=Database, scope="session")
        first = injector.for_request().resolve(Database)
        assert injector.for_request().resolve(Database) is first

    def test_seeded_values(self):
        injector = Injector()
        scope = injector.for_request()
        session = Session()
        scope.seed(Session, session)
        assert scope.resolve(Session) is session

    def test_unbound_type_raises(self):
        with pytest.raises(DependencyResolutionError) as exc_info:
            Injector().for_request().resolve(Database)
        assert "Database" in str(exc_info.value)

    def test_binding_needs_provider_or_instance(self):
        with pytest.raises(ValueError):
            Injector().bind(Database)

    def test_close_clears_request_values(self):
        injector = Injector()
        injector.bind(Session, provider=Session)
        scope = injector.for_request()
        first = scope.resolve(Session)
        scope.close()
        assert scope.resolve(Session) is not first

    def test_frozen_injector_rejects_binding(self):
        injector = Injector()
        injector.freeze()
        with pytest.raises(RegistryFrozenError):
            injector.bind(Database, instance=Database())
        assert not injector.is_bound(Database)
