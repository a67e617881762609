"""Tests for router declarations, manifests and the path registry."""

from typing import Annotated

import pytest

from pathrpc.errors import NotFoundError, StartupValidationError
from pathrpc.server import Context, PathRegistry, UploadConfig, define_manifest, route, router
from pathrpc.server.decorators import declared_routes, is_router

from sample_app import AuditRouter, MathRouter, UserQuery, UsersRouter, broken_manifest, manifest


@router()
class PingRouter:
    @route()
    def ping(self, input=None):
        return "pong"


class TestDecorators:
    def test_is_router_requires_explicit_marker(self):
        class Child(PingRouter):
            pass

        assert is_router(PingRouter)
        assert not is_router(Child)
        assert not is_router(PingRouter())

    def test_declared_routes_in_order(self):
        names = [name for name, _, _ in declared_routes(UsersRouter)]
        assert names == ["get_user", "list_users"]

    def test_inherited_routes(self):
        @router()
        class Extended(PingRouter):
            @route()
            def extra(self, input=None):
                return 1

        assert [name for name, _, _ in declared_routes(Extended)] == ["ping", "extra"]

    def test_route_rejects_staticmethod(self):
        with pytest.raises(TypeError):
            route()(staticmethod(lambda input: None))

    def test_upload_config_validation(self):
        with pytest.raises(ValueError, match="Invalid upload mode"):
            UploadConfig(mode="stream")
        with pytest.raises(ValueError, match="max_files"):
            UploadConfig(mode="single", max_files=3)


class TestRegistryBuild:
    def test_paths(self, registry):
        assert set(registry.paths()) == {
            "users.get_user",
            "users.list_users",
            "math.add",
            "math.slow",
            "math.blocking",
            "math.fail",
            "math.echo",
            "math.whoami",
            "admin.audit.upload_logs",
        }
        assert "math.helper" not in registry

    def test_entry_details(self, registry):
        entry = registry.lookup("users.get_user")
        assert entry.path == ("users", "get_user")
        assert entry.is_async is True
        assert entry.input_model is UserQuery
        assert entry.router_name == "UsersRouter"

        upload = registry.lookup(("admin", "audit", "upload_logs"))
        assert upload.upload == UploadConfig(mode="multiple", max_files=3)
        assert upload.router_name == "audit"

        whoami = registry.lookup("math.whoami")
        assert set(whoami.bindings) == {"call_id", "headers"}
        assert whoami.input_has_default is True
        assert whoami.is_async is False

    def test_lookup_miss(self, registry):
        with pytest.raises(NotFoundError, match="users.delete"):
            registry.lookup("users.delete")

    def test_namespace_is_not_a_route(self, registry):
        with pytest.raises(NotFoundError):
            registry.lookup("admin.audit")

    def test_one_instance_per_router(self, registry):
        assert registry.lookup("math.add").instance is registry.lookup("math.fail").instance

    def test_instance_factory(self):
        created = []

        def factory(cls):
            created.append(cls)
            return cls()

        PathRegistry.build(manifest, instance_factory=factory)
        assert sorted(c.__name__ for c in created) == ["AuditRouter", "MathRouter", "UsersRouter"]

    def test_failing_factory(self):
        def factory(cls):
            raise RuntimeError("no container")

        with pytest.raises(StartupValidationError, match="could not instantiate"):
            PathRegistry.build({"ping": PingRouter}, instance_factory=factory)

    def test_registry_is_read_only(self, registry):
        with pytest.raises(TypeError):
            registry._entries["x"] = None

    def test_len_and_iter(self, registry):
        assert len(registry) == 9
        assert list(registry) == registry.paths()


class TestRegistryValidation:
    def test_non_router_leaf(self):
        with pytest.raises(StartupValidationError, match="broken"):
            PathRegistry.build(broken_manifest)

    def test_plain_value_leaf(self):
        with pytest.raises(StartupValidationError, match="not a class decorated"):
            PathRegistry.build({"users": "UsersRouter"})

    def test_manifest_must_be_mapping(self):
        with pytest.raises(StartupValidationError, match="must be a mapping"):
            define_manifest(["users"])

    def test_empty_namespace(self):
        with pytest.raises(StartupValidationError, match="empty namespace"):
            PathRegistry.build({"users": {}})

    @pytest.mark.parametrize("key", ["", "a:b", "a,b", "a..b"])
    def test_invalid_keys(self, key):
        with pytest.raises(StartupValidationError):
            PathRegistry.build({key: PingRouter})

    def test_duplicate_namespace(self):
        with pytest.raises(StartupValidationError, match="more than once"):
            PathRegistry.build({"a.b": PingRouter, "a": {"b": MathRouter}})

    def test_route_overlaps_namespace(self):
        @router()
        class Outer:
            @route()
            def inner(self, input=None):
                return None

        with pytest.raises(StartupValidationError, match="both a route and the namespace"):
            PathRegistry.build({"x": Outer, "x.inner": PingRouter})

    def test_bound_input_parameter(self):
        @router()
        class Bad:
            @route()
            def method(self, request=Context("request")):
                return None

        with pytest.raises(StartupValidationError, match="reserved for the call input"):
            PathRegistry.build({"bad": Bad})

    def test_bound_input_parameter_annotated(self):
        @router()
        class Bad:
            @route()
            def method(self, request: Annotated[dict, Context("request")]):
                return None

        with pytest.raises(StartupValidationError, match="reserved for the call input"):
            PathRegistry.build({"bad": Bad})

    def test_unbound_extra_parameter(self):
        @router()
        class Bad:
            @route()
            def method(self, input, session):
                return None

        with pytest.raises(StartupValidationError, match="'session' has neither"):
            PathRegistry.build({"bad": Bad})

    def test_extra_parameter_with_default(self):
        @router()
        class Fine:
            @route()
            def method(self, input, limit=10):
                return limit

        assert "fine.method" in PathRegistry.build({"fine": Fine})

    def test_annotated_binding(self):
        @router()
        class Fine:
            @route()
            def method(self, input, user: Annotated[str, Context("user")]):
                return user

        entry = PathRegistry.build({"fine": Fine}).lookup("fine.method")
        assert entry.bindings["user"].key == "user"

    def test_static_route(self):
        @router()
        class Bad:
            @staticmethod
            @route()
            def method(input):
                return None

        with pytest.raises(StartupValidationError, match="plain instance method"):
            PathRegistry.build({"bad": Bad})

    def test_router_without_routes_is_allowed(self):
        @router()
        class Empty:
            pass

        assert len(PathRegistry.build({"empty": Empty, "ping": PingRouter})) == 1

    def test_route_without_input_parameter(self):
        @router()
        class NoInput:
            @route()
            def now(self):
                return "now"

        entry = PathRegistry.build({"t": NoInput}).lookup("t.now")
        assert entry.accepts_input is False

    def test_uses_audit_router(self):
        assert "a.upload_logs" in PathRegistry.build({"a": AuditRouter})
