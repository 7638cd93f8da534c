"""Tests for the federated tables registry service."""

from __future__ import annotations

import pytest

from federated_tables_backend.app.core.config import FederationSettings
from federated_tables_backend.app.services.federation import (
    REMOTE_SCHEMA_LISTING,
    REMOTE_TABLE_LISTING,
    SERVER_LISTING,
    Created,
    EngineError,
    FederatedTablesService,
    NotFoundError,
    PartialFailureError,
    RequestContext,
    UnauthorizedError,
    UnprocessableError,
    Updated,
    ValidationError,
)

MASK = "********"


def _update_params(**overrides):
    params = {"mode": "read-only", "host": "db.example.com", "username": "u", "password": "p"}
    params.update(overrides)
    return params


class TestPermissions:
    def test_caller_without_capabilities_is_refused(self, service, fake_store, server_params):
        ctx = RequestContext(tenant_id="acme", db_role="acme_role")
        with pytest.raises(UnauthorizedError):
            service.register_server(ctx, server_params)
        assert fake_store.calls == []

    def test_dataset_metadata_capability_is_enough(self, service, server_params):
        ctx = RequestContext(tenant_id="acme", db_role="acme_role", dataset_metadata=True)
        result = service.register_server(ctx, server_params)
        assert isinstance(result, Created)


class TestRegisterServer:
    def test_creates_then_grants(self, service, fake_store, ctx, server_params):
        result = service.register_server(ctx, server_params)

        assert isinstance(result, Created)
        assert result.location == "geoserv"
        assert result.value.password == MASK
        assert fake_store.operations() == ["create_server", "grant_server_access"]
        assert fake_store.list_server_grants("geoserv") == ["acme_role"]
        assert fake_store.servers["geoserv"].password == "p"

    def test_uppercase_name_rejected_before_store(self, service, fake_store, ctx, server_params):
        with pytest.raises(ValidationError):
            service.register_server(ctx, {**server_params, "federated_server_name": "MyServer"})
        assert fake_store.calls == []

    def test_lowercase_name_accepted(self, service, ctx, server_params):
        result = service.register_server(ctx, {**server_params, "federated_server_name": "myserver"})
        assert result.value.name == "myserver"

    def test_bad_mode_rejected_before_store(self, service, fake_store, ctx, server_params):
        with pytest.raises(ValidationError) as exc_info:
            service.register_server(ctx, {**server_params, "mode": "read-write"})
        assert exc_info.value.error_code == "invalid_access_mode"
        assert fake_store.calls == []

    def test_duplicate_server(self, service, fake_store, ctx, server_params):
        service.register_server(ctx, server_params)
        with pytest.raises(UnprocessableError):
            service.register_server(ctx, server_params)
        assert fake_store.operations()[-1] == "create_server"

    def test_grant_failure_is_partial(self, service, fake_store, ctx, server_params):
        fake_store.failures["grant_server_access"] = EngineError("role acme_role does not exist")

        with pytest.raises(PartialFailureError) as exc_info:
            service.register_server(ctx, server_params)

        error = exc_info.value
        assert error.completed_steps == ["create_server"]
        assert error.failed_step == "grant_access"
        assert isinstance(error.cause, NotFoundError)
        assert error.to_dict()["error_code"] == "partial_failure"
        assert "geoserv" in fake_store.servers

    def test_unclassified_first_step_error_propagates(self, service, fake_store, ctx, server_params):
        boom = RuntimeError("connection reset by peer")
        fake_store.failures["create_server"] = boom
        with pytest.raises(RuntimeError) as exc_info:
            service.register_server(ctx, server_params)
        assert exc_info.value is boom


class TestReadServers:
    def test_get_server_masks_password(self, service, ctx, server_params):
        service.register_server(ctx, server_params)
        server = service.get_server(ctx, "geoserv")
        assert server.password == MASK
        assert server.host == "db.example.com"

    def test_get_unknown_server(self, service, ctx):
        with pytest.raises(NotFoundError) as exc_info:
            service.get_server(ctx, "nope")
        assert exc_info.value.message == "Federated server key not found: nope"

    def test_list_servers_masks_and_orders(self, service, ctx, server_params):
        for name in ("zeta", "alpha", "mid"):
            service.register_server(ctx, {**server_params, "federated_server_name": name})

        pagination = service.build_pagination({"per_page": "2"}, SERVER_LISTING)
        page = service.list_servers(ctx, pagination)

        assert [s.name for s in page.items] == ["alpha", "mid"]
        assert page.total_count == 3
        assert all(s.password == MASK for s in page.items)

    def test_list_servers_invalid_order(self, service):
        with pytest.raises(ValidationError):
            service.build_pagination({"order": "password"}, SERVER_LISTING)


class TestUpdateServer:
    def test_update_of_missing_server_registers_it(self, fake_store, ctx, server_params):
        registered_store = type(fake_store)()
        FederatedTablesService(registered_store, FederationSettings()).register_server(
            ctx, server_params
        )

        service = FederatedTablesService(fake_store, FederationSettings())
        result = service.update_server(ctx, "geoserv", _update_params())

        assert isinstance(result, Created)
        assert result.location is None
        assert result.value.password == MASK
        assert fake_store.servers == registered_store.servers
        assert fake_store.grants == registered_store.grants

    def test_update_existing_server(self, service, fake_store, ctx, server_params):
        service.register_server(ctx, server_params)
        result = service.update_server(ctx, "geoserv", _update_params(host="db2", port=6543))

        assert isinstance(result, Updated)
        assert result.value.password == MASK
        assert fake_store.servers["geoserv"].host == "db2"
        assert fake_store.servers["geoserv"].port == 6543
        assert "alter_server" in fake_store.operations()

    def test_unexpected_attributes_rejected_before_store(self, service, fake_store, ctx):
        with pytest.raises(ValidationError) as exc_info:
            service.update_server(ctx, "geoserv", _update_params(owner="x"))
        assert exc_info.value.error_code == "unexpected_parameters"
        assert fake_store.calls == []


class TestUnregisterServer:
    def test_revokes_before_drop(self, service, fake_store, ctx, server_params):
        service.register_server(ctx, server_params)
        fake_store.calls.clear()

        service.unregister_server(ctx, "geoserv")

        operations = fake_store.operations()
        assert operations.index("revoke_server_access") < operations.index("drop_server")
        assert fake_store.list_server_grants("geoserv") == []
        assert "geoserv" not in fake_store.servers

    def test_unknown_server(self, service, fake_store, ctx):
        with pytest.raises(NotFoundError):
            service.unregister_server(ctx, "nope")
        assert "revoke_server_access" not in fake_store.operations()

    def test_drop_failure_after_revoke_is_partial(self, service, fake_store, ctx, server_params):
        service.register_server(ctx, server_params)
        fake_store.failures["drop_server"] = RuntimeError("password=p lost connection")

        with pytest.raises(PartialFailureError) as exc_info:
            service.unregister_server(ctx, "geoserv")

        error = exc_info.value
        assert error.completed_steps == ["revoke_access"]
        assert error.failed_step == "drop_server"
        assert "password=p" not in error.message


@pytest.fixture
def registered(service, fake_store, ctx, server_params):
    service.register_server(ctx, server_params)
    fake_store.add_remote_table(
        "geoserv", "public", "parcels", {"id": "INTEGER", "name": "VARCHAR", "geom": "GEOMETRY"}
    )
    fake_store.add_remote_table("geoserv", "public", "roads", {"road_id": "BIGINT"})
    fake_store.add_remote_table("geoserv", "archive", "old", {"label": "VARCHAR"})
    return service


class TestRemoteTables:
    def test_list_schemas(self, registered, ctx):
        pagination = registered.build_pagination({}, REMOTE_SCHEMA_LISTING)
        page = registered.list_remote_schemas(ctx, "geoserv", pagination)
        assert [s.remote_schema_name for s in page.items] == ["archive", "public"]

    def test_list_schemas_of_unknown_server(self, registered, ctx):
        pagination = registered.build_pagination({}, REMOTE_SCHEMA_LISTING)
        with pytest.raises(NotFoundError):
            registered.list_remote_schemas(ctx, "nope", pagination)

    def test_schema_total_comes_from_store_count(self, registered, fake_store, ctx):
        pagination = registered.build_pagination({"per_page": "1"}, REMOTE_SCHEMA_LISTING)
        page = registered.list_remote_schemas(ctx, "geoserv", pagination)

        assert len(page.items) == 1
        assert page.total_count == 2
        assert ("count_remote_schemas", "geoserv") in fake_store.calls

    def test_table_total_comes_from_store_count(self, registered, fake_store, ctx):
        pagination = registered.build_pagination({"per_page": "1"}, REMOTE_TABLE_LISTING)
        page = registered.list_remote_tables(ctx, "geoserv", "public", pagination)

        assert len(page.items) == 1
        assert page.total_count == 2
        assert ("count_remote_tables", "geoserv", "public") in fake_store.calls

    def test_count_failure_is_classified(self, registered, fake_store, ctx):
        fake_store.failures["count_remote_tables"] = EngineError(
            "Not enough permissions to access the server geoserv"
        )
        pagination = registered.build_pagination({}, REMOTE_TABLE_LISTING)
        with pytest.raises(UnauthorizedError):
            registered.list_remote_tables(ctx, "geoserv", "public", pagination)

    def test_register_table_defaults_local_name(self, registered, ctx):
        result = registered.register_table(
            ctx,
            "geoserv",
            "public",
            {"remote_table_name": "parcels", "id_column_name": "id"},
        )
        assert isinstance(result, Created)
        assert result.location == "parcels"
        assert result.value.registered is True
        assert result.value.local_table_name_override == "parcels"

    def test_register_table_with_non_integer_id(self, registered, ctx):
        with pytest.raises(UnprocessableError) as exc_info:
            registered.register_table(
                ctx, "geoserv", "public", {"remote_table_name": "parcels", "id_column_name": "name"}
            )
        assert exc_info.value.message == "non integer id_column name"

    def test_unregistered_entries_only_show_discovery_fields(self, registered, ctx):
        registered.register_table(
            ctx, "geoserv", "public", {"remote_table_name": "parcels", "id_column_name": "id"}
        )
        pagination = registered.build_pagination({}, REMOTE_TABLE_LISTING)
        page = registered.list_remote_tables(ctx, "geoserv", "public", pagination)

        by_name = {t.remote_table_name: t.to_dict() for t in page.items}
        assert by_name["parcels"]["registered"] is True
        assert by_name["parcels"]["id_column_name"] == "id"
        roads = by_name["roads"]
        assert roads["registered"] is False
        for field in ("id_column_name", "geom_column_name", "webmercator_column_name"):
            assert field not in roads
        assert roads["columns"] == [{"name": "road_id", "type": "BIGINT"}]

    def test_get_unknown_table(self, registered, ctx):
        with pytest.raises(NotFoundError) as exc_info:
            registered.get_remote_table(ctx, "geoserv", "public", "nope")
        assert exc_info.value.message == "Remote table key not found: geoserv/public.nope"

    def test_update_unregistered_table_registers_it(self, registered, fake_store, ctx):
        result = registered.update_table(
            ctx, "geoserv", "public", "roads", {"id_column_name": "road_id"}
        )
        assert isinstance(result, Created)
        assert result.value.registered is True
        assert "import_table" in fake_store.operations()

    def test_update_registered_table(self, registered, fake_store, ctx):
        registered.register_table(
            ctx, "geoserv", "public", {"remote_table_name": "parcels", "id_column_name": "id"}
        )
        result = registered.update_table(
            ctx,
            "geoserv",
            "public",
            "parcels",
            {"id_column_name": "id", "geom_column_name": "geom"},
        )
        assert isinstance(result, Updated)
        assert result.value.geom_column_name == "geom"
        assert "alter_table_mapping" in fake_store.operations()

    def test_unregister_table(self, registered, fake_store, ctx):
        registered.register_table(
            ctx, "geoserv", "public", {"remote_table_name": "parcels", "id_column_name": "id"}
        )
        registered.unregister_table(ctx, "geoserv", "public", "parcels")

        table = registered.get_remote_table(ctx, "geoserv", "public", "parcels")
        assert table.registered is False

    def test_unregister_unknown_table(self, registered, ctx):
        with pytest.raises(NotFoundError):
            registered.unregister_table(ctx, "geoserv", "public", "nope")

    def test_unregister_discovered_but_unregistered_table(self, registered, ctx):
        with pytest.raises(NotFoundError):
            registered.unregister_table(ctx, "geoserv", "public", "roads")
