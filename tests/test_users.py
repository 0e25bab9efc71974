from __future__ import annotations

import uuid

from relay_installer.install_config import InstallArgs
from relay_installer.users import FLOW, Client, UserRegistry, connection_uri, populate_clients


def _args(**kw) -> InstallArgs:
    return InstallArgs(domain="example.com", email="a@example.com", **kw)


def test_explicit_ids_win_over_count():
    clients = []
    populate_clients(UserRegistry(clients), _args(add_users_count=5, add_user_ids=["a", "b"]))
    assert [c.id for c in clients] == ["a", "b"]


def test_count_generates_distinct_uuids():
    clients = []
    populate_clients(UserRegistry(clients), _args(add_users_count=3))
    ids = [c.id for c in clients]
    assert len(set(ids)) == 3
    for i in ids:
        uuid.UUID(i)
    assert all(c.flow == FLOW for c in clients)


def test_zero_users():
    registry = UserRegistry([])
    populate_clients(registry, _args())
    assert len(registry) == 0


def test_duplicate_ids_are_kept():
    registry = UserRegistry([])
    registry.add_user_with_id("same").add_user_with_id("same")
    assert [c.id for c in registry.clients] == ["same", "same"]


def test_registry_writes_through_to_list():
    backing = []
    UserRegistry(backing).add_users(2)
    assert len(backing) == 2


def test_connection_uri_format():
    uri = connection_uri(Client(id="11111111-2222-3333-4444-555555555555"), "example.com")
    assert uri == (
        "vless://11111111-2222-3333-4444-555555555555@example.com:443/"
        "?type=tcp&encryption=none&flow=xtls-rprx-vision&security=tls&fp=chrome#xray"
    )
