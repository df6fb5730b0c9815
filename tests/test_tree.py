import pytest

from roomrelay.errors import RoomNotFound
from roomrelay.rooms import TextMessage
from roomrelay.tree import Category, PathTree, RoomNode


def test_resolve_or_create_builds_intermediate_categories() -> None:
    tree = PathTree()
    room, created = tree.resolve_or_create_ex(("team", "general"))

    assert created
    assert room.name == "team/general"
    assert tree.exists(("team",))
    with pytest.raises(RoomNotFound):
        tree.resolve(("team",))


def test_resolve_or_create_returns_same_room() -> None:
    tree = PathTree()
    first = tree.resolve_or_create(("a", "b"))
    second, created = tree.resolve_or_create_ex(("a", "b"))

    assert second is first
    assert not created
    assert tree.resolve(("a", "b")) is first


def test_resolve_missing_raises() -> None:
    tree = PathTree()
    with pytest.raises(RoomNotFound) as exc:
        tree.resolve(("nope",))
    assert exc.value.status == 404
    assert tree.find(("nope",)) is None
    assert tree.find(None) is None


def test_room_and_children_can_share_a_prefix() -> None:
    tree = PathTree()
    child = tree.resolve_or_create(("team", "general"))
    parent, created = tree.resolve_or_create_ex(("team",))

    assert created
    assert tree.resolve(("team", "general")) is child
    assert {r.name for r in tree.rooms()} == {"team", "team/general"}
    assert isinstance(tree._root.children["team"], RoomNode)


def test_ensure_category_reports_creation() -> None:
    tree = PathTree()
    assert tree.ensure_category(("ops", "alerts"))
    assert not tree.ensure_category(("ops", "alerts"))
    assert isinstance(tree._root.children["ops"], Category)
    assert tree.rooms() == []


def test_new_rooms_use_default_character_limit() -> None:
    tree = PathTree(default_character_limit=250)
    assert tree.resolve_or_create(("x",)).settings.character_limit == 250


def test_public_snapshot_hides_logs_and_bans() -> None:
    tree = PathTree()
    room = tree.resolve_or_create(("team", "general"))
    room.messages.append(TextMessage(username="alice", text="hi"))
    room.banned_ips.add("10.0.0.9")

    snap = tree.snapshot()
    rec = snap["team"]["children"]["general"]["room"]
    assert "room" not in snap["team"]
    assert rec["messages"] == 1
    assert rec["clients"] == 0
    assert "bannedIPs" not in rec


def test_load_snapshot_restores_state() -> None:
    tree = PathTree()
    room = tree.resolve_or_create(("team", "general"))
    room.messages.append(TextMessage(username="alice", text="hi"))
    room.settings.anonymous = True
    room.settings.character_limit = 42
    room.banned_ips.add("10.0.0.9")
    tree.resolve_or_create(("team",))

    restored = PathTree()
    assert restored.load_snapshot(tree.snapshot(include_state=True)) == 2

    again = restored.resolve(("team", "general"))
    assert [m.text for m in again.messages] == ["hi"]
    assert again.settings.anonymous
    assert again.settings.character_limit == 42
    assert again.banned_ips == {"10.0.0.9"}
    assert len(again.clients) == 0


def test_load_snapshot_skips_malformed_segments() -> None:
    tree = PathTree()
    count = tree.load_snapshot(
        {
            "ok": {"children": {}, "room": {}},
            "bad/seg": {"children": {}, "room": {}},
            "": {"children": {}},
            "junk": "not a node",
        }
    )
    assert count == 1
    assert [r.name for r in tree.rooms()] == ["ok"]


def test_clear_drops_everything() -> None:
    tree = PathTree()
    tree.resolve_or_create(("a",))
    tree.clear()
    assert tree.snapshot() == {}
