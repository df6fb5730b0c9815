import asyncio

from conftest import event

from roomrelay.constants import CLOSE_POLICY_VIOLATION


def test_room_ban_closes_matching_members_only(service, connect) -> None:
    bad, tbad = connect("10.0.0.66")
    good, tgood = connect("10.0.0.1")
    elsewhere, telse = connect("10.0.0.66")

    async def run() -> int:
        await service.router.route_event(bad, event("join", path="r"))
        await service.router.route_event(good, event("join", path="r"))
        await service.router.route_event(elsewhere, event("join", path="other"))
        room = service.tree.resolve(("r",))
        return await service.moderation.ban_in_room(room, "10.0.0.66")

    closed = asyncio.run(run())

    assert closed == 1
    assert tbad.close_code == CLOSE_POLICY_VIOLATION
    assert bad.closed
    assert tgood.open and telse.open
    room = service.tree.resolve(("r",))
    assert room.banned_ips == {"10.0.0.66"}
    assert list(room.clients) == [good.client_id]


def test_room_ban_blocks_rejoin(service, connect) -> None:
    async def run() -> None:
        room = service.tree.resolve_or_create(("r",))
        await service.moderation.ban_in_room(room, "10.0.0.66")

    asyncio.run(run())

    session, t = connect("10.0.0.66")
    asyncio.run(service.router.route_event(session, event("join", path="r")))
    assert t.close_code == CLOSE_POLICY_VIOLATION
    assert t.sent == []

    other, t2 = connect("10.0.0.66")
    asyncio.run(service.router.route_event(other, event("join", path="free")))
    assert t2.open
    assert t2.types() == ["message", "characterLimit", "anonymous"]


def test_ban_applies_to_live_session_on_next_event(service, connect) -> None:
    session, t = connect("10.0.0.66")

    async def run() -> None:
        await service.router.route_event(session, event("join", path="r"))
        service.tree.resolve(("r",)).banned_ips.add("10.0.0.66")
        await service.router.route_event(session, event("message", path="r", text="hi"))

    asyncio.run(run())

    assert t.close_code == CLOSE_POLICY_VIOLATION
    assert len(service.tree.resolve(("r",)).messages) == 0


def test_global_ban_closes_everywhere_and_blocks_joins(service, connect) -> None:
    a, ta = connect("10.0.0.66")
    b, tb = connect("10.0.0.66")
    c, tc = connect("10.0.0.1")

    async def run() -> int:
        await service.router.route_event(a, event("join", path="one"))
        await service.router.route_event(c, event("join", path="one"))
        return await service.moderation.ban_globally("10.0.0.66")

    closed = asyncio.run(run())

    assert closed == 2
    assert ta.close_code == CLOSE_POLICY_VIOLATION
    assert tb.close_code == CLOSE_POLICY_VIOLATION
    assert tc.open
    assert service.moderation.banned_ips() == ["10.0.0.66"]

    later, tl = connect("10.0.0.66")
    asyncio.run(service.router.route_event(later, event("join", path="two")))
    assert tl.close_code == CLOSE_POLICY_VIOLATION


def test_configured_bans_are_loaded_on_start(make_service) -> None:
    service = make_service(banned_ips=("1.2.3.4",))
    assert service.moderation.is_globally_banned("1.2.3.4")
    assert not service.moderation.is_globally_banned("4.3.2.1")
    assert not service.moderation.is_banned(None, None)
