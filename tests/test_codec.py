import pytest

from roomrelay.codec import decode_state, encode, encode_state


def test_state_round_trip() -> None:
    paths = {"team": {"children": {}, "room": {"settings": {"anonymous": True}}}}
    data = encode_state(paths, ["10.0.0.2", "10.0.0.1"])

    decoded_paths, bans = decode_state(data)
    assert decoded_paths == paths
    assert bans == ["10.0.0.1", "10.0.0.2"]


def test_decode_state_rejects_unknown_version() -> None:
    with pytest.raises(ValueError):
        decode_state(encode({"version": 99, "paths": {}}))


def test_decode_state_rejects_non_map_record() -> None:
    with pytest.raises(TypeError):
        decode_state(encode([1, 2, 3]))


def test_decode_state_rejects_truncated_data() -> None:
    with pytest.raises(ValueError):
        decode_state(b"\x83\x01")


def test_decode_state_drops_blank_bans() -> None:
    _, bans = decode_state(encode({"version": 1, "globalBannedIPs": ["1.1.1.1", " ", 5]}))
    assert bans == ["1.1.1.1"]
