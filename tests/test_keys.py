import uuid

import pytest

from caustics.keys import Key, KeyKind, key_of


def test_from_value_picks_kind():
    assert Key.from_value(7) == Key(KeyKind.I32, 7)
    assert Key.from_value(2 ** 40).kind is KeyKind.I64
    assert Key.from_value("abc").kind is KeyKind.STRING
    u = uuid.uuid4()
    assert Key.from_value(u) == Key(KeyKind.UUID, u)
    with pytest.raises(TypeError):
        Key.from_value(True)
    with pytest.raises(TypeError):
        Key.from_value(1.5)


def test_from_db_value_is_total():
    assert Key.from_db_value(None) is None
    assert Key.from_db_value(3.2) is None
    u = uuid.uuid4()
    # strings that look like UUIDs become Uuid keys
    assert Key.from_db_value(str(u)) == Key.uuid(u)
    assert Key.from_db_value("tech") == Key.string("tech")
    assert Key.from_db_value(5).to_db_value() == 5


@pytest.mark.parametrize("key", [
    Key.int32(1),
    Key.int32(-42),
    Key.int64(9_000_000_000),
    Key.string("plain"),
    Key.string('with "quotes" and (parens)'),
    Key.string(""),
    Key.uuid("1b4e28ba-2fa1-11d2-883f-0016d3cca427"),
])
def test_text_round_trip(key):
    assert Key.parse(str(key)) == key


def test_parse_accepts_wrappers_and_aliases():
    assert Key.parse("Equals(Int(1))") == Key.int32(1)
    assert Key.parse("Some(I64(12))") == Key.int64(12)
    assert Key.parse("BigInt(3)") == Key.int64(3)
    assert Key.parse("String(tech)") == Key.string("tech")
    assert Key.parse("15") == Key.int32(15)


@pytest.mark.parametrize("text", ["", "Int(x)", "Float(1.0)", "Uuid(nope)", "I32(5000000000)", "hello", None, 12])
def test_parse_failure_yields_none(text):
    assert Key.parse(text) is None


def test_keys_are_hashable():
    ids = {Key.from_value(1), Key.int32(1), Key.from_value(2)}
    assert len(ids) == 2
    assert Key.int32(1) != Key.int64(1)
    assert key_of(None) is None


def test_int32_range_checked():
    with pytest.raises(ValueError):
        Key.int32(2 ** 31)
