import pytest

from carecord.datatypes.discord_datatypes import (
    ChannelID,
    GuildID,
    MessageID,
    UserID,
)


class DummyObj:
    def __init__(self, id_val=None):
        self.id = id_val


def test_userid_from_int_and_str_and_equality_and_hash():
    u1 = UserID(12345)
    assert int(u1) == 12345
    assert str(u1) == "12345"

    u2 = UserID(" 12345 ")
    assert u1 == u2

    u3 = UserID.from_int(67890)
    assert isinstance(u3, UserID)
    assert u3.to_int() == 67890

    # from_user helper
    u4 = UserID.from_user(DummyObj(id_val=111))  # type: ignore
    assert int(u4) == 111

    # equality with raw types
    assert u4 == 111
    assert u4 == "111"

    # hashing and set membership
    assert len({u1, u2, u3, u4}) == 3


@pytest.mark.parametrize("value", [[], None, True, "not-a-number", 1.5])
def test_userid_invalid(value):
    with pytest.raises(ValueError):
        UserID(value)  # type: ignore


def test_wrapping_same_kind_copies_value():
    assert GuildID(GuildID(5)) == GuildID(5)


def test_different_kinds_never_compare_equal():
    assert UserID(7) != GuildID(7)
    assert len({UserID(7), GuildID(7), ChannelID(7), MessageID(7)}) == 4


def test_from_helpers():
    assert GuildID.from_guild(DummyObj(1)) == GuildID(1)  # type: ignore
    assert ChannelID.from_channel(DummyObj(2)) == ChannelID(2)  # type: ignore
    assert MessageID.from_message(DummyObj(3)) == MessageID(3)  # type: ignore


def test_repr_names_the_kind():
    assert repr(MessageID(9)) == "MessageID('9')"
