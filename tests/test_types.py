from datetime import datetime

import pytest

from cqlops.core.errors import ConfigurationError
from cqlops.core.types import (
    BIGINT,
    BOOLEAN,
    NUMBER,
    STRING,
    TIMESTAMP,
    Frozen,
    ListOf,
    NamingMode,
    Named,
    from_identifier,
    is_list_type,
    parse_column_type,
    to_identifier,
    to_wire_type,
)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("userId", "user_id"),
        ("channelId2", "channel_id2"),
        ("user2Id", "user2_id"),
        ("UserId", "user_id"),
        ("flags", "flags"),
        ("key", "key_"),
        ("order", "order_"),
        ("value", "value_"),
    ],
)
def test_to_identifier(name: str, expected: str):
    assert to_identifier(name) == expected


@pytest.mark.parametrize("name", ["userId", "flags", "guildMemberCount", "a1B", "key", "order"])
def test_camel_case_round_trip(name: str):
    assert from_identifier(to_identifier(name), NamingMode.CAMEL) == name


@pytest.mark.parametrize("name", ["UserId", "Flags", "GuildMemberCount"])
def test_pascal_case_round_trip(name: str):
    assert from_identifier(to_identifier(name), "PascalCase") == name


@pytest.mark.parametrize("name", ["user_id", "flags", "member_count"])
def test_snake_case_round_trip(name: str):
    assert from_identifier(to_identifier(name), NamingMode.SNAKE) == name


def test_reserved_suffix_is_added_and_stripped_exactly_once():
    assert to_identifier("key") == "key_"
    assert from_identifier("key_") == "key"
    # Only a reserved stem loses its underscore.
    assert from_identifier("foo_", NamingMode.SNAKE) == "foo_"


@pytest.mark.parametrize(
    ("ctype", "wire"),
    [
        (BIGINT, "bigint"),
        (BOOLEAN, "boolean"),
        (TIMESTAMP, "timestamp"),
        (NUMBER, "int"),
        (STRING, "text"),
        (ListOf(STRING), "list<text>"),
        (ListOf(Frozen(Named("mentionData"))), "list<frozen<mention_data>>"),
    ],
)
def test_to_wire_type(ctype, wire: str):
    assert to_wire_type(ctype) == wire


@pytest.mark.parametrize(
    ("descriptor", "expected"),
    [
        (str, STRING),
        (int, NUMBER),
        (bool, BOOLEAN),
        (datetime, TIMESTAMP),
        ([str], ListOf(STRING)),
        ("string", STRING),
        ("BigInt", BIGINT),
        ("Date", TIMESTAMP),
        ("list<frozen<int>>", ListOf(Frozen(NUMBER))),
        ("LIST<text>", ListOf(STRING)),
        ("embed", Named("embed")),
        ("list<frozen<embed>>", ListOf(Frozen(Named("embed")))),
        (ListOf(BIGINT), ListOf(BIGINT)),
    ],
)
def test_parse_column_type(descriptor, expected):
    assert parse_column_type(descriptor, ["embed"]) == expected


@pytest.mark.parametrize(
    "descriptor",
    ["varchar", "list<int", [str, int], [], float, Named("missing"), 42, "list<missing>"],
)
def test_parse_column_type_rejects_unknown_descriptors(descriptor):
    with pytest.raises(ConfigurationError):
        parse_column_type(descriptor, ["embed"])


def test_is_list_type_sees_through_frozen():
    assert is_list_type(ListOf(STRING))
    assert is_list_type(Frozen(ListOf(STRING)))
    assert not is_list_type(Frozen(Named("embed")))
    assert not is_list_type(STRING)
