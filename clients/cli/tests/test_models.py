from datetime import datetime, timedelta, timezone

import pytest

from chat_cli.models import (
    Channel,
    ChannelCategory,
    Message,
    User,
    parse_categories,
    parse_messages,
    parse_timestamp,
    parse_users,
)


def test_message_from_json_reads_all_fields():
    message = Message.from_json(
        {
            "id": 7,
            "channel_id": 2,
            "user_id": 3,
            "username": "ada",
            "content": "hello",
            "created_at": "2024-05-01T12:34:56Z",
            "avatar_url": "/a.png",
        }
    )

    assert message == Message(
        id=7,
        channel_id=2,
        user_id=3,
        username="ada",
        content="hello",
        created_at=datetime(2024, 5, 1, 12, 34, 56, tzinfo=timezone.utc),
        avatar_url="/a.png",
    )


def test_missing_and_null_fields_take_zero_values():
    message = Message.from_json({"id": 1, "channel_id": 4, "avatar_url": None})

    assert message.username == ""
    assert message.content == ""
    assert message.created_at is None
    assert message.avatar_url == ""


def test_wrong_field_type_is_rejected():
    with pytest.raises(ValueError):
        Message.from_json({"id": "1", "channel_id": 4})
    with pytest.raises(ValueError):
        Channel.from_json({"id": True, "name": "general"})


def test_non_object_payload_is_rejected():
    with pytest.raises(ValueError):
        User.from_json(["not", "an", "object"])


def test_parse_timestamp_truncates_nanoseconds_and_keeps_offset():
    parsed = parse_timestamp("2024-05-01T12:34:56.123456789+02:00")

    assert parsed.microsecond == 123456
    assert parsed.utcoffset() == timedelta(hours=2)


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")


def test_category_channels_default_to_empty():
    category = ChannelCategory.from_json({"id": 1, "name": "Text", "position": 0, "channels": None})

    assert category.channels == ()


def test_parse_categories_nests_channels():
    categories = parse_categories(
        [
            {
                "id": 1,
                "name": "Text",
                "position": 0,
                "channels": [{"id": 10, "name": "general", "category_id": 1, "position": 2}],
            }
        ]
    )

    assert categories[0].channels == (Channel(id=10, name="general", category_id=1, position=2),)


def test_list_parsers_accept_null_and_reject_objects():
    assert parse_messages(None) == []
    assert parse_users([{"id": 1, "username": "ada"}]) == [User(id=1, username="ada")]
    with pytest.raises(ValueError):
        parse_users({"id": 1})
