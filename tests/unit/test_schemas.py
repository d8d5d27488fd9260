from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from whoami_chat.domain.chat.models import ConfirmedId, ReplySummary
from whoami_chat.domain.chat.schemas import (
    SendMessageRequest,
    SendMessageResponse,
    parse_conversations,
    parse_message,
    parse_messages,
    parse_online_users,
    parse_typing,
)


def test_parse_message_normalises_fields(make_message):
    message = parse_message(
        make_message("m1", "ann", "me", "2024-05-01T10:00:00", replyTo={"_id": "m0", "message": "earlier"})
    )
    assert message.id == "m1"
    assert message.created_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert message.other_party("me") == "ann"
    assert isinstance(message.reply_to, ReplySummary)
    assert message.reply_to.body == "earlier"


def test_parse_message_rejects_missing_ids(make_message):
    payload = make_message("m1", "ann", "me")
    del payload["senderId"]
    with pytest.raises(ValidationError):
        parse_message(payload)


def test_parse_messages_skips_malformed_entries(make_message):
    messages = parse_messages([make_message("m1", "ann", "me"), {"_id": "broken"}])
    assert [m.id for m in messages] == ["m1"]
    with pytest.raises(ValueError):
        parse_messages({"messages": []})


def test_conversation_uses_last_message_time(make_conversation, make_message):
    last = make_message("m1", "ann", "me", "2024-05-02T08:00:00Z", text="yo", streakCount=3)
    (preview,) = parse_conversations([make_conversation("c1", "ann", last=last, unread=-2, streakCount=3)])

    assert preview.id == ConfirmedId("c1")
    assert preview.peer_id == "ann"
    assert preview.peer.display_name == "Ann"
    assert preview.updated_at == datetime(2024, 5, 2, 8, 0, tzinfo=timezone.utc)
    assert preview.unread_count == 0
    assert preview.streak_count == 3


def test_conversation_falls_back_to_updated_at(make_conversation):
    (preview,) = parse_conversations([make_conversation("c1", "ann")])
    assert preview.last_message is None
    assert preview.updated_at == datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def test_conversation_with_unparseable_timestamp_keeps_entry(make_conversation):
    (preview,) = parse_conversations([make_conversation("c1", "ann", updatedAt="yesterday")])
    assert preview.updated_at is None


def test_parse_conversations_requires_a_list():
    with pytest.raises(ValueError):
        parse_conversations(None)
    assert parse_conversations([{"user": {"_id": "x"}}]) == []


def test_online_users_and_typing_payloads():
    assert parse_online_users(["ann", "", "bob"]) == ["ann", "bob"]
    with pytest.raises(ValidationError):
        parse_online_users("ann")

    typing = parse_typing({"from": "ann", "isTyping": True})
    assert typing.from_user == "ann"
    assert typing.is_typing is True


def test_send_message_request_body_uses_wire_names(make_message):
    body = SendMessageRequest(message="hey", reply_to="m0").to_body()
    assert body == {"message": "hey", "replyTo": "m0"}

    response = SendMessageResponse.model_validate({"newMessage": make_message("m2", "me", "ann")})
    assert response.new_message.to_model().receiver_id == "ann"
