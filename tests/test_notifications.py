"""
Notification Relay Tests

Token storage on the user document, outbound send, inbound dispatch and
navigation intents (in-memory relay).

Run:
----
    pytest tests/test_notifications.py -v
"""

import asyncio

import pytest

from feedsync.errors import NotFound
from feedsync.models import NavigationIntent, PushMessage
from feedsync.services import navigation_intent, notifications


def _seed_user(engine, user_id="bob"):
    asyncio.run(engine.create_profile(user_id, f"{user_id}@example.com", user_id.capitalize()))


class TestTokens:
    def test_register_and_remove(self, engine, store, relay):
        _seed_user(engine)
        asyncio.run(relay.register_token("bob", "tok-1"))
        assert asyncio.run(store.get_document("users/bob")).get("fcmToken") == "tok-1"
        asyncio.run(relay.remove_token("bob"))
        assert "fcmToken" not in asyncio.run(store.get_document("users/bob")).data

    def test_register_for_missing_user(self, relay):
        with pytest.raises(NotFound):
            asyncio.run(relay.register_token("ghost", "tok"))


class TestSend:
    def test_send_without_token(self, engine, relay):
        _seed_user(engine)
        assert asyncio.run(relay.send("bob", "t", "b")) is False
        assert asyncio.run(relay.send("ghost", "t", "b")) is False
        assert relay.sent == []

    def test_send_with_token(self, engine, relay):
        _seed_user(engine)
        asyncio.run(relay.register_token("bob", "tok-1"))
        assert asyncio.run(relay.send("bob", "New comment", "hi", {"postId": "p1"})) is True
        token, message = relay.sent[0]
        assert token == "tok-1"
        assert message.title == "New comment"
        assert message.data == {"postId": "p1"}

    def test_relay_requires_a_transport(self, store):
        with pytest.raises(TypeError):
            notifications._RelayBase(store)


class TestDispatch:
    def test_post_id_becomes_comments_intent(self):
        intent = navigation_intent(PushMessage(title="t", data={"postId": "p1"}))
        assert intent == NavigationIntent(screen="comments", post_id="p1")

    def test_no_post_id_no_intent(self):
        assert navigation_intent(PushMessage(title="t")) is None

    def test_handlers_by_delivery_mode(self, relay):
        foreground, background = [], []
        dispose = relay.on_foreground_message(foreground.append)
        relay.on_background_message(background.append)
        message = PushMessage(title="hi", data={"postId": "p1"})

        assert relay.dispatch(message).post_id == "p1"
        relay.dispatch(message, foreground=False)
        dispose()
        relay.dispatch(message)

        assert foreground == [message]
        assert background == [message]

    def test_initial_notification_returned_once(self, relay):
        assert relay.get_initial_notification() is None
        message = PushMessage(title="opened", data={"postId": "p9"})
        relay.set_initial_notification(message)
        assert relay.get_initial_notification() == message
        assert relay.get_initial_notification() is None
