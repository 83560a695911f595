import unittest
from datetime import datetime, timedelta, timezone

from backend.auth import InMemoryAuthClient
from backend.db import InMemoryDbClient
from backend.facade import ChatBackend, sort_chats_by_recent_message
from shared.types import Chat


class ChatBackendTestCase(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.auth = InMemoryAuthClient()
        self.backend = ChatBackend(db=self.db, auth_client=self.auth)

    def _sign_up(self, name, email, password="secret123"):
        result = self.backend.sign_up(name, email, password)
        self.assertTrue(result.success, result.error)
        return result.user.uid


class AccountTests(ChatBackendTestCase):
    def test_sign_up_creates_profile(self):
        result = self.backend.sign_up("Alice", "alice@example.com", "secret123")

        self.assertTrue(result.success)
        self.assertIsNone(result.error)
        profile = self.backend.get_user(result.user.uid)
        self.assertEqual(profile.name, "Alice")
        self.assertEqual(profile.email, "alice@example.com")
        self.assertEqual(profile.contacts, [])
        self.assertEqual(profile.chats, [])
        self.assertIsNotNone(profile.created_at)
        self.assertEqual(self.backend.current_user, result.user)

    def test_sign_up_duplicate_email_fails(self):
        self._sign_up("Alice", "alice@example.com")

        result = self.backend.sign_up("Other", "alice@example.com", "secret123")

        self.assertFalse(result.success)
        self.assertIsNone(result.user)
        self.assertIn("already in use", result.error)

    def test_sign_up_weak_password_fails(self):
        result = self.backend.sign_up("Alice", "alice@example.com", "123")
        self.assertFalse(result.success)
        self.assertIn("at least 6", result.error)
        self.assertEqual(self.db.users, {})

    def test_sign_up_requires_name(self):
        result = self.backend.sign_up("   ", "alice@example.com", "secret123")
        self.assertFalse(result.success)
        self.assertEqual(self.auth.accounts, {})

    def test_sign_in(self):
        uid = self._sign_up("Alice", "alice@example.com")
        self.backend.logout()

        result = self.backend.sign_in("alice@example.com", "secret123")

        self.assertTrue(result.success)
        self.assertEqual(result.user.uid, uid)
        self.assertEqual(self.backend.current_user.uid, uid)

    def test_sign_in_wrong_password(self):
        self._sign_up("Alice", "alice@example.com")
        result = self.backend.sign_in("alice@example.com", "wrong-password")
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Invalid email or password.")

    def test_sign_in_without_remember_leaves_session(self):
        self._sign_up("Alice", "alice@example.com")
        self.backend.logout()

        result = self.backend.sign_in("alice@example.com", "secret123", remember=False)

        self.assertTrue(result.success)
        self.assertIsNone(self.backend.current_user)

    def test_on_auth_change(self):
        seen = []
        subscription = self.backend.on_auth_change(seen.append)
        self.assertEqual(seen, [None])

        uid = self._sign_up("Alice", "alice@example.com")
        self.assertEqual(seen[-1].uid, uid)

        self.backend.logout()
        self.assertIsNone(seen[-1])
        self.assertEqual(len(seen), 3)

        subscription.unsubscribe()
        self.backend.sign_in("alice@example.com", "secret123")
        self.assertEqual(len(seen), 3)
        self.assertFalse(subscription.active)

    def test_verify_id_token(self):
        result = self.backend.sign_up("Alice", "alice@example.com", "secret123")
        self.assertEqual(
            self.backend.verify_id_token(result.user.id_token), result.user.uid
        )


class UserLookupTests(ChatBackendTestCase):
    def setUp(self):
        super().setUp()
        self.alice = self._sign_up("Alice", "alice@example.com")
        self.alan = self._sign_up("Alan", "alan@example.com")
        self.bob = self._sign_up("Bob", "bob@example.com")

    def test_get_user_missing(self):
        self.assertIsNone(self.backend.get_user("nobody"))

    def test_get_user_by_email(self):
        user = self.backend.get_user_by_email("bob@example.com")
        self.assertEqual(user.id, self.bob)
        self.assertIsNone(self.backend.get_user_by_email("carol@example.com"))

    def test_search_users_matches_prefix(self):
        users = self.backend.search_users("al")
        self.assertEqual(
            sorted(u.id for u in users), sorted([self.alice, self.alan])
        )
        self.assertEqual(self.backend.search_users("bob@"), [
            self.backend.get_user(self.bob)
        ])
        self.assertEqual(self.backend.search_users("z"), [])

    def test_search_users_empty_term(self):
        self.assertEqual(self.backend.search_users(""), [])


class ContactTests(ChatBackendTestCase):
    def setUp(self):
        super().setUp()
        self.alice = self._sign_up("Alice", "alice@example.com")
        self.bob = self._sign_up("Bob", "bob@example.com")

    def test_add_contact(self):
        result = self.backend.add_contact(self.alice, self.bob)

        self.assertTrue(result.success)
        self.assertEqual(self.backend.get_user(self.alice).contacts, [self.bob])
        # Linking is one-directional.
        self.assertEqual(self.backend.get_user(self.bob).contacts, [])

    def test_add_contact_is_idempotent(self):
        self.backend.add_contact(self.alice, self.bob)
        self.backend.add_contact(self.alice, self.bob)
        self.assertEqual(self.backend.get_user(self.alice).contacts, [self.bob])

    def test_add_self_fails(self):
        result = self.backend.add_contact(self.alice, self.alice)
        self.assertFalse(result.success)
        self.assertEqual(self.backend.get_user(self.alice).contacts, [])

    def test_add_unknown_contact_fails(self):
        result = self.backend.add_contact(self.alice, "nobody")
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Contact not found.")

    def test_add_contact_for_missing_user_fails(self):
        result = self.backend.add_contact("nobody", self.bob)
        self.assertFalse(result.success)
        self.assertIn("nobody", result.error)

    def test_remove_contact(self):
        self.backend.add_contact(self.alice, self.bob)
        result = self.backend.remove_contact(self.alice, self.bob)
        self.assertTrue(result.success)
        self.assertEqual(self.backend.get_user(self.alice).contacts, [])

    def test_get_contacts_skips_missing_users(self):
        self.backend.add_contact(self.alice, self.bob)
        self.db.users[self.alice].contacts.append("deleted-user")

        contacts = self.backend.get_contacts(self.alice)

        self.assertEqual([c.id for c in contacts], [self.bob])

    def test_get_contacts_missing_user(self):
        self.assertEqual(self.backend.get_contacts("nobody"), [])


class ChatTests(ChatBackendTestCase):
    def setUp(self):
        super().setUp()
        self.alice = self._sign_up("Alice", "alice@example.com")
        self.bob = self._sign_up("Bob", "bob@example.com")
        self.carol = self._sign_up("Carol", "carol@example.com")

    def test_create_chat_links_both_users(self):
        result = self.backend.create_chat(self.alice, self.bob)

        self.assertTrue(result.success)
        chat = self.backend.get_chat(result.chat_id)
        self.assertEqual(chat.participants, [self.alice, self.bob])
        self.assertIsNone(chat.last_message)
        self.assertIsNone(chat.last_message_time)
        self.assertEqual(self.backend.get_user(self.alice).chats, [result.chat_id])
        self.assertEqual(self.backend.get_user(self.bob).chats, [result.chat_id])

    def test_create_chat_returns_existing_chat(self):
        first = self.backend.create_chat(self.alice, self.bob)
        again = self.backend.create_chat(self.alice, self.bob)
        reversed_order = self.backend.create_chat(self.bob, self.alice)

        self.assertEqual(again.chat_id, first.chat_id)
        self.assertEqual(reversed_order.chat_id, first.chat_id)
        self.assertEqual(len(self.db.chats), 1)

    def test_create_chat_with_self_fails(self):
        result = self.backend.create_chat(self.alice, self.alice)
        self.assertFalse(result.success)
        self.assertIsNone(result.chat_id)

    def test_create_chat_with_missing_user_writes_nothing(self):
        result = self.backend.create_chat(self.alice, "nobody")
        self.assertFalse(result.success)
        self.assertEqual(self.db.chats, {})
        self.assertEqual(self.backend.get_user(self.alice).chats, [])

    def test_get_chats_attaches_other_user_and_sorts(self):
        with_bob = self.backend.create_chat(self.alice, self.bob).chat_id
        with_carol = self.backend.create_chat(self.alice, self.carol).chat_id
        silent = self.backend.create_chat(self.bob, self.carol).chat_id
        self.backend.send_message(with_bob, self.alice, "hi bob")
        self.backend.send_message(with_carol, self.alice, "hi carol")
        self.db.chats[with_bob].last_message_time += timedelta(seconds=5)

        chats = self.backend.get_chats(self.alice)

        self.assertEqual([c.id for c in chats], [with_bob, with_carol])
        self.assertEqual(chats[0].other_user.id, self.bob)
        self.assertEqual(chats[1].other_user.id, self.carol)
        self.assertEqual(chats[0].last_message, "hi bob")

        bob_chats = self.backend.get_chats(self.bob)
        self.assertEqual([c.id for c in bob_chats], [with_bob, silent])

    def test_get_chats_skips_missing_chats(self):
        chat_id = self.backend.create_chat(self.alice, self.bob).chat_id
        self.db.users[self.alice].chats.append("deleted-chat")

        chats = self.backend.get_chats(self.alice)

        self.assertEqual([c.id for c in chats], [chat_id])

    def test_get_chats_missing_user(self):
        self.assertEqual(self.backend.get_chats("nobody"), [])

    def test_sort_chats_puts_chats_without_messages_last(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        chats = [
            Chat(id="empty", participants=["a", "b"]),
            Chat(id="old", participants=["a", "c"], last_message_time=now),
            Chat(
                id="new",
                participants=["a", "d"],
                last_message_time=now + timedelta(minutes=1),
            ),
        ]
        ordered = sort_chats_by_recent_message(chats)
        self.assertEqual([c.id for c in ordered], ["new", "old", "empty"])


class MessageTests(ChatBackendTestCase):
    def setUp(self):
        super().setUp()
        self.alice = self._sign_up("Alice", "alice@example.com")
        self.bob = self._sign_up("Bob", "bob@example.com")
        self.chat_id = self.backend.create_chat(self.alice, self.bob).chat_id

    def test_send_message(self):
        result = self.backend.send_message(self.chat_id, self.alice, "hello")

        self.assertTrue(result.success)
        messages = self.backend.get_messages(self.chat_id)
        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0].id, result.message_id)
        self.assertEqual(messages[0].sender_id, self.alice)
        self.assertEqual(messages[0].text, "hello")
        self.assertFalse(messages[0].read)

        chat = self.backend.get_chat(self.chat_id)
        self.assertEqual(chat.last_message, "hello")
        self.assertEqual(chat.last_message_time, messages[0].timestamp)

    def test_send_empty_message_fails(self):
        result = self.backend.send_message(self.chat_id, self.alice, "   ")
        self.assertFalse(result.success)
        self.assertEqual(self.backend.get_messages(self.chat_id), [])

    def test_send_to_missing_chat_fails(self):
        result = self.backend.send_message("missing", self.alice, "hello")
        self.assertFalse(result.success)
        self.assertEqual(self.db.messages, {})

    def test_messages_are_ordered_oldest_first(self):
        for text in ["one", "two", "three"]:
            self.backend.send_message(self.chat_id, self.alice, text)
        texts = [m.text for m in self.backend.get_messages(self.chat_id)]
        self.assertEqual(texts, ["one", "two", "three"])

    def test_mark_messages_read(self):
        self.backend.send_message(self.chat_id, self.alice, "one")
        self.backend.send_message(self.chat_id, self.alice, "two")
        self.backend.send_message(self.chat_id, self.bob, "reply")

        result = self.backend.mark_messages_read(self.chat_id, self.bob)

        self.assertTrue(result.success)
        self.assertEqual(result.updated, 2)
        read_flags = {m.text: m.read for m in self.backend.get_messages(self.chat_id)}
        self.assertEqual(read_flags, {"one": True, "two": True, "reply": False})
        self.assertEqual(
            self.backend.mark_messages_read(self.chat_id, self.bob).updated, 0
        )

    def test_subscribe_to_messages(self):
        received = []
        subscription = self.backend.subscribe_to_messages(
            self.chat_id, lambda messages: received.append([m.text for m in messages])
        )
        self.backend.send_message(self.chat_id, self.alice, "one")
        self.backend.send_message(self.chat_id, self.bob, "two")

        self.assertEqual(received, [[], ["one"], ["one", "two"]])

        subscription()
        self.backend.send_message(self.chat_id, self.alice, "three")
        self.assertEqual(len(received), 3)

    def test_subscribe_to_messages_survives_callback_errors(self):
        calls = []

        def callback(messages):
            calls.append(len(messages))
            raise RuntimeError("boom")

        self.backend.subscribe_to_messages(self.chat_id, callback)
        result = self.backend.send_message(self.chat_id, self.alice, "one")

        self.assertTrue(result.success)
        self.assertEqual(calls, [0, 1])

    def test_subscribe_to_chats(self):
        carol = self._sign_up("Carol", "carol@example.com")
        received = []
        subscription = self.backend.subscribe_to_chats(
            self.alice,
            lambda chats: received.append(
                [(c.id, c.other_user.name if c.other_user else None) for c in chats]
            ),
        )
        self.assertEqual(received, [[(self.chat_id, "Bob")]])

        carol_chat = self.backend.create_chat(self.alice, carol).chat_id
        self.assertEqual(len(received), 2)
        self.assertEqual(
            set(received[-1]), {(self.chat_id, "Bob"), (carol_chat, "Carol")}
        )

        self.backend.send_message(carol_chat, carol, "hey")
        self.assertEqual(received[-1][0], (carol_chat, "Carol"))

        subscription.unsubscribe()
        self.backend.send_message(self.chat_id, self.bob, "ignored")
        self.assertEqual(len(received), 3)


if __name__ == "__main__":
    unittest.main()
