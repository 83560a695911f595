"""
Document store access for Firestore and an in-memory test implementation.
"""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol, Type, TypeVar

from dacite import Config, from_dict
from google.api_core import exceptions
from google.cloud.firestore_v1 import (
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    FieldFilter,
    Query,
)

from backend.subscriptions import Subscription
from shared.firebase_constants import (
    CHATS_COLLECTION,
    MAX_BATCH_WRITES,
    MESSAGES_COLLECTION,
    USERS_COLLECTION,
)
from shared.json_utils import convert_keys
from shared.types import Chat, Message, User

T = TypeVar("T")

MessagesCallback = Callable[[List[Message]], None]
ChatsCallback = Callable[[List[Chat]], None]


class DbClient(Protocol):
    """Interface for the document operations the chat backend needs."""

    def create_user(self, user_id: str, name: str, email: str) -> None:
        ...

    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def find_users_by_email(self, email: str) -> List[User]:
        ...

    def find_users_by_email_range(self, start: str, end: str) -> List[User]:
        ...

    def add_contact_id(self, user_id: str, contact_id: str) -> None:
        ...

    def remove_contact_id(self, user_id: str, contact_id: str) -> None:
        ...

    def create_chat(self, participants: List[str]) -> str:
        ...

    def get_chat(self, chat_id: str) -> Optional[Chat]:
        ...

    def find_chats_with_participant(self, user_id: str) -> List[Chat]:
        ...

    def add_message(self, chat_id: str, sender_id: str, text: str) -> str:
        ...

    def list_messages(self, chat_id: str) -> List[Message]:
        ...

    def mark_messages_read(self, chat_id: str, reader_id: str) -> int:
        ...

    def watch_messages(self, chat_id: str, callback: MessagesCallback) -> Subscription:
        ...

    def watch_chats_with_participant(
        self, user_id: str, callback: ChatsCallback
    ) -> Subscription:
        ...


def _from_snapshot(data_class: Type[T], snapshot) -> T:
    data = convert_keys(snapshot.to_dict() or {}, "camel_to_snake")
    data["id"] = snapshot.id
    return from_dict(data_class=data_class, data=data, config=Config(check_types=False))


class FirestoreDbClient:
    """
    Firestore-backed implementation.

    Accepts a `google.cloud.firestore.Client`, normally the one returned by
    `firebase_admin.firestore.client()`.
    """

    def __init__(self, client):
        self.client = client

    def _users(self):
        return self.client.collection(USERS_COLLECTION)

    def _chats(self):
        return self.client.collection(CHATS_COLLECTION)

    def _messages(self):
        return self.client.collection(MESSAGES_COLLECTION)

    def _messages_query(self, chat_id: str):
        return (
            self._messages()
            .where(filter=FieldFilter("chatId", "==", chat_id))
            .order_by("timestamp", direction=Query.ASCENDING)
        )

    def _participant_query(self, user_id: str):
        return self._chats().where(
            filter=FieldFilter("participants", "array_contains", user_id)
        )

    def create_user(self, user_id: str, name: str, email: str) -> None:
        self._users().document(user_id).set(
            {
                "name": name,
                "email": email,
                "createdAt": SERVER_TIMESTAMP,
                "contacts": [],
                "chats": [],
            }
        )

    def get_user(self, user_id: str) -> Optional[User]:
        snapshot = self._users().document(user_id).get()
        if not snapshot.exists:
            return None
        return _from_snapshot(User, snapshot)

    def find_users_by_email(self, email: str) -> List[User]:
        query = self._users().where(filter=FieldFilter("email", "==", email))
        return [_from_snapshot(User, snapshot) for snapshot in query.stream()]

    def find_users_by_email_range(self, start: str, end: str) -> List[User]:
        query = (
            self._users()
            .where(filter=FieldFilter("email", ">=", start))
            .where(filter=FieldFilter("email", "<=", end))
        )
        return [_from_snapshot(User, snapshot) for snapshot in query.stream()]

    def add_contact_id(self, user_id: str, contact_id: str) -> None:
        self._users().document(user_id).update({"contacts": ArrayUnion([contact_id])})

    def remove_contact_id(self, user_id: str, contact_id: str) -> None:
        self._users().document(user_id).update(
            {"contacts": ArrayRemove([contact_id])}
        )

    def create_chat(self, participants: List[str]) -> str:
        """
        Creates the chat document and links it into every participant's
        `chats` list in a single write batch.
        """
        chat_ref = self._chats().document()
        batch = self.client.batch()
        batch.set(
            chat_ref,
            {
                "participants": list(participants),
                "createdAt": SERVER_TIMESTAMP,
                "lastMessage": None,
                "lastMessageTime": None,
            },
        )
        for user_id in participants:
            batch.update(
                self._users().document(user_id), {"chats": ArrayUnion([chat_ref.id])}
            )
        batch.commit()
        return chat_ref.id

    def get_chat(self, chat_id: str) -> Optional[Chat]:
        snapshot = self._chats().document(chat_id).get()
        if not snapshot.exists:
            return None
        return _from_snapshot(Chat, snapshot)

    def find_chats_with_participant(self, user_id: str) -> List[Chat]:
        return [
            _from_snapshot(Chat, snapshot)
            for snapshot in self._participant_query(user_id).stream()
        ]

    def add_message(self, chat_id: str, sender_id: str, text: str) -> str:
        """
        Adds the message and stamps it onto the chat as its last message.

        Both writes share a batch; a missing chat fails the whole batch.
        """
        message_ref = self._messages().document()
        batch = self.client.batch()
        batch.set(
            message_ref,
            {
                "chatId": chat_id,
                "senderId": sender_id,
                "text": text,
                "timestamp": SERVER_TIMESTAMP,
                "read": False,
            },
        )
        batch.update(
            self._chats().document(chat_id),
            {"lastMessage": text, "lastMessageTime": SERVER_TIMESTAMP},
        )
        batch.commit()
        return message_ref.id

    def list_messages(self, chat_id: str) -> List[Message]:
        return [
            _from_snapshot(Message, snapshot)
            for snapshot in self._messages_query(chat_id).stream()
        ]

    def mark_messages_read(self, chat_id: str, reader_id: str) -> int:
        query = (
            self._messages()
            .where(filter=FieldFilter("chatId", "==", chat_id))
            .where(filter=FieldFilter("read", "==", False))
        )
        batch = self.client.batch()
        pending = 0
        updated = 0
        for snapshot in query.stream():
            if snapshot.get("senderId") == reader_id:
                continue
            batch.update(snapshot.reference, {"read": True})
            pending += 1
            updated += 1
            if pending == MAX_BATCH_WRITES:
                batch.commit()
                batch = self.client.batch()
                pending = 0
        if pending:
            batch.commit()
        return updated

    def watch_messages(self, chat_id: str, callback: MessagesCallback) -> Subscription:
        def on_snapshot(snapshots, changes, read_time):
            callback([_from_snapshot(Message, snapshot) for snapshot in snapshots])

        watch = self._messages_query(chat_id).on_snapshot(on_snapshot)
        return Subscription(watch.unsubscribe)

    def watch_chats_with_participant(
        self, user_id: str, callback: ChatsCallback
    ) -> Subscription:
        def on_snapshot(snapshots, changes, read_time):
            callback([_from_snapshot(Chat, snapshot) for snapshot in snapshots])

        watch = self._participant_query(user_id).on_snapshot(on_snapshot)
        return Subscription(watch.unsubscribe)


class InMemoryDbClient:
    """
    Simple in-memory document store for development and tests.

    Listeners are invoked synchronously: once on registration, then after
    every write that changes their result set.
    """

    def __init__(self):
        self.users: Dict[str, User] = {}
        self.chats: Dict[str, Chat] = {}
        self.messages: Dict[str, Message] = {}
        self._message_listeners: Dict[str, List[MessagesCallback]] = {}
        self._chat_listeners: Dict[str, List[ChatsCallback]] = {}

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex[:20]

    def reset(self) -> None:
        """Clear all stored data and listeners (useful in tests)."""
        self.users.clear()
        self.chats.clear()
        self.messages.clear()
        self._message_listeners.clear()
        self._chat_listeners.clear()

    def _require_user(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise exceptions.NotFound(
                f"No document to update: {USERS_COLLECTION}/{user_id}"
            )
        return user

    def create_user(self, user_id: str, name: str, email: str) -> None:
        self.users[user_id] = User(
            id=user_id, name=name, email=email, created_at=self._now()
        )

    def get_user(self, user_id: str) -> Optional[User]:
        user = self.users.get(user_id)
        return copy.deepcopy(user) if user else None

    def find_users_by_email(self, email: str) -> List[User]:
        return [copy.deepcopy(u) for u in self.users.values() if u.email == email]

    def find_users_by_email_range(self, start: str, end: str) -> List[User]:
        matches = [u for u in self.users.values() if start <= u.email <= end]
        matches.sort(key=lambda u: u.email)
        return [copy.deepcopy(u) for u in matches]

    def add_contact_id(self, user_id: str, contact_id: str) -> None:
        user = self._require_user(user_id)
        if contact_id not in user.contacts:
            user.contacts.append(contact_id)

    def remove_contact_id(self, user_id: str, contact_id: str) -> None:
        user = self._require_user(user_id)
        user.contacts = [c for c in user.contacts if c != contact_id]

    def create_chat(self, participants: List[str]) -> str:
        users = [self._require_user(user_id) for user_id in participants]
        chat_id = self._new_id()
        self.chats[chat_id] = Chat(
            id=chat_id, participants=list(participants), created_at=self._now()
        )
        for user in users:
            if chat_id not in user.chats:
                user.chats.append(chat_id)
        self._notify_chats(participants)
        return chat_id

    def get_chat(self, chat_id: str) -> Optional[Chat]:
        chat = self.chats.get(chat_id)
        return copy.deepcopy(chat) if chat else None

    def find_chats_with_participant(self, user_id: str) -> List[Chat]:
        return [
            copy.deepcopy(chat)
            for chat in self.chats.values()
            if user_id in chat.participants
        ]

    def add_message(self, chat_id: str, sender_id: str, text: str) -> str:
        chat = self.chats.get(chat_id)
        if chat is None:
            raise exceptions.NotFound(
                f"No document to update: {CHATS_COLLECTION}/{chat_id}"
            )
        now = self._now()
        message_id = self._new_id()
        self.messages[message_id] = Message(
            id=message_id,
            chat_id=chat_id,
            sender_id=sender_id,
            text=text,
            timestamp=now,
        )
        chat.last_message = text
        chat.last_message_time = now
        self._notify_messages(chat_id)
        self._notify_chats(chat.participants)
        return message_id

    def list_messages(self, chat_id: str) -> List[Message]:
        # sorted() is stable, so equal timestamps keep insertion order.
        messages = [m for m in self.messages.values() if m.chat_id == chat_id]
        messages.sort(key=lambda m: m.timestamp)
        return [copy.deepcopy(m) for m in messages]

    def mark_messages_read(self, chat_id: str, reader_id: str) -> int:
        updated = 0
        for message in self.messages.values():
            if (
                message.chat_id == chat_id
                and not message.read
                and message.sender_id != reader_id
            ):
                message.read = True
                updated += 1
        if updated:
            self._notify_messages(chat_id)
        return updated

    def watch_messages(self, chat_id: str, callback: MessagesCallback) -> Subscription:
        listeners = self._message_listeners.setdefault(chat_id, [])
        listeners.append(callback)
        callback(self.list_messages(chat_id))
        return Subscription(lambda: _discard(listeners, callback))

    def watch_chats_with_participant(
        self, user_id: str, callback: ChatsCallback
    ) -> Subscription:
        listeners = self._chat_listeners.setdefault(user_id, [])
        listeners.append(callback)
        callback(self.find_chats_with_participant(user_id))
        return Subscription(lambda: _discard(listeners, callback))

    def _notify_messages(self, chat_id: str) -> None:
        for callback in list(self._message_listeners.get(chat_id, [])):
            callback(self.list_messages(chat_id))

    def _notify_chats(self, participants: List[str]) -> None:
        for user_id in participants:
            for callback in list(self._chat_listeners.get(user_id, [])):
                callback(self.find_chats_with_participant(user_id))


def _discard(listeners: list, callback) -> None:
    if callback in listeners:
        listeners.remove(callback)
