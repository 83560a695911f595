"""
Chat backend facade: accounts, contacts, chats and messages.

Every operation delegates persistence, querying, push and timestamping to
the document store (`DbClient`) and authentication to an `AuthClient`.

Mutations never raise for backend failures; they return a result object with
`success` and `error`. Reads return None (single entity) or an empty list
when data is missing, and let backend errors propagate.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from backend.auth import AuthClient, AuthError, AuthSession
from backend.db import DbClient
from backend.subscriptions import Subscription
from shared.api import (
    AuthResult,
    CreateChatResult,
    MarkReadResult,
    OperationResult,
    SendMessageResult,
)
from shared.constants import MAX_MESSAGE_LENGTH, MAX_NAME_LENGTH
from shared.firebase_constants import PREFIX_SEARCH_SENTINEL
from shared.types import AuthUser, Chat, Message, User

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def sort_chats_by_recent_message(chats: List[Chat]) -> List[Chat]:
    """Most recent message first; chats without messages go last."""
    return sorted(
        chats,
        key=lambda chat: (
            chat.last_message_time is not None,
            chat.last_message_time or _EPOCH,
        ),
        reverse=True,
    )


class ChatBackend:
    def __init__(
        self,
        db: DbClient,
        auth_client: AuthClient,
        session: Optional[AuthSession] = None,
    ):
        self.db = db
        self.auth_client = auth_client
        self.session = session or AuthSession()

    # Accounts

    def sign_up(
        self, name: str, email: str, password: str, *, remember: bool = True
    ) -> AuthResult:
        """
        Creates the account, then its profile document in `users`.

        Args:
            name: Display name stored on the profile.
            email: Account email.
            password: Account password.
            remember: Make the new user the session user. HTTP handlers pass
                False since they serve many users from one process.
        """
        name = (name or "").strip()
        if not name:
            return AuthResult(success=False, error="Name must not be empty.")
        if len(name) > MAX_NAME_LENGTH:
            return AuthResult(success=False, error="Name exceeds max length.")
        try:
            user = self.auth_client.sign_up(email, password)
            self.db.create_user(user.uid, name=name, email=email)
        except Exception as e:
            logger.error(f"Sign up failed for {email}: {e}")
            return AuthResult(success=False, error=str(e))

        if remember:
            self.session.set_user(user)
        return AuthResult(success=True, user=user)

    def sign_in(self, email: str, password: str, *, remember: bool = True) -> AuthResult:
        try:
            user = self.auth_client.sign_in(email, password)
        except Exception as e:
            logger.info(f"Sign in failed for {email}: {e}")
            return AuthResult(success=False, error=str(e))

        if remember:
            self.session.set_user(user)
        return AuthResult(success=True, user=user)

    def logout(self) -> None:
        self.session.set_user(None)

    def on_auth_change(
        self, callback: Callable[[Optional[AuthUser]], None]
    ) -> Subscription:
        return self.session.add_listener(callback)

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self.session.current_user

    def verify_id_token(self, id_token: str) -> str:
        """Returns the uid for a client ID token. Raises AuthError if invalid."""
        if not id_token:
            raise AuthError("Missing ID token.", code="INVALID_ID_TOKEN")
        return self.auth_client.verify_id_token(id_token)

    # Users

    def get_user(self, user_id: str) -> Optional[User]:
        if not user_id:
            return None
        return self.db.get_user(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        users = self.db.find_users_by_email(email)
        return users[0] if users else None

    def search_users(self, search_term: str) -> List[User]:
        """Users whose email starts with `search_term`."""
        if not search_term:
            return []
        return self.db.find_users_by_email_range(
            search_term, search_term + PREFIX_SEARCH_SENTINEL
        )

    # Contacts

    def add_contact(self, user_id: str, contact_id: str) -> OperationResult:
        if user_id == contact_id:
            return OperationResult(
                success=False, error="Cannot add yourself as a contact."
            )
        try:
            if self.db.get_user(contact_id) is None:
                return OperationResult(success=False, error="Contact not found.")
            self.db.add_contact_id(user_id, contact_id)
        except Exception as e:
            logger.error(f"Failed to add contact {contact_id} for {user_id}: {e}")
            return OperationResult(success=False, error=str(e))
        return OperationResult(success=True)

    def remove_contact(self, user_id: str, contact_id: str) -> OperationResult:
        try:
            self.db.remove_contact_id(user_id, contact_id)
        except Exception as e:
            logger.error(f"Failed to remove contact {contact_id} for {user_id}: {e}")
            return OperationResult(success=False, error=str(e))
        return OperationResult(success=True)

    def get_contacts(self, user_id: str) -> List[User]:
        user = self.get_user(user_id)
        if not user or not user.contacts:
            return []

        contacts = []
        for contact_id in user.contacts:
            contact = self.db.get_user(contact_id)
            if contact:
                contacts.append(contact)
        return contacts

    # Chats

    def find_existing_chat(self, user_id: str, contact_id: str) -> Optional[Chat]:
        for chat in self.db.find_chats_with_participant(user_id):
            if contact_id in chat.participants:
                return chat
        return None

    def create_chat(self, user_id: str, contact_id: str) -> CreateChatResult:
        """
        Returns the existing chat between the two users, or creates one and
        links it into both users' chat lists.
        """
        if not user_id or not contact_id:
            return CreateChatResult(success=False, error="Both user ids are required.")
        if user_id == contact_id:
            return CreateChatResult(
                success=False, error="Cannot start a chat with yourself."
            )
        try:
            existing = self.find_existing_chat(user_id, contact_id)
            if existing:
                return CreateChatResult(success=True, chat_id=existing.id)
            chat_id = self.db.create_chat([user_id, contact_id])
        except Exception as e:
            logger.error(f"Failed to create chat {user_id} <-> {contact_id}: {e}")
            return CreateChatResult(success=False, error=str(e))

        logger.info(f"Created chat {chat_id} for {user_id} and {contact_id}")
        return CreateChatResult(success=True, chat_id=chat_id)

    def get_chat(self, chat_id: str) -> Optional[Chat]:
        if not chat_id:
            return None
        return self.db.get_chat(chat_id)

    def get_chats(self, user_id: str) -> List[Chat]:
        user = self.get_user(user_id)
        if not user or not user.chats:
            return []

        chats = []
        for chat_id in user.chats:
            chat = self.db.get_chat(chat_id)
            if chat:
                chats.append(chat)
        return self._with_other_users(chats, user_id)

    def _with_other_users(self, chats: List[Chat], user_id: str) -> List[Chat]:
        users: Dict[str, Optional[User]] = {}
        for chat in chats:
            other_id = next((p for p in chat.participants if p != user_id), None)
            if other_id is None:
                continue
            if other_id not in users:
                users[other_id] = self.db.get_user(other_id)
            chat.other_user = users[other_id]
        return sort_chats_by_recent_message(chats)

    # Messages

    def send_message(self, chat_id: str, sender_id: str, text: str) -> SendMessageResult:
        if not text or not text.strip():
            return SendMessageResult(success=False, error="Message must not be empty.")
        if len(text) > MAX_MESSAGE_LENGTH:
            return SendMessageResult(success=False, error="Message exceeds max length.")
        try:
            message_id = self.db.add_message(chat_id, sender_id, text)
        except Exception as e:
            logger.error(f"Failed to send message to chat {chat_id}: {e}")
            return SendMessageResult(success=False, error=str(e))
        return SendMessageResult(success=True, message_id=message_id)

    def get_messages(self, chat_id: str) -> List[Message]:
        if not chat_id:
            return []
        return self.db.list_messages(chat_id)

    def mark_messages_read(self, chat_id: str, reader_id: str) -> MarkReadResult:
        try:
            updated = self.db.mark_messages_read(chat_id, reader_id)
        except Exception as e:
            logger.error(f"Failed to mark messages read in chat {chat_id}: {e}")
            return MarkReadResult(success=False, error=str(e))
        return MarkReadResult(success=True, updated=updated)

    # Real-time listeners

    def subscribe_to_messages(
        self, chat_id: str, callback: Callable[[List[Message]], None]
    ) -> Subscription:
        """
        Calls `callback` with the chat's messages, oldest first, whenever they
        change. Returns a handle that stops the listener.
        """

        def on_messages(messages: List[Message]) -> None:
            try:
                callback(messages)
            except Exception:
                logger.exception(f"Message listener failed for chat {chat_id}")

        return self.db.watch_messages(chat_id, on_messages)

    def subscribe_to_chats(
        self, user_id: str, callback: Callable[[List[Chat]], None]
    ) -> Subscription:
        """
        Calls `callback` with the user's chats, as `get_chats` returns them,
        whenever a chat the user takes part in is created or updated.
        """

        def on_chats(chats: List[Chat]) -> None:
            try:
                callback(self._with_other_users(chats, user_id))
            except Exception:
                logger.exception(f"Chat listener failed for user {user_id}")

        return self.db.watch_chats_with_participant(user_id, on_chats)
