# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class User:
    """A user profile document in the `users` collection."""

    id: str
    name: str
    email: str
    created_at: Any = None  # Firestore timestamp
    contacts: List[str] = field(default_factory=list)
    chats: List[str] = field(default_factory=list)


@dataclass
class Chat:
    """A two-person conversation in the `chats` collection."""

    id: str
    participants: List[str]
    created_at: Any = None  # Firestore timestamp
    last_message: Optional[str] = None
    last_message_time: Any = None  # Firestore timestamp, None until first message
    # Populated on read for the requesting user; never written to Firestore.
    other_user: Optional[User] = None


@dataclass
class Message:
    """A single chat message in the `messages` collection."""

    id: str
    chat_id: str
    sender_id: str
    text: str
    timestamp: Any = None  # Firestore timestamp
    read: bool = False


@dataclass
class AuthUser:
    """The signed-in account, as returned by the authentication service."""

    uid: str
    email: str
    id_token: str = ""
    refresh_token: str = ""
    expires_in: int = 0
