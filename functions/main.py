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

# Cloud functions for the contacts chat backend.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.
#
# Sign-up and sign-in happen in the web client through Firebase Auth; every
# callable here acts as the signed-in caller (req.auth.uid).

# Standard library imports
from dataclasses import asdict

# Third-party library imports
from firebase_admin import initialize_app
from firebase_functions import https_fn, logger, options

# Local application imports
from backend.dependencies import get_chat_backend
from backend.facade import ChatBackend
from shared.constants import MAX_ID_LENGTH, MAX_MESSAGE_LENGTH, MAX_SEARCH_TERM_LENGTH
from shared.json_utils import convert_keys, to_jsonable

initialize_app()


def _require_uid(req: https_fn.CallableRequest) -> str:
    """Returns the caller's uid, or raises if the request is unauthenticated."""
    if req.auth is None:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.UNAUTHENTICATED,
            "Must be signed in.",
        )
    return req.auth.uid


def _require_id(req: https_fn.CallableRequest, name: str) -> str:
    value = req.data.get(name)
    if not value or not isinstance(value, str):
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            f"Must specify {name} parameter.",
        )
    if len(value) > MAX_ID_LENGTH:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            f"Incorrect {name} length.",
        )
    return value


def _require_participant(backend: ChatBackend, chat_id: str, uid: str) -> None:
    chat = backend.get_chat(chat_id)
    if not chat:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.NOT_FOUND,
            "The requested chat was not found.",
        )
    if uid not in chat.participants:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.PERMISSION_DENIED,
            "Not a participant in this chat.",
        )


def _to_json(value) -> dict:
    """Dataclass -> camelCase dict with timestamps as ISO strings."""
    return to_jsonable(convert_keys(asdict(value), "snake_to_camel"))


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def search_users(req: https_fn.CallableRequest) -> dict:
    """
    Finds users whose email starts with the given search term.

    Args:
        req (https_fn.CallableRequest): The request, containing search_term.

    Returns:
        A dictionary with the matching users under `users`.
    """
    _require_uid(req)
    search_term = req.data.get("search_term")

    if not search_term or not isinstance(search_term, str):
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Must specify search_term parameter.",
        )
    if len(search_term) > MAX_SEARCH_TERM_LENGTH:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Search term exceeds max length.",
        )

    users = get_chat_backend().search_users(search_term)
    return {"users": [_to_json(user) for user in users]}


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def get_contacts(req: https_fn.CallableRequest) -> dict:
    uid = _require_uid(req)
    contacts = get_chat_backend().get_contacts(uid)
    return {"contacts": [_to_json(contact) for contact in contacts]}


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def add_contact(req: https_fn.CallableRequest) -> dict:
    """
    Adds contact_id to the caller's contacts.

    Returns:
        A dictionary representation of the OperationResult object.
    """
    uid = _require_uid(req)
    contact_id = _require_id(req, "contact_id")

    result = get_chat_backend().add_contact(uid, contact_id)
    if not result.success:
        logger.warn(f"add_contact failed for {uid}: {result.error}")
    return _to_json(result)


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def remove_contact(req: https_fn.CallableRequest) -> dict:
    uid = _require_uid(req)
    contact_id = _require_id(req, "contact_id")

    result = get_chat_backend().remove_contact(uid, contact_id)
    return _to_json(result)


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def create_chat(req: https_fn.CallableRequest) -> dict:
    """
    Returns the caller's chat with contact_id, creating it if needed.

    Returns:
        A dictionary representation of the CreateChatResult object.
    """
    uid = _require_uid(req)
    contact_id = _require_id(req, "contact_id")

    result = get_chat_backend().create_chat(uid, contact_id)
    if not result.success:
        logger.warn(f"create_chat failed for {uid}: {result.error}")
    return _to_json(result)


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def get_chats(req: https_fn.CallableRequest) -> dict:
    """
    Returns the caller's chats, most recent message first, each with the
    other participant's profile under `otherUser`.
    """
    uid = _require_uid(req)
    chats = get_chat_backend().get_chats(uid)
    return {"chats": [_to_json(chat) for chat in chats]}


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def send_message(req: https_fn.CallableRequest) -> dict:
    """
    Sends a message from the caller to a chat they take part in.

    Args:
        req (https_fn.CallableRequest): The request, containing chat_id and text.

    Returns:
        A dictionary representation of the SendMessageResult object.
    """
    uid = _require_uid(req)
    chat_id = _require_id(req, "chat_id")
    text = req.data.get("text")

    if not text or not isinstance(text, str) or not text.strip():
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "text must not be empty.",
        )
    if len(text) > MAX_MESSAGE_LENGTH:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Message exceeds max length.",
        )

    backend = get_chat_backend()
    _require_participant(backend, chat_id, uid)
    result = backend.send_message(chat_id, uid, text)
    if not result.success:
        logger.error(f"send_message failed for chat {chat_id}: {result.error}")
    return _to_json(result)


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def mark_messages_read(req: https_fn.CallableRequest) -> dict:
    uid = _require_uid(req)
    chat_id = _require_id(req, "chat_id")

    backend = get_chat_backend()
    _require_participant(backend, chat_id, uid)
    return _to_json(backend.mark_messages_read(chat_id, uid))
