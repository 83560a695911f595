"""
HTTP routes for the chat backend API.

Routes other than sign-up and sign-in require an
`Authorization: Bearer <Firebase ID token>` header and act as that user.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from backend.auth import AuthError
from backend.dependencies import get_chat_backend
from backend.facade import ChatBackend
from backend.schemas import (
    AuthResponse,
    ChatModel,
    ChatsResponse,
    ContactRequest,
    CreateChatRequest,
    CreateChatResponse,
    MarkReadResponse,
    MessageModel,
    MessagesResponse,
    SendMessageRequest,
    SendMessageResponse,
    SignInRequest,
    SignUpRequest,
    StatusResponse,
    UserModel,
    UsersResponse,
)
from shared.constants import MAX_SEARCH_TERM_LENGTH
from shared.types import Chat

logger = logging.getLogger(__name__)

router = APIRouter()


def get_current_uid(
    authorization: str | None = Header(None),
    backend: ChatBackend = Depends(get_chat_backend),
) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        return backend.verify_id_token(authorization.removeprefix("Bearer ").strip())
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))


def _require_participant(backend: ChatBackend, chat_id: str, uid: str) -> Chat:
    chat = backend.get_chat(chat_id)
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    if uid not in chat.participants:
        raise HTTPException(status_code=403, detail="Not a participant in this chat")
    return chat


@router.post("/sign_up", response_model=AuthResponse, status_code=201)
def sign_up(payload: SignUpRequest, backend: ChatBackend = Depends(get_chat_backend)):
    result = backend.sign_up(
        payload.name, payload.email, payload.password, remember=False
    )
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return AuthResponse(**asdict(result.user))


@router.post("/sign_in", response_model=AuthResponse)
def sign_in(payload: SignInRequest, backend: ChatBackend = Depends(get_chat_backend)):
    result = backend.sign_in(payload.email, payload.password, remember=False)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return AuthResponse(**asdict(result.user))


@router.get("/users/search", response_model=UsersResponse)
def search_users(
    term: str = Query(..., min_length=1, max_length=MAX_SEARCH_TERM_LENGTH),
    uid: str = Depends(get_current_uid),
    backend: ChatBackend = Depends(get_chat_backend),
):
    users = backend.search_users(term)
    return UsersResponse(users=[UserModel(**asdict(u)) for u in users])


@router.get("/users/by-email", response_model=UserModel)
def get_user_by_email(
    email: str = Query(..., min_length=1),
    uid: str = Depends(get_current_uid),
    backend: ChatBackend = Depends(get_chat_backend),
):
    user = backend.get_user_by_email(email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return UserModel(**asdict(user))


@router.get("/users/{user_id}", response_model=UserModel)
def get_user(
    user_id: str,
    uid: str = Depends(get_current_uid),
    backend: ChatBackend = Depends(get_chat_backend),
):
    user = backend.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return UserModel(**asdict(user))


@router.get("/contacts", response_model=UsersResponse)
def get_contacts(
    uid: str = Depends(get_current_uid),
    backend: ChatBackend = Depends(get_chat_backend),
):
    contacts = backend.get_contacts(uid)
    return UsersResponse(users=[UserModel(**asdict(c)) for c in contacts])


@router.post("/contacts", response_model=StatusResponse)
def add_contact(
    payload: ContactRequest,
    uid: str = Depends(get_current_uid),
    backend: ChatBackend = Depends(get_chat_backend),
):
    result = backend.add_contact(uid, payload.contact_id)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return StatusResponse(status="ok")


@router.delete("/contacts/{contact_id}", response_model=StatusResponse)
def remove_contact(
    contact_id: str,
    uid: str = Depends(get_current_uid),
    backend: ChatBackend = Depends(get_chat_backend),
):
    result = backend.remove_contact(uid, contact_id)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return StatusResponse(status="ok")


@router.get("/chats", response_model=ChatsResponse)
def get_chats(
    uid: str = Depends(get_current_uid),
    backend: ChatBackend = Depends(get_chat_backend),
):
    chats = backend.get_chats(uid)
    return ChatsResponse(chats=[ChatModel(**asdict(c)) for c in chats])


@router.post("/chats", response_model=CreateChatResponse)
def create_chat(
    payload: CreateChatRequest,
    uid: str = Depends(get_current_uid),
    backend: ChatBackend = Depends(get_chat_backend),
):
    result = backend.create_chat(uid, payload.contact_id)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return CreateChatResponse(chat_id=result.chat_id)


@router.get("/chats/{chat_id}/messages", response_model=MessagesResponse)
def get_messages(
    chat_id: str,
    uid: str = Depends(get_current_uid),
    backend: ChatBackend = Depends(get_chat_backend),
):
    _require_participant(backend, chat_id, uid)
    messages = backend.get_messages(chat_id)
    return MessagesResponse(messages=[MessageModel(**asdict(m)) for m in messages])


@router.post("/chats/{chat_id}/messages", response_model=SendMessageResponse)
def send_message(
    chat_id: str,
    payload: SendMessageRequest,
    uid: str = Depends(get_current_uid),
    backend: ChatBackend = Depends(get_chat_backend),
):
    _require_participant(backend, chat_id, uid)
    result = backend.send_message(chat_id, uid, payload.text)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return SendMessageResponse(message_id=result.message_id)


@router.post("/chats/{chat_id}/read", response_model=MarkReadResponse)
def mark_messages_read(
    chat_id: str,
    uid: str = Depends(get_current_uid),
    backend: ChatBackend = Depends(get_chat_backend),
):
    _require_participant(backend, chat_id, uid)
    result = backend.mark_messages_read(chat_id, uid)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return MarkReadResponse(updated=result.updated)
