"""
Pydantic schemas for the chat backend HTTP API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from shared.constants import (
    MAX_EMAIL_LENGTH,
    MAX_ID_LENGTH,
    MAX_MESSAGE_LENGTH,
    MAX_NAME_LENGTH,
)


class SignUpRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    email: str = Field(..., max_length=MAX_EMAIL_LENGTH)
    password: str


class SignInRequest(BaseModel):
    email: str = Field(..., max_length=MAX_EMAIL_LENGTH)
    password: str


class AuthResponse(BaseModel):
    uid: str
    email: str
    id_token: str
    refresh_token: str
    expires_in: int


class UserModel(BaseModel):
    id: str
    name: str
    email: str
    created_at: Optional[datetime] = None
    contacts: list[str] = []
    chats: list[str] = []


class UsersResponse(BaseModel):
    users: list[UserModel]


class ContactRequest(BaseModel):
    contact_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH)


class StatusResponse(BaseModel):
    status: Literal["ok"]


class ChatModel(BaseModel):
    id: str
    participants: list[str]
    created_at: Optional[datetime] = None
    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    other_user: Optional[UserModel] = None


class ChatsResponse(BaseModel):
    chats: list[ChatModel]


class CreateChatRequest(BaseModel):
    contact_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH)


class CreateChatResponse(BaseModel):
    chat_id: str


class MessageModel(BaseModel):
    id: str
    chat_id: str
    sender_id: str
    text: str
    timestamp: Optional[datetime] = None
    read: bool = False


class MessagesResponse(BaseModel):
    messages: list[MessageModel]


class SendMessageRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)


class SendMessageResponse(BaseModel):
    message_id: str


class MarkReadResponse(BaseModel):
    updated: int
