"""
Dependency wiring for the chat backend.
"""

from __future__ import annotations

import logging

import firebase_admin
from firebase_admin import credentials, firestore

from backend.auth import AuthClient, FirebaseAuthClient, InMemoryAuthClient
from backend.config import Settings, get_settings
from backend.db import DbClient, FirestoreDbClient, InMemoryDbClient
from backend.facade import ChatBackend

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_auth_client: AuthClient | None = None
_chat_backend: ChatBackend | None = None


def _use_in_memory(settings: Settings) -> bool:
    return settings.use_in_memory_backends or not settings.firebase_project_id


def get_firebase_app(settings: Settings | None = None) -> firebase_admin.App:
    """
    Return the default Firebase Admin app, initializing it on first use.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    settings = settings or get_settings()
    cred = None
    if settings.firebase_credentials_path:
        cred = credentials.Certificate(settings.firebase_credentials_path)
    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    logger.info(f"Initializing Firebase app for project {settings.firebase_project_id}")
    return firebase_admin.initialize_app(cred, options)


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so in-memory state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if _use_in_memory(settings):
        _db_client = InMemoryDbClient()
    else:
        app = get_firebase_app(settings)
        _db_client = FirestoreDbClient(firestore.client(app))
    return _db_client


def get_auth_client() -> AuthClient:
    global _auth_client
    if _auth_client:
        return _auth_client

    settings = get_settings()
    if _use_in_memory(settings):
        _auth_client = InMemoryAuthClient()
    else:
        _auth_client = FirebaseAuthClient(
            settings.firebase_web_api_key,
            emulator_host=settings.firebase_auth_emulator_host,
            timeout=settings.identity_toolkit_timeout,
            app=get_firebase_app(settings),
        )
    return _auth_client


def get_chat_backend() -> ChatBackend:
    global _chat_backend
    if _chat_backend:
        return _chat_backend

    _chat_backend = ChatBackend(db=get_db_client(), auth_client=get_auth_client())
    return _chat_backend
