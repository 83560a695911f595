"""
Authentication against Firebase Auth, plus an in-memory test implementation.

Email/password sign-up and sign-in go through the Identity Toolkit REST API
(the same endpoints the web SDK calls). ID token verification goes through
the Firebase Admin SDK.
"""

from __future__ import annotations

import logging
import secrets
import threading
import uuid
from typing import Callable, Dict, List, Optional, Protocol

import requests
from firebase_admin import auth as firebase_auth

from backend.subscriptions import Subscription
from shared.types import AuthUser

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
REQUEST_TIMEOUT = 30  # seconds
MIN_PASSWORD_LENGTH = 6

# Identity Toolkit error codes mapped to the messages shown to users.
AUTH_ERROR_MESSAGES = {
    "EMAIL_EXISTS": "The email address is already in use by another account.",
    "EMAIL_NOT_FOUND": "There is no account for this email address.",
    "INVALID_PASSWORD": "The password is invalid.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "INVALID_EMAIL": "The email address is badly formatted.",
    "MISSING_EMAIL": "An email address is required.",
    "MISSING_PASSWORD": "A password is required.",
    "WEAK_PASSWORD": (
        f"Password should be at least {MIN_PASSWORD_LENGTH} characters."
    ),
    "USER_DISABLED": "The user account has been disabled.",
    "OPERATION_NOT_ALLOWED": "Password sign-in is disabled for this project.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Try again later.",
}

AuthCallback = Callable[[Optional[AuthUser]], None]


class AuthError(Exception):
    """Raised when the authentication service rejects a request."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


def auth_error_from_code(code: str, detail: Optional[str] = None) -> AuthError:
    message = AUTH_ERROR_MESSAGES.get(code) or detail or code
    return AuthError(message, code=code)


class AuthClient(Protocol):
    """Operations the chat backend needs from the authentication service."""

    def sign_up(self, email: str, password: str) -> AuthUser:
        ...

    def sign_in(self, email: str, password: str) -> AuthUser:
        ...

    def verify_id_token(self, id_token: str) -> str:
        """Returns the uid the token was issued to."""
        ...


class FirebaseAuthClient:
    """
    Firebase Auth client.

    Password flows need the project's web API key. When
    `emulator_host` is set (FIREBASE_AUTH_EMULATOR_HOST) requests go to the
    local Auth emulator instead of production.
    """

    def __init__(
        self,
        api_key: Optional[str],
        *,
        emulator_host: Optional[str] = None,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        app=None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.app = app
        if emulator_host:
            self.base_url = f"http://{emulator_host}/identitytoolkit.googleapis.com/v1"
        else:
            self.base_url = IDENTITY_TOOLKIT_URL
        self._session = session or requests.Session()

    def _post(self, endpoint: str, payload: dict) -> dict:
        if not self.api_key:
            raise AuthError(
                "Password authentication requires FIREBASE_WEB_API_KEY to be set."
            )
        response = self._session.post(
            f"{self.base_url}/accounts:{endpoint}",
            params={"key": self.api_key},
            json=payload,
            timeout=self.timeout,
        )
        if response.status_code >= 400:
            raise _error_from_response(response)
        return response.json()

    def sign_up(self, email: str, password: str) -> AuthUser:
        data = self._post(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return _auth_user_from_payload(data)

    def sign_in(self, email: str, password: str) -> AuthUser:
        data = self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return _auth_user_from_payload(data)

    def verify_id_token(self, id_token: str) -> str:
        try:
            decoded = firebase_auth.verify_id_token(id_token, app=self.app)
        except (ValueError, firebase_auth.InvalidIdTokenError) as e:
            raise AuthError(f"Invalid ID token: {e}", code="INVALID_ID_TOKEN")
        return decoded["uid"]


def _error_from_response(response: requests.Response) -> AuthError:
    """
    Builds an AuthError from an Identity Toolkit error payload.

    Error messages look like `EMAIL_EXISTS` or
    `WEAK_PASSWORD : Password should be at least 6 characters`.
    """
    try:
        raw = response.json().get("error", {}).get("message", "")
    except ValueError:
        raw = ""
    if not raw:
        return AuthError(
            f"Authentication request failed with status {response.status_code}."
        )
    code, _, detail = raw.partition(" : ")
    return auth_error_from_code(code.strip(), detail.strip() or None)


def _auth_user_from_payload(data: dict) -> AuthUser:
    return AuthUser(
        uid=data["localId"],
        email=data.get("email", ""),
        id_token=data.get("idToken", ""),
        refresh_token=data.get("refreshToken", ""),
        expires_in=int(data.get("expiresIn") or 0),
    )


class InMemoryAuthClient:
    """Test double for the authentication service."""

    def __init__(self):
        self.accounts: Dict[str, tuple[str, str]] = {}  # email -> (uid, password)
        self.tokens: Dict[str, str] = {}  # id token -> uid

    def reset(self) -> None:
        self.accounts.clear()
        self.tokens.clear()

    def _issue(self, uid: str, email: str) -> AuthUser:
        id_token = secrets.token_urlsafe(24)
        self.tokens[id_token] = uid
        return AuthUser(
            uid=uid,
            email=email,
            id_token=id_token,
            refresh_token=secrets.token_urlsafe(24),
            expires_in=3600,
        )

    def sign_up(self, email: str, password: str) -> AuthUser:
        if not email or "@" not in email:
            raise auth_error_from_code("INVALID_EMAIL")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise auth_error_from_code("WEAK_PASSWORD")
        key = email.lower()
        if key in self.accounts:
            raise auth_error_from_code("EMAIL_EXISTS")
        uid = uuid.uuid4().hex[:28]
        self.accounts[key] = (uid, password)
        return self._issue(uid, email)

    def sign_in(self, email: str, password: str) -> AuthUser:
        account = self.accounts.get((email or "").lower())
        if account is None or account[1] != password:
            raise auth_error_from_code("INVALID_LOGIN_CREDENTIALS")
        return self._issue(account[0], email)

    def verify_id_token(self, id_token: str) -> str:
        uid = self.tokens.get(id_token)
        if uid is None:
            raise AuthError("Invalid ID token.", code="INVALID_ID_TOKEN")
        return uid


class AuthSession:
    """
    Holds the signed-in user for this process and notifies auth listeners.

    Listeners receive the current user (or None) immediately on
    registration and again after every sign-in or sign-out.
    """

    def __init__(self):
        self._user: Optional[AuthUser] = None
        self._listeners: List[AuthCallback] = []
        self._lock = threading.Lock()

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._user

    def set_user(self, user: Optional[AuthUser]) -> None:
        with self._lock:
            self._user = user
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(user)
            except Exception as e:
                logger.error(f"Auth listener failed: {e}")

    def add_listener(self, callback: AuthCallback) -> Subscription:
        with self._lock:
            self._listeners.append(callback)
            user = self._user
        try:
            callback(user)
        except Exception as e:
            logger.error(f"Auth listener failed: {e}")
        return Subscription(lambda: self._remove_listener(callback))

    def _remove_listener(self, callback: AuthCallback) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)
