# identity.py
"""Email/password accounts backed by Firebase Authentication.

Passwords are checked through the Identity Toolkit REST endpoint (the admin
SDK cannot verify them); accounts are created with the admin SDK.
"""
import logging

import requests
from firebase_admin import auth, exceptions

import config
from errors import AuthError, DuplicateError

logger = logging.getLogger(__name__)

SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"

# Identity Toolkit error codes -> user-facing messages
_SIGN_IN_ERRORS = {
    "EMAIL_NOT_FOUND": "Invalid email or password.",
    "INVALID_PASSWORD": "Invalid email or password.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "USER_DISABLED": "This account has been disabled.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
}


class IdentityClient:
    def __init__(self, api_key=None, session=None, timeout=None):
        self.api_key = api_key if api_key is not None else config.FIREBASE_API_KEY
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else config.IDENTITY_TIMEOUT

    def sign_in(self, email: str, password: str) -> str:
        """Return the uid for valid credentials, raise AuthError otherwise."""
        if not self.api_key:
            raise AuthError("Sign-in is not configured", status_code=503)
        try:
            resp = self.session.post(
                SIGN_IN_URL,
                params={"key": self.api_key},
                json={"email": email, "password": password, "returnSecureToken": True},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Identity provider unreachable: %s", exc)
            raise AuthError("Authentication service unavailable", status_code=503) from exc

        if resp.status_code != 200:
            try:
                code = resp.json().get("error", {}).get("message", "")
            except ValueError:
                code = ""
            # codes may carry a suffix, e.g. "TOO_MANY_ATTEMPTS_TRY_LATER : ..."
            code = code.split(" ")[0]
            logger.warning("Sign-in refused for %s: %s", email, code or resp.status_code)
            raise AuthError(_SIGN_IN_ERRORS.get(code, "Invalid email or password."))
        return resp.json()["localId"]

    def create_user(self, email: str, password: str) -> str:
        try:
            record = auth.create_user(email=email, password=password,
                                      email_verified=False, disabled=False)
        except auth.EmailAlreadyExistsError as exc:
            raise DuplicateError("An account with this email address already exists.") from exc
        except (ValueError, exceptions.FirebaseError) as exc:
            raise AuthError(f"Failed to create user: {exc}", status_code=400) from exc
        logger.info("Created auth user uid=%s", record.uid)
        return record.uid
