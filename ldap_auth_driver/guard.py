from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Any

from .resolver import CredentialResolver
from .users import ApplicationUser, Credentials, LinkedUser

log = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid login or password."


@dataclass
class AuthResult:
    """Outcome of a login attempt."""
    success: bool
    user: ApplicationUser | None = None
    remember_token: str = ""
    error_message: str = ""


class SessionGuard:
    """Generic guard driving the resolver's provider operations.

    Owns remember-token issuance; storing the session itself is left to the
    HTTP layer (signed cookies).
    """

    def __init__(self, resolver: CredentialResolver) -> None:
        self.resolver = resolver

    def attempt(self, identifier: str, password: str, remember: bool = False) -> AuthResult:
        identifier = (identifier or "").strip()
        if not identifier or not password:
            return AuthResult(success=False, error_message=INVALID_CREDENTIALS)

        credentials = Credentials(identifier=identifier, password=password)
        user = self.resolver.resolve_by_credentials(credentials)
        if user is None:
            log.info("Login denied for %s: no unique directory entry", identifier)
            return AuthResult(success=False, error_message=INVALID_CREDENTIALS)

        if not self.resolver.validate_credentials(user, credentials):
            log.info("Login denied for %s: directory bind failed", identifier)
            return AuthResult(success=False, error_message=INVALID_CREDENTIALS)

        token = ""
        if remember and isinstance(user, LinkedUser) and self.resolver.supports_remember:
            token = self.issue_remember_token(user)

        log.info("Login ok for %s (id=%s)", identifier, user.id)
        return AuthResult(success=True, user=user, remember_token=token)

    def issue_remember_token(self, user: ApplicationUser) -> str:
        token = secrets.token_urlsafe(40)
        self.resolver.update_remember_token(user, token)
        return token

    def auth_identifier(self, user: ApplicationUser) -> Any:
        return self.resolver.auth_identifier(user)

    def user_from_session(self, user_id: Any) -> ApplicationUser | None:
        if user_id is None or user_id == "":
            return None
        return self.resolver.resolve_by_id(user_id)

    def user_from_recaller(self, user_id: Any, token: str) -> ApplicationUser | None:
        if user_id is None or user_id == "" or not token:
            return None
        return self.resolver.resolve_by_token(user_id, token)

    def logout(self, user: ApplicationUser | None) -> None:
        """Rotate the remember token so an old recaller cookie stops working."""
        if isinstance(user, LinkedUser) and self.resolver.supports_remember:
            self.issue_remember_token(user)
