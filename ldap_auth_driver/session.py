from __future__ import annotations

from typing import Any, Dict

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer


class SessionSigner:
    """Signs session and remember-me cookie payloads."""

    def __init__(self, secret_key: str) -> None:
        if not secret_key:
            raise ValueError("secret_key is required to sign session cookies")
        self._session = URLSafeTimedSerializer(secret_key, salt="ldap-auth-session")
        self._recaller = URLSafeTimedSerializer(secret_key, salt="ldap-auth-remember")

    def create_session(self, data: Dict[str, Any]) -> str:
        return self._session.dumps(data)

    def read_session(self, token: str, max_age_seconds: int) -> Dict[str, Any] | None:
        try:
            data = self._session.loads(token, max_age=max_age_seconds)
        except (BadSignature, SignatureExpired):
            return None
        if not isinstance(data, dict) or "id" not in data:
            return None
        return data

    def create_recaller(self, user_id: Any, token: str) -> str:
        return self._recaller.dumps({"id": user_id, "token": token})

    def read_recaller(self, value: str, max_age_seconds: int) -> tuple[Any, str] | None:
        try:
            data = self._recaller.loads(value, max_age=max_age_seconds)
        except (BadSignature, SignatureExpired):
            return None
        if not isinstance(data, dict) or not data.get("token"):
            return None
        return data.get("id"), str(data["token"])
