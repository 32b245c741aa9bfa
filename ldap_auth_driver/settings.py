from __future__ import annotations

import re
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# RFC 4512 attribute description: a name (keystring) or a numeric OID, plus options.
_ATTR_RE = re.compile(r"^(?:[A-Za-z][A-Za-z0-9-]*|\d+(?:\.\d+)*)(?:;[A-Za-z0-9-]+)*$")


class LdapSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Directory connection
    host: str = Field(..., alias="LDAP_HOST")
    version: int = Field(3, alias="LDAP_VERSION")
    username: str = Field("", alias="LDAP_USERNAME")
    password: str = Field("", alias="LDAP_PASSWORD")
    rdn: str = Field("", alias="LDAP_RDN")
    connect_timeout: float = Field(5.0, alias="LDAP_CONNECT_TIMEOUT", gt=0)
    timeout: float = Field(10.0, alias="LDAP_TIMEOUT", gt=0)  # receive + search time limit

    # Search
    basedn: str = Field(..., alias="LDAP_BASEDN")
    filter: str = Field("", alias="LDAP_FILTER")
    login_attribute: str = Field("uid", alias="LDAP_LOGIN_ATTRIBUTE")
    user_id_attribute: str = Field("uid", alias="LDAP_USER_ID_ATTRIBUTE")
    ldap_field: str = Field("", alias="LDAP_LDAP_FIELD")  # linking attribute, defaults to user_id_attribute
    user_attributes: dict[str, str] = Field(default_factory=dict, alias="LDAP_USER_ATTRIBUTES")

    # Local store linking
    use_db: bool = Field(False, alias="LDAP_USE_DB")
    db_table: str = Field("users", alias="LDAP_DB_TABLE")
    db_field: str = Field("username", alias="LDAP_DB_FIELD")
    eloquent: bool = Field(False, alias="LDAP_ELOQUENT")
    remember_token_column: str = Field("remember_token", alias="LDAP_REMEMBER_TOKEN_COLUMN")
    database_url: str = Field("sqlite:///data/app.db", alias="LDAP_DATABASE_URL")

    # HTTP surface
    secret_key: str = Field("", alias="APP_SECRET_KEY")
    session_cookie: str = "ldap_auth_session"
    remember_cookie: str = "ldap_auth_remember"
    session_max_age_seconds: int = 8 * 60 * 60  # 8 hours
    remember_max_age_seconds: int = 30 * 24 * 60 * 60
    cookie_secure: bool = Field(False, alias="APP_COOKIE_SECURE")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @field_validator("host", "basedn", "username", "rdn", "filter", "db_table", "db_field")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("host", "basedn")
    @classmethod
    def _required(cls, v: str) -> str:
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("version")
    @classmethod
    def _validate_version(cls, v: int) -> int:
        if v not in (2, 3):
            raise ValueError("LDAP protocol version must be 2 or 3")
        return v

    @field_validator("login_attribute", "user_id_attribute", "ldap_field")
    @classmethod
    def _validate_attribute(cls, v: str) -> str:
        s = (v or "").strip()
        if s and not _ATTR_RE.fullmatch(s):
            raise ValueError(f"invalid LDAP attribute name: {s!r}")
        return s

    @field_validator("user_attributes")
    @classmethod
    def _validate_projection(cls, v: dict[str, str]) -> dict[str, str]:
        out: dict[str, str] = {}
        for attr, field in (v or {}).items():
            attr = (attr or "").strip()
            field = (field or "").strip()
            if not _ATTR_RE.fullmatch(attr):
                raise ValueError(f"invalid LDAP attribute name in user_attributes: {attr!r}")
            if not field:
                raise ValueError(f"user_attributes[{attr!r}] maps to an empty field name")
            out[attr] = field
        return out

    @model_validator(mode="after")
    def _validate_combination(self) -> "LdapSettings":
        service = [bool(self.username), bool(self.password), bool(self.rdn)]
        if any(service) and not all(service):
            raise ValueError("service account needs username, password and rdn together (or none for anonymous bind)")
        if (self.use_db or self.eloquent) and not (self.db_table and self.db_field):
            raise ValueError("db_table and db_field are required when use_db or eloquent is enabled")
        return self

    @property
    def uses_local_store(self) -> bool:
        return bool(self.use_db or self.eloquent)

    @property
    def linking_attribute(self) -> str:
        return self.ldap_field or self.user_id_attribute


@lru_cache(maxsize=1)
def get_settings() -> LdapSettings:
    return LdapSettings()
