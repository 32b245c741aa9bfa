from __future__ import annotations


class LdapAuthError(Exception):
    """Base class for errors raised while setting up the LDAP provider."""


class ConfigurationError(LdapAuthError):
    pass


class FilterSyntaxError(ConfigurationError):
    """Malformed LDAP filter string (RFC 4515)."""

    def __init__(self, message: str, text: str = "", position: int = -1) -> None:
        if text and position >= 0:
            message = f"{message} at position {position} in {text!r}"
        super().__init__(message)
        self.text = text
        self.position = position


class DirectoryConnectionError(LdapAuthError):
    pass


class DirectoryBindError(LdapAuthError):
    pass
