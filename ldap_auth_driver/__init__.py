"""LDAP / Active Directory authentication provider.

Public surface:
    - LdapSettings
    - CredentialResolver
    - SessionGuard
    - TransientUser, LinkedUser, Credentials
"""

from .settings import LdapSettings
from .resolver import CredentialResolver
from .guard import AuthResult, SessionGuard
from .users import Credentials, LinkedUser, TransientUser

__all__ = [
    "LdapSettings",
    "CredentialResolver",
    "AuthResult",
    "SessionGuard",
    "Credentials",
    "LinkedUser",
    "TransientUser",
]
