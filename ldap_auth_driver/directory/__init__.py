"""LDAP directory access: ldap3 client, entries and search filters."""

from .models import DirectoryEntry
from .client import DirectoryClient
from .filters import Filter, parse_filter, with_identifier

__all__ = ["DirectoryEntry", "DirectoryClient", "Filter", "parse_filter", "with_identifier"]
