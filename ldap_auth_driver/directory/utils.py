from __future__ import annotations

from ldap3.utils.dn import escape_rdn


def escape_ldap_filter_value(value: str) -> str:
    """RFC 4515 escaping for LDAP filter values."""
    out: list[str] = []
    for ch in value:
        if ch == "\\":
            out.append("\\5c")
        elif ch == "*":
            out.append("\\2a")
        elif ch == "(":
            out.append("\\28")
        elif ch == ")":
            out.append("\\29")
        elif ch == "\x00":
            out.append("\\00")
        else:
            out.append(ch)
    return "".join(out)


def build_server_uri(host: str) -> str:
    """`ldap://host` unless the configured host already carries a scheme."""
    host = (host or "").strip()
    if not host:
        return ""
    lower = host.lower()
    if lower.startswith("ldap://") or lower.startswith("ldaps://"):
        return host
    return f"ldap://{host}"


def service_bind_dn(username: str, rdn: str) -> str:
    """DN of the service account: cn=<username>,<rdn> (empty means anonymous)."""
    u = (username or "").strip()
    r = (rdn or "").strip().strip(",")
    if not u or not r:
        return ""
    return f"cn={escape_rdn(u)},{r}"
