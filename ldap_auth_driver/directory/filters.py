"""Structured LDAP search filters (RFC 4515).

Filters are built as small immutable trees and rendered to strings only at the
edge, escaping every literal value on the way out. The configured base filter
is parsed into the same tree, so its literals are re-escaped as well and the
identifier clause is merged structurally instead of by splicing strings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from ..exceptions import FilterSyntaxError
from .utils import escape_ldap_filter_value

_ATTR_RE = re.compile(r"^(?:[A-Za-z][A-Za-z0-9-]*|\d+(?:\.\d+)*)(?:;[A-Za-z0-9-]+)*$")
_HEX = "0123456789abcdefABCDEF"


class Filter:
    def render(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class Equality(Filter):
    attribute: str
    value: str

    def render(self) -> str:
        return f"({self.attribute}={escape_ldap_filter_value(self.value)})"


@dataclass(frozen=True)
class Comparison(Filter):
    attribute: str
    operator: str  # "~=", ">=" or "<="
    value: str

    def render(self) -> str:
        return f"({self.attribute}{self.operator}{escape_ldap_filter_value(self.value)})"


@dataclass(frozen=True)
class Present(Filter):
    attribute: str

    def render(self) -> str:
        return f"({self.attribute}=*)"


@dataclass(frozen=True)
class Substring(Filter):
    attribute: str
    initial: str = ""
    any: Tuple[str, ...] = ()
    final: str = ""

    def render(self) -> str:
        parts = [escape_ldap_filter_value(self.initial)]
        parts.extend(escape_ldap_filter_value(x) for x in self.any)
        parts.append(escape_ldap_filter_value(self.final))
        return f"({self.attribute}={'*'.join(parts)})"


@dataclass(frozen=True)
class And(Filter):
    children: Tuple[Filter, ...]

    def render(self) -> str:
        return "(&" + "".join(c.render() for c in self.children) + ")"


@dataclass(frozen=True)
class Or(Filter):
    children: Tuple[Filter, ...]

    def render(self) -> str:
        return "(|" + "".join(c.render() for c in self.children) + ")"


@dataclass(frozen=True)
class Not(Filter):
    child: Filter

    def render(self) -> str:
        return f"(!{self.child.render()})"


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def error(self, message: str) -> FilterSyntaxError:
        return FilterSyntaxError(message, self.text, self.pos)

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def expect(self, ch: str) -> None:
        if self.peek() != ch:
            raise self.error(f"expected {ch!r}")
        self.pos += 1

    def parse(self) -> Filter:
        node = self.filter()
        if self.pos != len(self.text):
            raise self.error("unexpected trailing characters")
        return node

    def filter(self) -> Filter:
        self.expect("(")
        ch = self.peek()
        if ch == "&":
            self.pos += 1
            node: Filter = And(self.filter_list())
        elif ch == "|":
            self.pos += 1
            node = Or(self.filter_list())
        elif ch == "!":
            self.pos += 1
            node = Not(self.filter())
        else:
            node = self.item()
        self.expect(")")
        return node

    def filter_list(self) -> Tuple[Filter, ...]:
        children = []
        while self.peek() == "(":
            children.append(self.filter())
        if not children:
            raise self.error("empty filter list")
        return tuple(children)

    def item(self) -> Filter:
        start = self.pos
        while self.peek() and self.peek() not in "=~<>()":
            self.pos += 1
        attribute = self.text[start:self.pos].strip()
        if not _ATTR_RE.fullmatch(attribute):
            if ":" in attribute:
                raise self.error("extensible match filters are not supported")
            raise self.error(f"invalid attribute description {attribute!r}")

        rest = self.text[self.pos:self.pos + 2]
        if rest in ("~=", ">=", "<="):
            self.pos += 2
            segments = self.value(allow_star=False)
            return Comparison(attribute, rest, segments[0])
        self.expect("=")
        segments = self.value(allow_star=True)
        if len(segments) == 1:
            return Equality(attribute, segments[0])
        if segments == ["", ""]:
            return Present(attribute)
        middle = segments[1:-1]
        if any(not s for s in middle):
            raise self.error("empty substring component")
        return Substring(attribute, segments[0], tuple(middle), segments[-1])

    def value(self, allow_star: bool) -> list[str]:
        segments: list[str] = []
        buf = bytearray()
        while True:
            ch = self.peek()
            if not ch:
                raise self.error("unterminated filter value")
            if ch == ")":
                break
            if ch == "(":
                raise self.error("unescaped '(' in value")
            if ch == "*":
                if not allow_star:
                    raise self.error("unescaped '*' in value")
                segments.append(self._decode(buf))
                buf = bytearray()
                self.pos += 1
                continue
            if ch == "\\":
                pair = self.text[self.pos + 1:self.pos + 3]
                if len(pair) != 2 or any(c not in _HEX for c in pair):
                    raise self.error("invalid escape sequence")
                buf.append(int(pair, 16))
                self.pos += 3
                continue
            buf.extend(ch.encode("utf-8"))
            self.pos += 1
        segments.append(self._decode(buf))
        return segments

    def _decode(self, buf: bytearray) -> str:
        try:
            return bytes(buf).decode("utf-8")
        except UnicodeDecodeError:
            raise self.error("escaped value is not valid UTF-8") from None


def parse_filter(text: str) -> Optional[Filter]:
    """Parse a filter string into a tree; blank input means "no filter".

    A bare item without the outer parentheses (``objectClass=person``) is
    accepted for convenience.
    """
    s = (text or "").strip()
    if not s:
        return None
    if not s.startswith("("):
        s = f"({s})"
    return _Parser(s).parse()


def with_identifier(base: Optional[Filter], attribute: str, value: str) -> Filter:
    """Combine the base filter with an ``attribute=value`` clause.

    A conjunctive base gets the clause as its first member; anything else is
    wrapped in a new conjunction together with the clause.
    """
    clause = Equality(attribute, value)
    if base is None:
        return clause
    if isinstance(base, And):
        return And((clause,) + base.children)
    return And((clause, base))
