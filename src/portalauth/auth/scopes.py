"""Scope sets granted to account credentials and app tokens."""

from __future__ import annotations

from typing import Iterable, Iterator, Union


TOKEN_MANAGEMENT_READ = "developer.private_app.temporary_token.read"
TOKEN_MANAGEMENT_WRITE = "developer.private_app.temporary_token.write"


class ScopeSet:
    """Immutable set of scope identifiers.

    Input order and duplicates are irrelevant: ``ScopeSet(["a", "b", "a"])``
    equals ``ScopeSet(["b", "a"])``.
    """

    __slots__ = ("_scopes",)

    def __init__(self, scopes: Iterable[str] = ()) -> None:
        if isinstance(scopes, str):
            scopes = [scopes]
        self._scopes = frozenset(scopes)

    @classmethod
    def of(cls, scopes: Union["ScopeSet", Iterable[str], None]) -> "ScopeSet":
        """Coerce ``scopes`` into a ScopeSet, treating ``None`` as empty."""
        if isinstance(scopes, ScopeSet):
            return scopes
        return cls(scopes or ())

    def covers(self, required: Union["ScopeSet", Iterable[str]]) -> bool:
        """Return True when every required scope is present in this set."""
        return ScopeSet.of(required)._scopes <= self._scopes

    def missing(self, required: Union["ScopeSet", Iterable[str]]) -> "ScopeSet":
        """Scopes from ``required`` that this set lacks."""
        return ScopeSet(ScopeSet.of(required)._scopes - self._scopes)

    def union(self, other: Union["ScopeSet", Iterable[str]]) -> "ScopeSet":
        return ScopeSet(self._scopes | ScopeSet.of(other)._scopes)

    __or__ = union

    def to_list(self) -> list[str]:
        """Sorted list form, used for request payloads and display."""
        return sorted(self._scopes)

    def __contains__(self, scope: object) -> bool:
        return scope in self._scopes

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._scopes))

    def __len__(self) -> int:
        return len(self._scopes)

    def __bool__(self) -> bool:
        return bool(self._scopes)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ScopeSet):
            return self._scopes == other._scopes
        if isinstance(other, (set, frozenset)):
            return self._scopes == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._scopes)

    def __repr__(self) -> str:
        return f"ScopeSet({self.to_list()!r})"


TOKEN_MANAGEMENT_SCOPES = ScopeSet([TOKEN_MANAGEMENT_READ, TOKEN_MANAGEMENT_WRITE])


__all__ = [
    "ScopeSet",
    "TOKEN_MANAGEMENT_READ",
    "TOKEN_MANAGEMENT_SCOPES",
    "TOKEN_MANAGEMENT_WRITE",
]
