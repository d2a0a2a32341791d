"""History entry filters."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

from .models import FilterSettings, HistoryEntry


@runtime_checkable
class Filter(Protocol):
    """Predicate over history entries.

    `requires_minor_events` changes the history request itself: when true,
    minor events (labels, attributes) are asked from the tool.
    """

    def accept(self, entry: HistoryEntry) -> bool:
        ...

    @property
    def requires_minor_events(self) -> bool:
        ...


class FilterChain:
    """Accepts an entry only when every member accepts it."""

    def __init__(self, filters: Iterable[Filter] = ()) -> None:
        self.filters = list(filters)

    def accept(self, entry: HistoryEntry) -> bool:
        return all(member.accept(entry) for member in self.filters)

    @property
    def requires_minor_events(self) -> bool:
        return any(member.requires_minor_events for member in self.filters)

    def __repr__(self) -> str:
        return f"FilterChain({self.filters!r})"


class DefaultFilter:
    """Drops version zero of a branch and the branch creation event."""

    requires_minor_events = False

    def accept(self, entry: HistoryEntry) -> bool:
        if entry.version_number == "0":
            return False
        if entry.operation == "mkbranch" or entry.event.startswith("create branch"):
            return False
        return True

    def __repr__(self) -> str:
        return "DefaultFilter()"


class PathFilter:
    """Selects entries by element path.

    An entry passes when it matches at least one `include` pattern (or no
    include pattern is given) and matches no `exclude` pattern.
    """

    requires_minor_events = False

    def __init__(self, include: Iterable[str] = (), exclude: Iterable[str] = ()) -> None:
        self.include = [re.compile(pattern) for pattern in include]
        self.exclude = [re.compile(pattern) for pattern in exclude]

    def accept(self, entry: HistoryEntry) -> bool:
        element = entry.element.replace("\\", "/")
        if self.include and not any(pattern.search(element) for pattern in self.include):
            return False
        return not any(pattern.search(element) for pattern in self.exclude)

    def __repr__(self) -> str:
        include = [pattern.pattern for pattern in self.include]
        exclude = [pattern.pattern for pattern in self.exclude]
        return f"PathFilter(include={include!r}, exclude={exclude!r})"


class UserFilter:
    requires_minor_events = False

    def __init__(self, users: Iterable[str], exclude: bool = False) -> None:
        self.users = {user.strip().lower() for user in users if user.strip()}
        self.exclude = exclude

    def accept(self, entry: HistoryEntry) -> bool:
        listed = entry.user.lower() in self.users
        return not listed if self.exclude else listed

    def __repr__(self) -> str:
        return f"UserFilter(users={sorted(self.users)!r}, exclude={self.exclude!r})"


class MinorEventFilter:
    """Accepts everything, but asks the tool for minor events too."""

    requires_minor_events = True

    def accept(self, entry: HistoryEntry) -> bool:
        return True

    def __repr__(self) -> str:
        return "MinorEventFilter()"


def build_filter(settings: FilterSettings | Mapping[str, Any]) -> FilterChain | None:
    """Build a filter chain from declarative settings.

    A plain mapping is validated as `FilterSettings` first, so unknown keys
    and wrongly typed values raise `pydantic.ValidationError`.
    """
    if not isinstance(settings, FilterSettings):
        settings = FilterSettings.model_validate(dict(settings))
    filters: list[Filter] = []
    if settings.default:
        filters.append(DefaultFilter())
    if settings.include_paths or settings.exclude_paths:
        filters.append(PathFilter(include=settings.include_paths, exclude=settings.exclude_paths))
    if settings.users:
        filters.append(UserFilter(settings.users))
    if settings.exclude_users:
        filters.append(UserFilter(settings.exclude_users, exclude=True))
    if settings.minor_events:
        filters.append(MinorEventFilter())
    if not filters:
        return None
    return FilterChain(filters)
