"""Record store interface and query building blocks.

A record store is the external relational backend that owns all durable
state. The search core only needs three operations against it: filtered
selects with embedded relations, single-row inserts, and filtered deletes.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

# Collections used by the search core
SEARCH_HISTORY = "search_history"
SONGS = "songs"
ALBUMS = "albums"
PROFILES = "profiles"
PLAYLISTS = "playlists"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

Record = dict[str, Any]


def check_identifier(name: str) -> str:
    """Return ``name`` if it is a safe SQL/REST identifier, else raise ValueError."""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return name


@dataclass(frozen=True)
class Condition:
    """A single column predicate.

    ``column`` may be dotted (``artist.display_name``) to address a column of an
    embedded relation declared in the same select.
    """

    column: str
    op: Literal["eq", "icontains"]
    value: Any

    def __post_init__(self):
        for part in self.column.split("."):
            check_identifier(part)

    @property
    def relation(self) -> str | None:
        """Alias of the embedded relation this condition targets, if any."""
        if "." in self.column:
            return self.column.split(".", 1)[0]
        return None

    @property
    def field_name(self) -> str:
        return self.column.rsplit(".", 1)[-1]


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of conditions (matches when any condition matches)."""

    conditions: tuple[Condition, ...]


Filter = Condition | AnyOf


@dataclass(frozen=True)
class Embed:
    """An embedded to-one relation, e.g. ``artist:profiles`` via ``artist_id``."""

    alias: str
    collection: str
    foreign_key: str

    def __post_init__(self):
        check_identifier(self.alias)
        check_identifier(self.collection)
        check_identifier(self.foreign_key)


@dataclass(frozen=True)
class Order:
    """Sort order for a select."""

    column: str
    descending: bool = False

    def __post_init__(self):
        check_identifier(self.column)


def eq(column: str, value: Any) -> Condition:
    """Equality predicate."""
    return Condition(column, "eq", value)


def icontains(column: str, value: str) -> Condition:
    """Case-insensitive substring predicate."""
    return Condition(column, "icontains", value)


def any_of(*conditions: Condition) -> AnyOf:
    """OR together several predicates."""
    return AnyOf(tuple(conditions))


@dataclass
class SelectQuery:
    """Everything a backend needs to run a select."""

    collection: str
    filters: tuple[Filter, ...] = ()
    embed: tuple[Embed, ...] = ()
    order: Order | None = None
    limit: int | None = None
    embeds_by_alias: dict[str, Embed] = field(init=False)

    def __post_init__(self):
        check_identifier(self.collection)
        self.embeds_by_alias = {e.alias: e for e in self.embed}
        for condition in self.iter_conditions():
            if condition.relation and condition.relation not in self.embeds_by_alias:
                raise ValueError(
                    f"Filter on '{condition.column}' references relation "
                    f"'{condition.relation}' that is not embedded"
                )

    def iter_conditions(self):
        for f in self.filters:
            if isinstance(f, AnyOf):
                yield from f.conditions
            else:
                yield f


@runtime_checkable
class RecordStore(Protocol):
    """Capability-style interface to the external relational backend.

    Implementations translate driver failures into ``TransportError`` (backend
    unreachable or failing) and ``ValidationError`` (write rejected).
    """

    async def select(
        self,
        collection: str,
        filters: tuple[Filter, ...] = (),
        embed: tuple[Embed, ...] = (),
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[Record]: ...

    async def insert(self, collection: str, record: Record) -> str: ...

    async def delete_where(self, collection: str, filters: tuple[Filter, ...]) -> int: ...

    async def is_available(self) -> bool: ...

    async def close(self) -> None: ...
