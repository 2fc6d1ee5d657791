# drivekit/query.py
"""Backend-aware SQL fragments.

Statements are written with column names and logical connectors only; the
placeholder syntax of the active backend is filled in here, so lookups and
permission checks read the same on every supported store.

    >>> Filters("id").add("AND age").add("OR name").to_query(BackendKind.POSTGRES)
    'id = $1 AND age = $2 OR name = $3'
"""
import itertools
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import text
from sqlalchemy.sql.elements import TextClause

from drivekit.exceptions import ConfigurationError, ParsingError

CONNECTORS = ("AND", "OR")
_COLUMN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
_NUMBERED = {
    "postgresql": re.compile(r"\$(\d+)"),
    "sqlite": re.compile(r"\?(\d+)"),
}


class BackendKind(Enum):
    POSTGRES = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"

    @classmethod
    def from_name(cls, name: str) -> "BackendKind":
        """Parse an engine or dialect name (e.g. 'PostgreSQL', 'sqlite')."""
        aliases = {
            "postgresql": cls.POSTGRES,
            "postgres": cls.POSTGRES,
            "mysql": cls.MYSQL,
            "mariadb": cls.MYSQL,
            "sqlite": cls.SQLITE,
        }
        kind = aliases.get((name or "").strip().lower())
        if kind is None:
            raise ConfigurationError(f"unable to parse backend name {name}")
        return kind

    def placeholder(self, index: int) -> str:
        if self is BackendKind.POSTGRES:
            return f"${index}"
        if self is BackendKind.SQLITE:
            return f"?{index}"
        if self is BackendKind.MYSQL:
            # bound strictly in call order
            return "?"
        raise ConfigurationError(f"no placeholder syntax for {self}")

    def bind(self, sql: str, params: Sequence[Any] = ()) -> Tuple[TextClause, Dict[str, Any]]:
        """Turn a statement using this backend's placeholders into a SQLAlchemy text clause.

        Args:
            sql: Statement built with `placeholder()` tokens starting at 1.
            params: Positional parameters, in placeholder order.

        Returns:
            Tuple of (text clause with named binds, bind parameter dict).
        """
        if self is BackendKind.MYSQL:
            counter = itertools.count(1)
            statement = re.sub(r"\?", lambda _: f":p{next(counter)}", sql)
        else:
            statement = _NUMBERED[self.value].sub(r":p\1", sql)
        values = {f"p{i}": value for i, value in enumerate(params, start=1)}
        return text(statement), values


@dataclass
class Filter:
    """One fragment of a WHERE clause: a column, or a parenthesized group of columns."""
    columns: List[str]
    joins: List[str] = field(default_factory=list)
    connector: Optional[str] = None

    @property
    def grouped(self) -> bool:
        return len(self.columns) > 1

    @classmethod
    def parse(cls, fragment: str, base: bool = False) -> "Filter":
        """Parse 'col', 'AND col', 'OR (a OR b)' or 'a OR b' style fragments."""
        tokens = fragment.replace("(", " ( ").replace(")", " ) ").split()
        if not tokens:
            raise ParsingError("empty filter fragment")

        connector = None
        if tokens[0].upper() in CONNECTORS:
            connector = tokens.pop(0).upper()
        if base and connector:
            raise ParsingError(f"base filter cannot start with a connector: '{fragment}'")
        if not base and not connector:
            raise ParsingError(f"filter '{fragment}' must start with AND or OR")

        if tokens and tokens[0] == "(":
            if tokens[-1] != ")":
                raise ParsingError(f"unbalanced parentheses in filter '{fragment}'")
            tokens = tokens[1:-1]
        if "(" in tokens or ")" in tokens:
            raise ParsingError(f"nested or unbalanced parentheses in filter '{fragment}'")

        columns, joins = tokens[0::2], [t.upper() for t in tokens[1::2]]
        if not columns or len(columns) != len(joins) + 1:
            raise ParsingError(f"malformed filter '{fragment}'")
        for col in columns:
            if not _COLUMN.match(col):
                raise ParsingError(f"invalid column '{col}' in filter '{fragment}'")
        for join in joins:
            if join not in CONNECTORS:
                raise ParsingError(f"invalid connector '{join}' in filter '{fragment}'")
        return cls(columns=columns, joins=joins, connector=connector)

    def render(self, backend: BackendKind, start: int) -> Tuple[str, int]:
        """Render with placeholders from `start`; returns the string and the next free index."""
        parts = []
        index = start
        for i, col in enumerate(self.columns):
            if i:
                parts.append(self.joins[i - 1])
            parts.append(f"{col} = {backend.placeholder(index)}")
            index += 1
        body = " ".join(parts)
        if self.grouped:
            body = f"({body})"
        if self.connector:
            body = f"{self.connector} {body}"
        return body, index


class Filters:
    """A chain of WHERE fragments. Placeholders start at `offset`."""

    def __init__(self, base: str, offset: int = 1):
        self.items: List[str] = [base]
        self.offset = offset

    def add(self, fragment: str) -> "Filters":
        self.items.append(fragment)
        return self

    def to_query(self, backend: BackendKind) -> str:
        out = []
        index = self.offset
        for i, item in enumerate(self.items):
            rendered, index = Filter.parse(item, base=(i == 0)).render(backend, index)
            out.append(rendered)
        return " ".join(out)



class Values:
    """`VALUES(...)` with `count` placeholders starting at `offset`."""

    def __init__(self, count: int, offset: int = 1):
        self.count = count
        self.offset = offset

    def to_query(self, backend: BackendKind) -> str:
        values = ", ".join(backend.placeholder(i + self.offset) for i in range(self.count))
        return f"VALUES({values})"


class Setters:
    """Comma-joined `col = placeholder` list for UPDATE statements."""

    def __init__(self, col: str, offset: int = 1):
        self.items: List[str] = [col]
        self.offset = offset

    def add(self, col: str) -> "Setters":
        self.items.append(col)
        return self

    def to_query(self, backend: BackendKind) -> str:
        return ", ".join(
            f"{col} = {backend.placeholder(i + self.offset)}" for i, col in enumerate(self.items)
        )
