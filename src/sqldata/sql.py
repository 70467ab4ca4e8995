"""
Placeholder-aware SQL text handling.

Statements are split into pieces so that quoted text (string literals,
double-quoted and bracketed identifiers) is never mistaken for a bind
marker. Callers may write either `?` or `%s`; the strategy rewrites the
markers for its driver just before execution.
"""
import re
from enum import Enum
from typing import NamedTuple

__all__ = [
    'Piece',
    'Segment',
    'split_sql',
    'count_placeholders',
    'has_placeholders',
    'standardize_placeholders',
    'escape_percent_signs_in_literals',
    'quote_identifier',
]


class Piece(Enum):
    TEXT = 'text'
    QUOTED = 'quoted'
    MARKER = 'marker'


class Segment(NamedTuple):
    kind: Piece
    text: str


_PIECES = re.compile(r"""
    (?P<quoted>'(?:[^']|'')*'|"(?:[^"]|"")*"|\[[^\]]*\])
    |(?P<marker>%s|\?)
""", re.VERBOSE)

_LONE_PERCENT = re.compile(r'(?<!%)%(?!%)')

_QUOTES = {
    'postgresql': ('"', '"'),
    'sqlite': ('"', '"'),
    'mssql': ('[', ']'),
    }


def split_sql(sql: str) -> list[Segment]:
    """Cut a statement into text, quoted and marker segments.

    Joining the segment texts gives back the statement unchanged.
    """
    segments = []
    pos = 0
    for match in _PIECES.finditer(sql):
        if match.start() > pos:
            segments.append(Segment(Piece.TEXT, sql[pos:match.start()]))
        kind = Piece.QUOTED if match.lastgroup == 'quoted' else Piece.MARKER
        segments.append(Segment(kind, match.group()))
        pos = match.end()
    if pos < len(sql):
        segments.append(Segment(Piece.TEXT, sql[pos:]))
    return segments


def has_placeholders(sql: str | None) -> bool:
    """Cheap pre-check; True may still be a marker inside quotes."""
    return bool(sql) and ('?' in sql or '%s' in sql)


def count_placeholders(sql: str | None) -> int:
    """Number of bind markers outside quoted text."""
    if not has_placeholders(sql):
        return 0
    return sum(1 for seg in split_sql(sql) if seg.kind is Piece.MARKER)


def standardize_placeholders(sql: str, marker: str = '%s') -> str:
    """Rewrite every bind marker to `marker` ('%s' for psycopg, '?' for
    sqlite3 and pyodbc).
    """
    if not has_placeholders(sql):
        return sql
    return ''.join(marker if seg.kind is Piece.MARKER else seg.text
                   for seg in split_sql(sql))


def escape_percent_signs_in_literals(sql: str) -> str:
    """Double single `%` signs inside string literals.

    `format` paramstyle drivers treat `%` as a directive whenever
    parameters are passed.
    """
    if not sql or '%' not in sql:
        return sql
    out = []
    for seg in split_sql(sql):
        if seg.kind is Piece.QUOTED and seg.text.startswith("'"):
            out.append(_LONE_PERCENT.sub('%%', seg.text))
        else:
            out.append(seg.text)
    return ''.join(out)


def quote_identifier(identifier: str, dialect: str = 'postgresql') -> str:
    """Quote a table or column name for `dialect`.

    Raises
        ValueError: the dialect is unknown
    """
    try:
        opening, closing = _QUOTES[dialect]
    except KeyError:
        raise ValueError(f'Unknown dialect: {dialect}') from None
    return opening + identifier.replace(closing, closing * 2) + closing
