"""
SQL fragment processing with single-pass architecture.

Fragments with positional placeholders go through one tokenization and
transformation pipeline:

    SQL + Values → Tokenize → Analyze Context → Build Output
                    (once)      (one pass)      (single pass)

Builder output always uses the canonical ``?`` marker. The final statement
is converted to the connection's marker by ``standardize_placeholders``.

Main entry points:
- `compile_fragment(sql, values)` - Expand IN / IS placeholders, check counts
- `process_sql_params(sql, args, dialect)` - Same, for hand-written SQL
- `standardize_placeholders(sql, dialect)` - Convert ? to the dialect marker
- `quote_identifier(name, quote)` - Quote table/column names
"""
import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from activemodel.exceptions import BuilderError
from activemodel.utils import isiterable, issequence

# =============================================================================
# Data Structures
# =============================================================================


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    POSITIONAL_PH = auto()      # %s or ?
    IN_KEYWORD = auto()
    IS_KEYWORD = auto()
    IS_NOT_KEYWORD = auto()
    OPEN_PAREN = auto()
    CLOSE_PAREN = auto()


@dataclass(slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str
    start: int
    end: int


@dataclass(slots=True)
class PlaceholderInfo:
    """Information about a placeholder and its context."""
    token: Token
    index: int
    context: str = 'value'          # 'value', 'in_clause', 'is_null', 'is_not_null'
    in_parentheses: bool = False    # Already in parens: IN (?)


# =============================================================================
# Regex Patterns
# =============================================================================

_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*")
    |(?P<percent_s>%s)
    |(?P<qmark>\?)
    |(?P<is_not>\bIS\s+NOT\b)
    |(?P<is_kw>\bIS\b)
    |(?P<in_kw>\bIN\b)
    |(?P<open_paren>\()
    |(?P<close_paren>\))
""", re.IGNORECASE | re.VERBOSE)

_UNESCAPED_PERCENT = re.compile(r'(?<!%)%(?![%s(])')

_HAS_PLACEHOLDER = re.compile(r'%s|\?')

CANONICAL_PLACEHOLDER = '?'


# =============================================================================
# Core Functions
# =============================================================================

def tokenize_sql(sql: str) -> list[Token]:
    """Parse SQL into tokens in a single pass.

    Parameters
        sql: SQL fragment

    Returns
        List of tokens preserving all SQL text
    """
    tokens = []
    last_end = 0

    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()

        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start], last_end, start))

        if match.group('string'):
            ttype = TokenType.STRING_LITERAL
        elif match.group('percent_s') or match.group('qmark'):
            ttype = TokenType.POSITIONAL_PH
        elif match.group('is_not'):
            ttype = TokenType.IS_NOT_KEYWORD
        elif match.group('is_kw'):
            ttype = TokenType.IS_KEYWORD
        elif match.group('in_kw'):
            ttype = TokenType.IN_KEYWORD
        elif match.group('open_paren'):
            ttype = TokenType.OPEN_PAREN
        elif match.group('close_paren'):
            ttype = TokenType.CLOSE_PAREN
        else:
            continue

        tokens.append(Token(ttype, match.group(0), start, end))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:], last_end, len(sql)))

    return tokens


def analyze_placeholders(tokens: list[Token]) -> list[PlaceholderInfo]:
    """Analyze placeholder context in single forward pass.

    Determines whether each placeholder is a regular value, an IN clause
    placeholder (may need expansion) or an IS placeholder (value may be None).
    """
    placeholders = []
    positional_index = 0

    prev_keyword: TokenType | None = None
    in_paren_after_in = False

    for i, token in enumerate(tokens):
        if token.type == TokenType.IN_KEYWORD:
            prev_keyword = TokenType.IN_KEYWORD
            j = i + 1
            while j < len(tokens) and tokens[j].type == TokenType.SQL_TEXT and not tokens[j].text.strip():
                j += 1
            if j < len(tokens) and tokens[j].type == TokenType.OPEN_PAREN:
                in_paren_after_in = True

        elif token.type in {TokenType.IS_KEYWORD, TokenType.IS_NOT_KEYWORD}:
            prev_keyword = token.type

        elif token.type == TokenType.OPEN_PAREN:
            if not in_paren_after_in:
                prev_keyword = None

        elif token.type == TokenType.CLOSE_PAREN:
            in_paren_after_in = False
            prev_keyword = None

        elif token.type == TokenType.POSITIONAL_PH:
            placeholders.append(PlaceholderInfo(
                token=token,
                index=positional_index,
                context=_determine_context(prev_keyword),
                in_parentheses=in_paren_after_in,
            ))
            positional_index += 1
            # IN (?, ?) keeps its context until the closing paren
            if not in_paren_after_in:
                prev_keyword = None

        elif token.type == TokenType.SQL_TEXT:
            text = token.text.strip()
            if text and text != ',':
                prev_keyword = None

    return placeholders


def _determine_context(prev_keyword: TokenType | None) -> str:
    """Determine placeholder context from preceding keyword."""
    if prev_keyword == TokenType.IN_KEYWORD:
        return 'in_clause'
    if prev_keyword == TokenType.IS_KEYWORD:
        return 'is_null'
    if prev_keyword == TokenType.IS_NOT_KEYWORD:
        return 'is_not_null'
    return 'value'


def build_sql(tokens: list[Token], placeholders: list[PlaceholderInfo],
              values: tuple | list) -> tuple[str, list]:
    """Build the expanded fragment and its flat value list in one pass.

    Placeholders are emitted in canonical ``?`` form.
    """
    result_parts = []
    result_values: list[Any] = []
    by_token = {id(ph.token): ph for ph in placeholders}

    for token in tokens:
        if token.type == TokenType.POSITIONAL_PH:
            ph = by_token[id(token)]
            sql_part, new_values = _process_placeholder(ph, values[ph.index])
            result_parts.append(sql_part)
            result_values.extend(new_values)
        else:
            result_parts.append(token.text)

    return ''.join(result_parts), result_values


def _process_placeholder(ph: PlaceholderInfo, value: Any) -> tuple[str, list]:
    """Process a positional placeholder."""
    if ph.context in {'is_null', 'is_not_null'} and value is None:
        return 'NULL', []

    if ph.context == 'in_clause':
        return _expand_in_clause(value, ph.in_parentheses)

    return CANONICAL_PLACEHOLDER, [value]


def _expand_in_clause(value: Any, already_in_parens: bool) -> tuple[str, list]:
    """Expand IN clause value to multiple placeholders.

    >>> _expand_in_clause([1, 2], False)
    ('(?, ?)', [1, 2])
    >>> _expand_in_clause([], True)
    ('NULL', [])
    """
    if isiterable(value):
        value = list(value)
        if len(value) == 1 and issequence(value[0]):
            value = list(value[0])

        if not value:
            return 'NULL' if already_in_parens else '(NULL)', []

        placeholders = make_placeholders(len(value))
        if already_in_parens:
            return placeholders, value
        return f'({placeholders})', value

    if already_in_parens:
        return CANONICAL_PLACEHOLDER, [value]
    return f'({CANONICAL_PLACEHOLDER})', [value]


def make_placeholders(count: int, dialect: str | None = None) -> str:
    """Comma separated placeholders, canonical unless a dialect is given.

    >>> make_placeholders(3)
    '?, ?, ?'
    >>> make_placeholders(2, 'postgresql')
    '%s, %s'
    >>> make_placeholders(2, 'oracle')
    ':1, :2'
    """
    canonical = ', '.join([CANONICAL_PLACEHOLDER] * count)
    if dialect is None:
        return canonical
    return standardize_placeholders(canonical, dialect)


_PLACEHOLDER_STYLES = {
    'sqlite': '?',
    'oracle': ':{n}',
    }


def dialect_placeholder(dialect: str, position: int = 1) -> str:
    """Return placeholder for dialect, numbered from 1 for numeric styles."""
    return _PLACEHOLDER_STYLES.get(dialect, '%s').format(n=position)


def _escape_percent_in_literal(literal: str) -> str:
    """Escape unescaped percent signs in string literal."""
    quote = literal[0]
    content = literal[1:-1]
    escaped = _UNESCAPED_PERCENT.sub('%%', content)
    return f'{quote}{escaped}{quote}'


# =============================================================================
# Main Entry Points
# =============================================================================

def compile_fragment(sql: str, values: tuple | list = ()) -> tuple[str, list]:
    """Expand a positional fragment into canonical SQL and a flat value list.

    Sequence values after ``IN`` become one placeholder per element (an empty
    sequence becomes ``(NULL)``). ``IS ?`` and ``IS NOT ?`` bound to None become
    ``IS NULL`` / ``IS NOT NULL``.

    Raises
        BuilderError: if the placeholder count differs from the value count
    """
    values = list(values)
    tokens = tokenize_sql(sql)
    placeholders = analyze_placeholders(tokens)

    if len(placeholders) != len(values):
        raise BuilderError(
            f'Parameter count mismatch: SQL needs {len(placeholders)} '
            f'but {len(values)} were provided: {sql}')

    if not placeholders:
        return sql, []

    return build_sql(tokens, placeholders, values)


def process_sql_params(sql: str, args: tuple | list | Any,
                       dialect: str = 'postgresql') -> tuple[str, tuple]:
    """Process hand-written SQL and parameters for a dialect.

    Accepts values spread positionally or wrapped once in a list/tuple.

    Parameters
        sql: SQL query string with placeholders
        args: Query parameters
        dialect: Database dialect

    Returns
        Tuple of (processed_sql, processed_args)
    """
    if not sql:
        return sql, ()

    args = normalize_args(sql, args)
    if not has_placeholders(sql):
        return sql, ()

    compiled, values = compile_fragment(sql, args)
    return standardize_placeholders(compiled, dialect, bool(values)), tuple(values)


def normalize_args(sql: str, args: Any) -> tuple:
    """Unwrap ``[(a, b)]`` into ``(a, b)`` when it matches the placeholder count.
    """
    if args is None:
        return ()
    if not isinstance(args, (list, tuple)):
        return (args,)
    if len(args) == 1 and issequence(args[0]):
        count = len(analyze_placeholders(tokenize_sql(sql)))
        if count == len(args[0]) and count != 1:
            return tuple(args[0])
    return tuple(args)


def has_placeholders(sql: str | None) -> bool:
    """Check if SQL has any parameter placeholders.
    """
    if not sql:
        return False

    if '%' not in sql and '?' not in sql:
        return False

    return any(t.type == TokenType.POSITIONAL_PH for t in tokenize_sql(sql))


def standardize_placeholders(sql: str, dialect: str = 'postgresql',
                             escape_percent: bool = True) -> str:
    """Convert placeholders to the dialect's marker, leaving literals alone.

    For format-style drivers, percent signs inside string literals are
    doubled when the statement will be sent with parameters.

    >>> standardize_placeholders("a = ? AND b LIKE 'x%'", 'postgresql')
    "a = %s AND b LIKE 'x%%'"
    >>> standardize_placeholders('a = %s', 'sqlite')
    'a = ?'
    """
    if not sql:
        return sql

    escape = escape_percent and dialect_placeholder(dialect) == '%s'
    position = 0
    result = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.STRING_LITERAL and escape:
            result.append(_escape_percent_in_literal(token.text))
        elif token.type == TokenType.POSITIONAL_PH:
            position += 1
            result.append(dialect_placeholder(dialect, position))
        else:
            result.append(token.text)
    return ''.join(result)


def quote_identifier(identifier: str, quote: str = '"') -> str:
    """Safely quote database identifiers.

    Dotted names are quoted part by part. An empty quote character leaves
    the identifier as is.

    >>> quote_identifier('orders')
    '"orders"'
    >>> quote_identifier('shop.orders')
    '"shop"."orders"'
    >>> quote_identifier('orders', '')
    'orders'
    """
    if not quote:
        return identifier
    return '.'.join(
        quote + part.replace(quote, quote * 2) + quote
        for part in identifier.split('.'))
