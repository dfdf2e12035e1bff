"""Synthesis of optimized queries and derived method signatures.

WHERE clauses are reordered on the original text whenever possible, so
spacing, comments, JPQL constructs and parameter markers survive untouched.
Only when the text cannot be split into the same operands sqlglot found is
the statement re-rendered from its syntax tree.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlglot import exp
from sqlglot.errors import SqlglotError
from sqlglot.tokens import Tokenizer, TokenType

from queryplane.analysis.derived import parse_derived_name
from queryplane.analysis.extraction import (
    bare_placeholder_ordinals,
    flatten_and,
    number_bare_markers,
    parse_statement,
    render_statement,
    where_of,
)
from queryplane.analysis.models import RepositoryQuery
from queryplane.core.logging import get_logger
from queryplane.java.models import MethodShape

log = get_logger(__name__)

_CLAUSE_END = frozenset(
    {
        TokenType.GROUP_BY,
        TokenType.ORDER_BY,
        TokenType.HAVING,
        TokenType.LIMIT,
        TokenType.OFFSET,
        TokenType.FETCH,
        TokenType.UNION,
        TokenType.EXCEPT,
        TokenType.INTERSECT,
        TokenType.WINDOW,
        TokenType.QUALIFY,
        TokenType.SEMICOLON,
    }
)


def promote(count: int, index: int) -> list[int]:
    """Order that moves ``index`` to the front and keeps the rest in place."""
    return [index] + [i for i in range(count) if i != index]


def where_segments(text: str) -> list[tuple[int, int]] | None:
    """Character ranges of the top-level AND operands of the first top-level WHERE."""
    try:
        tokens = Tokenizer().tokenize(text)
    except SqlglotError:
        return None

    depth = 0
    start = None
    for i, tok in enumerate(tokens):
        if tok.token_type == TokenType.L_PAREN:
            depth += 1
        elif tok.token_type == TokenType.R_PAREN:
            depth -= 1
        elif tok.token_type == TokenType.WHERE and depth == 0:
            start = i + 1
            break
    if start is None:
        return None

    segments: list[tuple[int, int]] = []
    first: int | None = None
    last = 0
    depth = 0
    pending_between = False
    for tok in tokens[start:]:
        tt = tok.token_type
        if depth == 0 and (tt in _CLAUSE_END or tt == TokenType.R_PAREN):
            break
        if tt == TokenType.L_PAREN:
            depth += 1
        elif tt == TokenType.R_PAREN:
            depth -= 1
        elif depth == 0 and tt == TokenType.BETWEEN:
            pending_between = True
        elif depth == 0 and tt == TokenType.AND:
            if pending_between:
                pending_between = False
            else:
                if first is None:
                    return None
                segments.append((first, last))
                first = None
                continue
        if first is None:
            first = tok.start
        last = tok.end + 1

    if first is None:
        return None
    segments.append((first, last))
    return segments


def reorder_where_text(text: str, order: Sequence[int], expected: int) -> str | None:
    """Permute the WHERE operands of ``text``; slot ``j`` receives operand ``order[j]``."""
    segments = where_segments(text)
    if segments is None or len(segments) != expected or len(order) != expected:
        return None
    pieces = [text[s:e] for s, e in segments]
    out = [text[: segments[0][0]]]
    for slot, (_, end) in enumerate(segments):
        out.append(pieces[order[slot]])
        if slot + 1 < len(segments):
            out.append(text[end : segments[slot + 1][0]])
    out.append(text[segments[-1][1] :])
    return "".join(out)


def reorder_where_statement(statement: exp.Expression, order: Sequence[int]) -> exp.Expression:
    reordered = statement.copy()
    where = where_of(reordered)
    if where is None:
        return reordered
    operands = flatten_and(where.this)
    reordered.set("where", exp.Where(this=exp.and_(*[operands[i] for i in order])))
    return reordered


def optimized_query_text(query: RepositoryQuery, conjunct: int) -> str | None:
    """Query text with top-level operand ``conjunct`` moved to the front.

    Unnamed ``?`` markers are numbered with their JDBC ordinal first so each
    argument keeps its binding. Returns None when they cannot all be numbered.
    """
    statement = query.statement
    where = where_of(statement)
    if where is None:
        return None
    count = len(flatten_and(where.this))
    order = promote(count, conjunct)

    source = query.text
    bare = len(bare_placeholder_ordinals(statement))
    if bare:
        source, numbered = number_bare_markers(source)
        statement = parse_statement(source) if numbered == bare else None
        if statement is None:
            log.info("bare_markers_unmatched", query=query.qualified_name, markers=bare)
            return None

    text = reorder_where_text(source, order, count)
    if text is not None:
        return text
    log.debug("where_text_split_failed", query=query.qualified_name)
    try:
        return render_statement(reorder_where_statement(statement, order))
    except SqlglotError:
        return None


def derived_rename(
    query: RepositoryQuery, criterion: int
) -> tuple[MethodShape, dict[int, int]] | None:
    """New shape and old->new parameter map for a derived method whose
    criterion ``criterion`` moves to the front.
    """
    derived = parse_derived_name(query.method_name)
    if derived is None or not derived.reorderable:
        return None
    if query.method is not None:
        params = list(query.method.shape.parameters)
    else:
        params = [(p.type_name, p.name) for p in query.parameters or ()]

    slices: list[list[int]] = []
    cursor = 0
    for part in derived.parts:
        slices.append(list(range(cursor, cursor + part.parameter_count)))
        cursor += part.parameter_count
    if cursor > len(params):
        return None

    order = promote(len(derived.parts), criterion)
    new_indices = [i for c in order for i in slices[c]] + list(range(cursor, len(params)))
    position_map = {old: new for new, old in enumerate(new_indices)}
    shape = MethodShape(
        derived.render([derived.parts[c] for c in order]),
        tuple(params[i] for i in new_indices),
    )
    return shape, position_map


def format_query_for_text_block(query: str, width: int, indent: str) -> str:
    """Break a long single-line query at whitespace near ``width``.

    Continuation lines start with ``indent``. Queries that already span
    several lines keep their own line breaks.
    """
    if "\n" in query:
        lines = [line.strip() for line in query.strip().splitlines()]
        return ("\n" + indent).join(line for line in lines if line)
    if len(query) <= width:
        return query

    lines: list[str] = []
    pos = 0
    n = len(query)
    while pos < n:
        if n - pos <= width:
            lines.append(query[pos:])
            break
        limit = pos + width
        cut = -1
        for i in range(limit, pos, -1):
            if query[i - 1].isspace():
                cut = i
                break
        if cut == -1:
            for i in range(limit, n):
                if query[i].isspace():
                    cut = i + 1
                    break
        if cut == -1:
            cut = n
        lines.append(query[pos:cut])
        pos = cut
    return ("\n" + indent).join(line.rstrip() for line in lines)
