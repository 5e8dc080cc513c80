"""
sugarcube Operator Rewriter
Rewrites the pipeline (`|>`) and cons (`::`) operators into
`__binop__(left, "op", right)` calls, one occurrence per iteration,
highest precedence first, until no occurrence is left in code
"""

import sys
from typing import List, Optional, Tuple
from dataclasses import dataclass
from enum import Enum

from edits import EditOperation, PositionMap, Span, apply_edits
from error_handling import make_diagnostic, IterationLimitExceeded, ITERATION_LIMIT_EXCEEDED
from scanning import ContextKind, ContextMap, scan_contexts
from utilities import (
    LINE_CONTINUATION_ENDINGS,
    LINE_CONTINUATION_STARTS,
    is_ident_char,
    scan_word_backward,
)


DEFAULT_MAX_ITERATIONS = 1000

BINOP_FUNCTION = "__binop__"

# Words that end the expression to their right when scanning left for an operand
LEFT_BOUNDARY_KEYWORDS = frozenset({
    'return', 'const', 'let', 'var', 'throw', 'yield', 'case', 'else',
    'do', 'default', 'in', 'of',
})


class Associativity(Enum):
    LEFT = "left"
    RIGHT = "right"


class SugarOperator(Enum):
    """Operator token, precedence and associativity"""
    PIPELINE = ("|>", 1, Associativity.LEFT)
    CONS = ("::", 5, Associativity.RIGHT)

    def __init__(self, token: str, precedence: int, associativity: Associativity):
        self.token = token
        self.precedence = precedence
        self.associativity = associativity

    @property
    def right_assoc(self) -> bool:
        return self.associativity is Associativity.RIGHT


@dataclass(frozen=True)
class Occurrence:
    """An operator token found in code"""
    operator: SugarOperator
    span: Span

    @property
    def start(self) -> int:
        return self.span.start

    @property
    def end(self) -> int:
        return self.span.end

    @property
    def precedence(self) -> int:
        return self.operator.precedence

    @property
    def associativity(self) -> Associativity:
        return self.operator.associativity


def enabled_operators(flags=None) -> Tuple[SugarOperator, ...]:
    """Operators switched on by a flags value (anything with `pipeline` / `cons`)"""
    if flags is None:
        return tuple(SugarOperator)
    result = []
    if flags.pipeline:
        result.append(SugarOperator.PIPELINE)
    if flags.cons:
        result.append(SugarOperator.CONS)
    return tuple(result)


# ============================================================================
# OCCURRENCES
# ============================================================================

def find_operator_occurrences(text: str, contexts: ContextMap, operators) -> List[Occurrence]:
    """
    Every enabled operator token whose two characters are adjacent code
    characters. `| >` and `: :` are two separate tokens and never match.
    """
    by_token = {op.token: op for op in operators}
    occurrences = []
    i = 0
    while i < len(text) - 1:
        op = by_token.get(text[i:i + 2])
        if op is not None and contexts.is_code(i) and contexts.is_code(i + 1):
            occurrences.append(Occurrence(op, Span(i, i + 2)))
            i += 2
            continue
        i += 1
    return occurrences


def select_next_operator(occurrences: List[Occurrence]) -> Occurrence:
    """
    Highest precedence wins; ties go to the leftmost occurrence of a
    left-associative operator and the rightmost of a right-associative one
    """
    if not occurrences:
        raise ValueError("select_next_operator called with no occurrences")
    top = max(o.precedence for o in occurrences)
    candidates = [o for o in occurrences if o.precedence == top]
    if candidates[0].operator.right_assoc:
        return max(candidates, key=lambda o: o.start)
    return min(candidates, key=lambda o: o.start)


# ============================================================================
# CONTEXT HELPERS
# ============================================================================

def _opens_interpolation(text: str, contexts: ContextMap, j: int) -> bool:
    """The `{` of a template literal's `${`"""
    return (text[j] == '{' and j > 0 and text[j - 1] == '$'
            and contexts.kind_at(j) is ContextKind.STRING
            and j + 1 < len(text) and contexts.is_source(j + 1))


def _closes_interpolation(text: str, contexts: ContextMap, j: int) -> bool:
    """The `}` that returns from `${...}` into template text"""
    return (text[j] == '}' and j > 0
            and contexts.kind_at(j) is ContextKind.STRING
            and contexts.is_source(j - 1))


def _is_trivia(text: str, contexts: ContextMap, j: int) -> bool:
    return text[j].isspace() or contexts.kind_at(j) is ContextKind.COMMENT


def skip_trivia(text: str, contexts: ContextMap, i: int, limit: int) -> int:
    """Move forward over whitespace and comments, stopping at `limit`"""
    while i < limit and _is_trivia(text, contexts, i):
        i += 1
    return i


def skip_trivia_backward(text: str, contexts: ContextMap, i: int, limit: int) -> int:
    """Move an end offset back over whitespace and comments, stopping at `limit`"""
    while i > limit and _is_trivia(text, contexts, i - 1):
        i -= 1
    return i


def _significant_before(text: str, contexts: ContextMap, j: int) -> Optional[str]:
    k = skip_trivia_backward(text, contexts, j, 0)
    return text[k - 1] if k > 0 else None


def _significant_after(text: str, contexts: ContextMap, j: int) -> Optional[str]:
    k = skip_trivia(text, contexts, j, len(text))
    return text[k] if k < len(text) else None


def line_break_ends_expression(text: str, contexts: ContextMap, j: int) -> bool:
    """
    Whether the line break at `j` ends the expression: the previous line
    does not end in a continuing character and the next line does not start
    with one
    """
    before = _significant_before(text, contexts, j)
    after = _significant_after(text, contexts, j + 1)
    if before is None or after is None:
        return False
    return before not in LINE_CONTINUATION_ENDINGS and after not in LINE_CONTINUATION_STARTS


def _stops_at_operator(found: SugarOperator, op: SugarOperator, scanning_right: bool) -> bool:
    """Whether another operator token bounds the operand of `op`"""
    if scanning_right and op.right_assoc:
        return found.precedence < op.precedence
    return found.precedence <= op.precedence


def _is_ternary_mark(text: str, j: int) -> bool:
    """A single `?` that is neither `?.` nor part of `??`"""
    nxt = text[j + 1] if j + 1 < len(text) else ''
    prev = text[j - 1] if j > 0 else ''
    return nxt not in '.?' and prev != '?'


# ============================================================================
# OPERAND BOUNDARIES
# ============================================================================

def find_left_operand(text: str, contexts: ContextMap, occurrence: Occurrence) -> int:
    """
    Scan left from the operator to the nearest expression-start delimiter.

    Only code characters are considered; literal text and type positions
    are transparent. Brackets are balanced on the way.

    Returns:
        Offset just after the delimiter (0 at the start of the text)
    """
    op = occurrence.operator
    depth = 0
    j = occurrence.start - 1
    while j >= 0:
        c = text[j]
        if not contexts.is_code(j):
            if _closes_interpolation(text, contexts, j):
                depth += 1
            elif _opens_interpolation(text, contexts, j):
                if depth == 0:
                    return j + 1
                depth -= 1
            j -= 1
            continue

        if c in ')]}':
            depth += 1
        elif c in '([{':
            if depth == 0:
                return j + 1
            depth -= 1
        elif depth > 0:
            pass
        elif c == '\n':
            if line_break_ends_expression(text, contexts, j):
                return j + 1
        elif is_ident_char(c):
            word_start = scan_word_backward(text, j + 1)
            # `Maybe.of`, `cfg.default` and `obj?.of` are property names
            if (text[word_start:j + 1] in LEFT_BOUNDARY_KEYWORDS
                    and _significant_before(text, contexts, word_start) != '.'):
                return j + 1
            j = word_start - 1
            continue
        elif c in ';,':
            return j + 1
        elif c == '>':
            prev = text[j - 1] if j > 0 else ''
            if prev == '=' and contexts.is_code(j - 1):
                return j + 1
            if prev == '|' and contexts.is_code(j - 1):
                if _stops_at_operator(SugarOperator.PIPELINE, op, scanning_right=False):
                    return j + 1
                j -= 2
                continue
        elif c == '=':
            prev = text[j - 1] if j > 0 else ''
            nxt = text[j + 1] if j + 1 < len(text) else ''
            if nxt in '=>':
                pass
            elif prev in '<>' and j > 1 and text[j - 2] == prev:
                return j + 1
            elif prev not in '=!<>':
                return j + 1
        elif c == ':':
            if j > 0 and text[j - 1] == ':' and contexts.is_code(j - 1):
                if _stops_at_operator(SugarOperator.CONS, op, scanning_right=False):
                    return j + 1
                j -= 2
                continue
            return j + 1
        elif c == '?':
            if _is_ternary_mark(text, j):
                return j + 1
        j -= 1
    return 0


def find_right_operand(text: str, contexts: ContextMap, occurrence: Occurrence) -> int:
    """
    Scan right from the operator to the nearest expression-end delimiter.

    Returns:
        Offset of the delimiter (the length of the text if none is found)
    """
    op = occurrence.operator
    depth = 0
    j = occurrence.end
    while j < len(text):
        c = text[j]
        if not contexts.is_code(j):
            if _opens_interpolation(text, contexts, j):
                depth += 1
            elif _closes_interpolation(text, contexts, j):
                if depth == 0:
                    return j
                depth -= 1
            j += 1
            continue

        nxt = text[j + 1] if j + 1 < len(text) else ''
        if c in '([{':
            depth += 1
        elif c in ')]}':
            if depth == 0:
                return j
            depth -= 1
        elif depth > 0:
            pass
        elif c == '\n':
            if line_break_ends_expression(text, contexts, j):
                return j
        elif c in ';,':
            return j
        elif c == '|' and nxt == '>' and contexts.is_code(j + 1):
            if _stops_at_operator(SugarOperator.PIPELINE, op, scanning_right=True):
                return j
            j += 2
            continue
        elif c == ':':
            if nxt == ':' and contexts.is_code(j + 1):
                if _stops_at_operator(SugarOperator.CONS, op, scanning_right=True):
                    return j
                j += 2
                continue
            return j
        elif c == '?':
            if _is_ternary_mark(text, j):
                return j
        j += 1
    return len(text)


def operator_edits(text: str, contexts: ContextMap, occurrence: Occurrence) -> List[EditOperation]:
    """
    The three edits turning `left op right` into `__binop__(left, "op", right)`:
    an opening insertion, the separator replacing the operator with its
    surrounding trivia, and the closing insertion
    """
    left = find_left_operand(text, contexts, occurrence)
    right = find_right_operand(text, contexts, occurrence)

    left_start = skip_trivia(text, contexts, left, occurrence.start)
    left_end = skip_trivia_backward(text, contexts, occurrence.start, left_start)
    right_start = skip_trivia(text, contexts, occurrence.end, right)
    right_end = skip_trivia_backward(text, contexts, right, right_start)

    return [
        EditOperation.insert(left_start, f"{BINOP_FUNCTION}("),
        EditOperation(Span(left_end, right_start), f', "{occurrence.operator.token}", '),
        EditOperation.insert(right_end, ")"),
    ]


# ============================================================================
# REWRITE LOOP
# ============================================================================

def rewrite_operators(
    text: str,
    flags=None,
    dialect=None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    position_map: Optional[PositionMap] = None,
    source_text: Optional[str] = None,
    filename: str = "<input>",
    debug: bool = False
) -> Tuple[str, PositionMap]:
    """
    Rewrite enabled operators to a fixed point.

    The context map is rebuilt from the current text on every iteration.
    Each rewrite is pushed as a layer onto `position_map` (a fresh map if
    none is given), so offsets keep mapping back to `source_text`.

    Raises:
        IterationLimitExceeded: occurrences remain after `max_iterations` rewrites
    """
    operators = enabled_operators(flags)
    jsx = bool(dialect is not None and dialect.jsx)
    if position_map is None:
        position_map = PositionMap()
    if not operators:
        return text, position_map

    iterations = 0
    while True:
        contexts = scan_contexts(text, jsx=jsx)
        occurrences = find_operator_occurrences(text, contexts, operators)
        if not occurrences:
            break

        occurrence = select_next_operator(occurrences)
        if iterations >= max_iterations:
            start = position_map.to_original(occurrence.start)
            raise IterationLimitExceeded(make_diagnostic(
                ITERATION_LIMIT_EXCEEDED,
                f"operator rewriting did not finish after {max_iterations} iterations "
                f"({len(occurrences)} occurrence(s) left)",
                start,
                start + len(occurrence.operator.token),
                source_text=source_text if source_text is not None else text,
                filename=filename,
                internal=True
            ))

        edits = operator_edits(text, contexts, occurrence)
        if debug:
            print(f"DEBUG: iteration {iterations + 1}: rewriting '{occurrence.operator.token}' "
                  f"at {occurrence.start} ({len(occurrences)} left)", file=sys.stderr)
        text, layer = apply_edits(text, edits)
        position_map.push(layer)
        iterations += 1

    if debug:
        print(f"DEBUG: operator rewriting finished after {iterations} iteration(s)", file=sys.stderr)
    return text, position_map

