"""
sugarcube Scope Resolver
Finds higher-kinded parameter declarations (`F<_>`, `F<_, _>`), works out the
declaration body they are visible in, and rewrites every in-scope usage
`F<A, B>` to the generic application form `$<F, A, B>`
"""

import sys
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass

from edits import EditOperation, Span
from error_handling import make_diagnostic, UNTERMINATED_SCOPE
from scanning import ContextMap, scan_contexts
from utilities import (
    is_ident_char,
    is_word_start,
    scan_word,
    skip_whitespace,
    skip_whitespace_backward,
)


@dataclass(frozen=True)
class HktDeclaration:
    """`Name<_, ...>` found in a source position"""
    name: str
    start: int          # offset of the name
    marker: Span        # `<_, ...>` (with any whitespace after the name)
    arity: int

    @property
    def end(self) -> int:
        return self.marker.end


@dataclass(frozen=True)
class ScopeRegion:
    """
    Body a higher-kinded parameter is declared for.
    scope_start <= decl_start <= decl_end <= scope_end always holds.
    """
    name: str
    decl_start: int
    decl_end: int
    scope_start: int
    scope_end: int
    arity: int = 1

    @property
    def size(self) -> int:
        return self.scope_end - self.scope_start

    def covers(self, offset: int) -> bool:
        return self.scope_start <= offset < self.scope_end


@dataclass(frozen=True)
class HktUsage:
    """`Name<Args>` where Name could refer to a higher-kinded parameter"""
    name: str
    start: int      # offset of the name
    open: int       # offset of `<`
    close: int      # offset of the matching `>`

    def args(self, text: str) -> str:
        return text[self.open + 1:self.close].strip()


class UnterminatedScope(Exception):
    """The block enclosing a declaration never closes"""

    def __init__(self, declaration: HktDeclaration):
        self.declaration = declaration
        super().__init__(f"Unterminated scope for higher-kinded parameter '{declaration.name}'")


# ============================================================================
# DETECTION
# ============================================================================

def _is_hkt_name_start(text: str, contexts: ContextMap, i: int) -> bool:
    return text[i].isupper() and contexts.is_source(i) and is_word_start(text, i)


def _placeholder_list_end(text: str, contexts: ContextMap, i: int) -> Optional[Tuple[int, int]]:
    """
    Match `<_>` or `<_, _, ...>` opening at `i`.

    Returns:
        (offset past `>`, arity) or None
    """
    if i >= len(text) or text[i] != '<' or not contexts.is_source(i):
        return None
    arity = 0
    j = i + 1
    while True:
        j = skip_whitespace(text, j)
        if j >= len(text) or text[j] != '_' or is_ident_char(text[j + 1] if j + 1 < len(text) else None):
            return None
        arity += 1
        j = skip_whitespace(text, j + 1)
        if j < len(text) and text[j] == ',':
            j += 1
            continue
        if j < len(text) and text[j] == '>' and contexts.is_source(j):
            return j + 1, arity
        return None


def find_hkt_declarations(text: str, contexts: ContextMap) -> List[HktDeclaration]:
    """All `Name<_, ...>` declarations outside string and comment text"""
    declarations = []
    i = 0
    while i < len(text):
        if not _is_hkt_name_start(text, contexts, i):
            i += 1
            continue
        name_end = scan_word(text, i)
        match = _placeholder_list_end(text, contexts, skip_whitespace(text, name_end))
        if match is not None:
            end, arity = match
            declarations.append(HktDeclaration(
                name=text[i:name_end],
                start=i,
                marker=Span(name_end, end),
                arity=arity
            ))
            i = end
        else:
            i = name_end
    return declarations


# ============================================================================
# SCOPE
# ============================================================================

def compute_scope(text: str, contexts: ContextMap, declaration: HktDeclaration) -> ScopeRegion:
    """
    Scope of a declaration: back to the previous statement or block boundary,
    forward to the end of the construct the parameter list belongs to.

    Raises:
        UnterminatedScope: if the enclosing block is still open at end of input
    """
    scope_start = 0
    j = declaration.start
    while j > 0:
        j -= 1
        if text[j] in ';{}' and contexts.is_source(j):
            scope_start = j + 1
            break

    depth = 0
    scope_end = None
    j = declaration.end
    while j < len(text):
        c = text[j]
        if contexts.is_source(j):
            if c == '{':
                depth += 1
            elif c == '}':
                if depth == 0:
                    scope_end = j
                    break
                depth -= 1
                if depth == 0:
                    scope_end = j + 1
                    break
            elif c == ';' and depth == 0:
                scope_end = j + 1
                break
        j += 1

    if scope_end is None:
        if depth > 0:
            raise UnterminatedScope(declaration)
        scope_end = len(text)

    return ScopeRegion(
        name=declaration.name,
        decl_start=declaration.start,
        decl_end=declaration.end,
        scope_start=scope_start,
        scope_end=scope_end,
        arity=declaration.arity
    )


def resolve_region(regions: List[ScopeRegion], name: str, offset: int) -> Optional[ScopeRegion]:
    """Innermost region declaring `name` that covers `offset`"""
    candidates = [r for r in regions if r.name == name and r.covers(offset)]
    if not candidates:
        return None
    return min(candidates, key=lambda r: r.size)


# ============================================================================
# USAGES
# ============================================================================

def matching_angle(text: str, contexts: ContextMap, start: int) -> Optional[int]:
    """Offset of the `>` closing the `<` at `start`; does not cross statement boundaries"""
    depth = 0
    j = start
    while j < len(text):
        c = text[j]
        if contexts.is_source(j):
            if c == '<':
                depth += 1
            elif c == '>' and text[j - 1] != '=':
                depth -= 1
                if depth == 0:
                    return j
            elif c in ';{}' and depth <= 1:
                return None
        j += 1
    return None


def find_hkt_usages(text: str, contexts: ContextMap, names) -> List[HktUsage]:
    """
    Every `Name<...>` in a source position whose name is one of `names`.

    Placeholder lists (declarations) are not usages. Scanning resumes inside
    the argument list, so `F<G<A>>` yields both `F` and `G`.
    """
    names = set(names)
    usages = []
    i = 0
    while i < len(text):
        if not _is_hkt_name_start(text, contexts, i):
            i += 1
            continue
        name_end = scan_word(text, i)
        name = text[i:name_end]
        if name not in names:
            i = name_end
            continue
        open_at = skip_whitespace(text, name_end)
        if open_at >= len(text) or text[open_at] != '<' or not contexts.is_source(open_at):
            i = name_end
            continue
        close = matching_angle(text, contexts, open_at)
        if close is None:
            i = name_end
            continue
        inner = text[open_at + 1:close]
        if all(c in '_,' or c.isspace() for c in inner):
            i = close + 1
            continue
        usages.append(HktUsage(name=name, start=i, open=open_at, close=close))
        i = open_at + 1
    return usages


def usage_edits(text: str, usage: HktUsage) -> List[EditOperation]:
    """
    `F<A, B>` -> `$<F, A, B>` as a prefix replacement and an optional
    whitespace deletion, so the argument text itself is left untouched
    """
    args_start = skip_whitespace(text, usage.open + 1)
    result = [EditOperation(Span(usage.start, args_start), f"$<{usage.name}, ")]
    args_end = skip_whitespace_backward(text, usage.close)
    if args_end < usage.close:
        result.append(EditOperation.delete(args_end, usage.close))
    return result


# ============================================================================
# PASS
# ============================================================================

def rewrite_hkt(
    text: str,
    contexts: Optional[ContextMap] = None,
    jsx: bool = False,
    filename: str = "<input>",
    debug: bool = False
) -> Tuple[List[EditOperation], List[ScopeRegion], List[Dict]]:
    """
    Compute the HKT edit batch for one snapshot of `text`.

    Declarations whose enclosing block never closes are reported and left
    completely untouched; everything else is still rewritten.

    Returns:
        (edits, regions, diagnostics) where edits are relative to `text`
    """
    if contexts is None:
        contexts = scan_contexts(text, jsx=jsx)

    declarations = find_hkt_declarations(text, contexts)
    if not declarations:
        return [], [], []

    regions = []
    diagnostics = []
    for declaration in declarations:
        try:
            region = compute_scope(text, contexts, declaration)
        except UnterminatedScope as e:
            diagnostics.append(make_diagnostic(
                UNTERMINATED_SCOPE,
                str(e),
                declaration.start,
                declaration.end,
                source_text=text,
                filename=filename,
                suggestions=["Check that the declaration's body is closed with '}'"]
            ))
            if debug:
                print(f"DEBUG: {e} at offset {declaration.start}", file=sys.stderr)
            continue
        regions.append(region)
        if debug:
            print(f"DEBUG: HKT '{region.name}' arity {region.arity} "
                  f"scope [{region.scope_start}, {region.scope_end})", file=sys.stderr)

    edits = []
    for region in regions:
        edits.append(EditOperation.delete(region.decl_start + len(region.name), region.decl_end))

    for usage in find_hkt_usages(text, contexts, {r.name for r in regions}):
        region = resolve_region(regions, usage.name, usage.start)
        if region is None:
            continue
        if debug:
            print(f"DEBUG: HKT usage {text[usage.start:usage.close + 1]!r} "
                  f"in scope of '{region.name}' at {region.decl_start}", file=sys.stderr)
        edits.extend(usage_edits(text, usage))

    return edits, regions, diagnostics
