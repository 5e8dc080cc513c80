"""
sugarcube Context Scanner
Single left-to-right pass classifying every source offset as code, string,
comment or type position
"""

from typing import List, Optional, Tuple
from dataclasses import dataclass
from enum import Enum

from utilities import (
    EXPRESSION_KEYWORDS,
    is_ident_char,
    is_ident_start,
    is_word_start,
    scan_word,
    scan_word_backward,
    skip_whitespace,
)


class ContextKind(Enum):
    """Classification of a single source offset (innermost context wins)"""
    CODE = 0
    STRING = 1
    COMMENT = 2
    TYPE = 3


_KINDS = {kind.value: kind for kind in ContextKind}

# Statement-level words after which `type` / `interface` may open a declaration
_DECLARATION_PREFIXES = frozenset({'export', 'declare', 'default'})

# Last significant characters after which `{` opens an object literal
_OBJECT_LITERAL_PREV = frozenset('=(,:[?&|!+-*/%~^<')

# Last significant characters after which `{` inside an annotation is an object type
_OBJECT_TYPE_PREV = frozenset(':|&(,<')

# Last significant characters after which `/` starts a regular expression literal
_REGEX_PREV = frozenset('(,=:[!&|?{};+-*%<>~^')


class ContextMap:
    """Per-offset classification of one snapshot of a text buffer"""

    def __init__(self, text: str, kinds: bytearray):
        self.text = text
        self._kinds = kinds

    def __len__(self) -> int:
        return len(self._kinds)

    def kind_at(self, offset: int) -> ContextKind:
        """Context of the character at `offset`; offsets past the end are code"""
        if offset < 0 or offset >= len(self._kinds):
            return ContextKind.CODE
        return _KINDS[self._kinds[offset]]

    def is_code(self, offset: int) -> bool:
        return self.kind_at(offset) is ContextKind.CODE

    def is_literal(self, offset: int) -> bool:
        """True inside string/template/regex literal text or a comment"""
        return self.kind_at(offset) in (ContextKind.STRING, ContextKind.COMMENT)

    def is_source(self, offset: int) -> bool:
        """True for code and type positions, i.e. anything that is not literal text"""
        return not self.is_literal(offset)

    def runs(self) -> List[Tuple[ContextKind, int, int]]:
        """Maximal runs of equal classification as (kind, start, end) triples"""
        result = []
        start = 0
        for i in range(1, len(self._kinds) + 1):
            if i == len(self._kinds) or self._kinds[i] != self._kinds[start]:
                result.append((_KINDS[self._kinds[start]], start, i))
                start = i
        return result


@dataclass
class _Frame:
    """One open bracket (or the file itself) on the scanner's stack"""
    closer: Optional[str]
    type_frame: bool = False
    object_literal: bool = False
    template: bool = False
    ends_interface: bool = False
    # 'colon' (type annotation), 'alias' (type alias) or 'interface' (header)
    annotation: Optional[str] = None
    ternaries: int = 0
    cases: int = 0


class ContextScanner:
    """
    Classifies offsets with a bracket stack, a template-literal stack and a
    handful of type-position heuristics. Pure function of (text, jsx).
    """

    def __init__(self, text: str, jsx: bool = False):
        self.text = text
        self.jsx = jsx
        self.kinds = bytearray(len(text))
        self.frames: List[_Frame] = [_Frame(None)]
        self.prev_char: Optional[str] = None
        self.prev_before: Optional[str] = None
        self.prev_word: Optional[str] = None
        self.prev_index = -1
        self.last_closed_type_paren = False

    def scan(self) -> ContextMap:
        i = 0
        n = len(self.text)
        while i < n:
            i = self._step(i)
        return ContextMap(self.text, self.kinds)

    # ------------------------------------------------------------------
    # bookkeeping
    # ------------------------------------------------------------------

    def _mark(self, start: int, end: int, kind: ContextKind):
        self.kinds[start:end] = bytes([kind.value]) * (end - start)

    def _note(self, index: int, word: Optional[str] = None, as_char: Optional[str] = None):
        """Record the last significant token ending at `index`"""
        self.prev_char = as_char if as_char is not None else self.text[index]
        self.prev_before = self.text[index - 1] if index > 0 else None
        self.prev_word = word
        self.prev_index = index

    def _in_type(self) -> bool:
        frame = self.frames[-1]
        return frame.type_frame or frame.annotation is not None

    def _kind(self) -> ContextKind:
        return ContextKind.TYPE if self._in_type() else ContextKind.CODE

    def _push(self, frame: _Frame):
        self.frames.append(frame)

    # ------------------------------------------------------------------
    # main dispatch
    # ------------------------------------------------------------------

    def _step(self, i: int) -> int:
        text = self.text
        ch = text[i]
        nxt = text[i + 1] if i + 1 < len(text) else ''

        if ch == '/' and nxt == '/':
            end = text.find('\n', i)
            end = len(text) if end < 0 else end
            self._mark(i, end, ContextKind.COMMENT)
            return end

        if ch == '/' and nxt == '*':
            end = text.find('*/', i + 2)
            end = len(text) if end < 0 else end + 2
            self._mark(i, end, ContextKind.COMMENT)
            return end

        if ch in '"\'':
            end = string_end(text, i)
            self._mark(i, end, ContextKind.STRING)
            self._note(end - 1, as_char='"')
            return end

        if ch == '`':
            return self._scan_template_chunk(i, i + 1)

        if ch == '/' and not self._in_type() and self._regex_allowed(i):
            end = regex_end(text, i)
            if end is not None:
                self._mark(i, end, ContextKind.STRING)
                self._note(end - 1, as_char='"')
                return end

        if ch.isspace():
            if ch == '\n':
                self._end_annotation_at_newline(i)
            self._mark(i, i + 1, self._kind())
            return i + 1

        if is_word_start(text, i):
            return self._word(i)

        return self._punct(i)

    # ------------------------------------------------------------------
    # literals
    # ------------------------------------------------------------------

    def _scan_template_chunk(self, start: int, j: int) -> int:
        """Classify template text from `start` up to `${` or the closing backtick"""
        text = self.text
        while j < len(text):
            c = text[j]
            if c == '\\':
                j += 2
                continue
            if c == '`':
                self._mark(start, j + 1, ContextKind.STRING)
                self._note(j, as_char='"')
                return j + 1
            if c == '$' and j + 1 < len(text) and text[j + 1] == '{':
                self._mark(start, j + 2, ContextKind.STRING)
                self._push(_Frame('}', type_frame=self._in_type(), template=True))
                self._note(j + 1, as_char='(')
                return j + 2
            j += 1
        self._mark(start, len(text), ContextKind.STRING)
        return len(text)

    def _regex_allowed(self, i: int) -> bool:
        if self.prev_char is None:
            return True
        if self.prev_word is not None:
            return self.prev_word in EXPRESSION_KEYWORDS
        return self.prev_char in _REGEX_PREV

    # ------------------------------------------------------------------
    # words
    # ------------------------------------------------------------------

    def _word(self, i: int) -> int:
        end = scan_word(self.text, i)
        word = self.text[i:end]
        frame = self.frames[-1]
        # property names such as `Maybe.of` are never keywords
        member = self.prev_word is None and self.prev_char == '.'

        if self._in_type():
            self._mark(i, end, ContextKind.TYPE)
        elif member:
            self._mark(i, end, ContextKind.CODE)
        elif word in ('type', 'interface') and self._starts_declaration(i, end, word):
            frame.annotation = 'alias' if word == 'type' else 'interface'
            self._mark(i, end, ContextKind.TYPE)
        else:
            if word == 'case':
                frame.cases += 1
            self._mark(i, end, ContextKind.CODE)

        self._note(end - 1, word=None if member else word)
        return end

    def _starts_declaration(self, start: int, end: int, word: str) -> bool:
        """`type X =` / `interface X {` at the start of a statement"""
        text = self.text
        at_statement_start = (
            self.prev_char is None
            or (self.prev_word is None and self.prev_char in ';{}')
            or self.prev_word in _DECLARATION_PREFIXES
            or '\n' in text[self.prev_index + 1:start]
        )
        if not at_statement_start:
            return False
        j = skip_whitespace(text, end)
        if j >= len(text) or not is_ident_start(text[j]):
            return False
        k = skip_whitespace(text, scan_word(text, j))
        if k >= len(text):
            return False
        if word == 'type':
            return text[k] in '=<'
        return text[k] in '{<' or text.startswith('extends', k)

    # ------------------------------------------------------------------
    # punctuation
    # ------------------------------------------------------------------

    def _punct(self, i: int) -> int:
        text = self.text
        ch = text[i]
        nxt = text[i + 1] if i + 1 < len(text) else ''
        frame = self.frames[-1]

        if ch == '<':
            end = self._generic_end_at(i)
            if end is not None:
                self._mark_type_region(i, end)
                self._note(end - 1)
                return end

        if ch in '([{':
            return self._open(i)

        if ch in ')]}':
            return self._close(i)

        if frame.annotation is not None and not frame.type_frame:
            self._annotation_punct(i)
            self._mark(i, i + 1, self._kind())
            self._note(i)
            return i + 1

        if frame.type_frame:
            self._mark(i, i + 1, ContextKind.TYPE)
            self._note(i)
            return i + 1

        # plain code
        if ch == '?':
            if nxt in '?.':
                self._mark(i, i + 2, ContextKind.CODE)
                self._note(i + 1)
                return i + 2
            if nxt != ':':
                frame.ternaries += 1
        elif ch == ':':
            if nxt == ':':
                self._mark(i, i + 2, ContextKind.CODE)
                self._note(i + 1)
                return i + 2
            if frame.ternaries:
                frame.ternaries -= 1
            elif frame.cases:
                frame.cases -= 1
            elif not frame.object_literal and self.prev_word != 'default':
                frame.annotation = 'colon'
                self._mark(i, i + 1, ContextKind.TYPE)
                self._note(i)
                return i + 1
        elif ch == ';':
            frame.ternaries = 0
            frame.cases = 0

        self._mark(i, i + 1, ContextKind.CODE)
        self._note(i)
        return i + 1

    def _annotation_punct(self, i: int):
        """End an active annotation or alias on the characters that terminate it"""
        text = self.text
        frame = self.frames[-1]
        ch = text[i]
        nxt = text[i + 1] if i + 1 < len(text) else ''

        if ch == ';':
            frame.annotation = None
            frame.ternaries = 0
            frame.cases = 0
            return
        if frame.annotation != 'colon':
            return
        if ch == ',':
            frame.annotation = None
        elif ch == '=' and nxt == '>':
            if not (self.prev_char == ')' and self.last_closed_type_paren):
                frame.annotation = None
        elif ch == '=' and nxt != '=' and (i == 0 or text[i - 1] not in '=!<>'):
            frame.annotation = None

    def _end_annotation_at_newline(self, i: int):
        frame = self.frames[-1]
        if frame.annotation not in ('colon', 'alias') or frame.type_frame:
            return
        if self.prev_char is None or self.prev_char in '|&,:=<(?':
            return
        j = skip_whitespace(self.text, i)
        if j < len(self.text) and self.text[j] in '|&.<[={>?':
            return
        frame.annotation = None

    def _open(self, i: int) -> int:
        ch = self.text[i]
        frame = self.frames[-1]
        closer = {'(': ')', '[': ']', '{': '}'}[ch]

        if ch != '{':
            new = _Frame(closer, type_frame=self._in_type())
        elif frame.type_frame:
            new = _Frame(closer, type_frame=True)
        elif frame.annotation == 'interface':
            new = _Frame(closer, type_frame=True, ends_interface=True)
        elif frame.annotation == 'alias':
            new = _Frame(closer, type_frame=True)
        elif frame.annotation == 'colon':
            if self._opens_object_type():
                new = _Frame(closer, type_frame=True)
            else:
                frame.annotation = None
                new = _Frame(closer)
        else:
            new = _Frame(closer, object_literal=self._opens_object_literal())

        self._mark(i, i + 1, ContextKind.TYPE if new.type_frame else ContextKind.CODE)
        self._push(new)
        self._note(i)
        return i + 1

    def _close(self, i: int) -> int:
        ch = self.text[i]
        self._mark(i, i + 1, self._kind())

        depth = None
        for k in range(len(self.frames) - 1, 0, -1):
            if self.frames[k].closer == ch:
                depth = k
                break
        if depth is None:
            self._note(i)
            return i + 1

        popped = None
        while len(self.frames) > depth:
            popped = self.frames.pop()
            if popped.ends_interface:
                self.frames[-1].annotation = None
        self.last_closed_type_paren = popped.type_frame and ch == ')'

        if popped.template:
            return self._scan_template_chunk(i, i + 1)
        self._note(i)
        return i + 1

    def _opens_object_literal(self) -> bool:
        if self.prev_char is None:
            return False
        if self.prev_word is not None:
            return self.prev_word in EXPRESSION_KEYWORDS
        if self.prev_char == '>':
            return self.prev_before != '='
        return self.prev_char in _OBJECT_LITERAL_PREV

    def _opens_object_type(self) -> bool:
        if self.prev_char == '>' and self.prev_before == '=':
            return True
        return self.prev_word is None and self.prev_char in _OBJECT_TYPE_PREV

    # ------------------------------------------------------------------
    # generic argument lists
    # ------------------------------------------------------------------

    def _generic_end_at(self, i: int) -> Optional[int]:
        """End of a `<...>` type argument/parameter list starting at `i`, if any"""
        text = self.text
        if self._in_type():
            return None
        if i > 0 and is_ident_char(text[i - 1]):
            # `Name<...>` directly attached to an identifier
            if not is_ident_start(text[scan_word_backward(text, i)]):
                return None
            return generic_list_end(text, i)
        if self.prev_word is not None and self.prev_word not in EXPRESSION_KEYWORDS:
            return None
        if self.prev_char is not None and self.prev_word is None and self.prev_char not in '=(,:?[{':
            return None
        j = skip_whitespace(text, i + 1)
        if j >= len(text) or not is_ident_start(text[j]):
            return None
        if self.jsx:
            k = skip_whitespace(text, scan_word(text, j))
            if not (text.startswith(',', k) or text.startswith('extends', k)):
                return None
        end = generic_list_end(text, i)
        if end is None:
            return None
        k = skip_whitespace(text, end)
        if k < len(text) and text[k] == '(':
            return end
        # `<T>value` type assertion
        if not self.jsx and k < len(text) and (is_ident_start(text[k]) or text[k] in '(["\'`'):
            return end
        return None

    def _mark_type_region(self, start: int, end: int):
        text = self.text
        j = start
        while j < end:
            c = text[j]
            if c == '/' and j + 1 < end and text[j + 1] in '/*':
                close = text.find('\n' if text[j + 1] == '/' else '*/', j + 2)
                stop = end if close < 0 else min(end, close + (0 if text[j + 1] == '/' else 2))
                self._mark(j, stop, ContextKind.COMMENT)
                j = stop
            elif c in '"\'`':
                stop = min(end, string_end(text, j))
                self._mark(j, stop, ContextKind.STRING)
                j = stop
            else:
                self._mark(j, j + 1, ContextKind.TYPE)
                j += 1


# ============================================================================
# PURE HELPERS
# ============================================================================

def string_end(text: str, i: int) -> int:
    """Offset just past the quoted literal opening at `i` (stops at end of line)"""
    quote = text[i]
    j = i + 1
    while j < len(text):
        c = text[j]
        if c == '\\':
            j += 2
            continue
        if c == quote:
            return j + 1
        if c == '\n' and quote != '`':
            return j
        j += 1
    return len(text)


def regex_end(text: str, i: int) -> Optional[int]:
    """Offset just past a `/.../flags` literal opening at `i`, or None"""
    j = i + 1
    in_class = False
    while j < len(text):
        c = text[j]
        if c == '\n':
            return None
        if c == '\\':
            j += 2
            continue
        if in_class:
            if c == ']':
                in_class = False
        elif c == '[':
            in_class = True
        elif c == '/':
            j += 1
            while j < len(text) and text[j].isalpha():
                j += 1
            return j
        j += 1
    return None


def generic_list_end(text: str, i: int) -> Optional[int]:
    """
    Speculatively match the `<...>` list opening at `i`.

    Fails on anything a type argument list cannot contain at its own level:
    statement separators, logical or sugar operators, arithmetic or an
    unmatched closing bracket.
    """
    depth = 0
    brackets = 0
    j = i
    while j < len(text):
        c = text[j]
        if c in '"\'`':
            j = string_end(text, j)
            continue
        if c == '/' and j + 1 < len(text) and text[j + 1] in '/*':
            close = text.find('\n' if text[j + 1] == '/' else '*/', j + 2)
            if close < 0:
                return None
            j = close + (1 if text[j + 1] == '/' else 2)
            continue
        if c == '<':
            depth += 1
        elif c == '>':
            if j > 0 and text[j - 1] == '=':
                pass
            else:
                depth -= 1
                if depth == 0:
                    return j + 1
        elif c in '([{':
            brackets += 1
        elif c in ')]}':
            if brackets == 0:
                return None
            brackets -= 1
        elif brackets == 0:
            if c == ';':
                return None
            if c in '&|' and j + 1 < len(text) and text[j + 1] == c:
                return None
            if text.startswith('|>', j) or text.startswith('::', j):
                return None
            if c in '+*%!^~@#' or (c == '-' and not (j + 1 < len(text) and text[j + 1].isdigit())):
                return None
        j += 1
    return None


def scan_contexts(text: str, jsx: bool = False) -> ContextMap:
    """Classify every offset of `text`; the result is valid for this snapshot only"""
    return ContextScanner(text, jsx=jsx).scan()
