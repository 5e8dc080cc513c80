"""
sugarcube Token-Merging Front End
Tokenizes standard syntax and merges byte-adjacent `|` `>` and `:` `:` into
single operator tokens. Alternative front end; the text-level passes do not
depend on it
"""

import re
from bisect import bisect_right
from typing import Any, List, Optional
from dataclasses import dataclass

from operator_pass import SugarOperator, enabled_operators
from scanning import ContextKind, scan_contexts
from utilities import line_starts


@dataclass(frozen=True)
class SourceSpan:
    """Source location information"""
    filename: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    text: str = ""
    offset: int = 0

    @property
    def end_offset(self) -> int:
        return self.offset + len(self.text)

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return f"{self.filename}:{self.start_line}:{self.start_col}-{self.end_col}"
        return f"{self.filename}:{self.start_line}:{self.start_col}-{self.end_line}:{self.end_col}"


@dataclass(frozen=True)
class Token:
    """Token with source information"""
    type: str
    value: Any
    span: SourceSpan
    had_line_break: bool = False

    def __str__(self) -> str:
        return f"{self.type}({self.value})"


class TokenizerError(Exception):
    """Character that starts no token"""
    pass


class SpanFactory:
    """Builds SourceSpans from offsets of one text"""

    def __init__(self, text: str, filename: str = "<input>"):
        self.text = text
        self.filename = filename
        self._starts = line_starts(text)

    def _line_col(self, offset: int):
        index = bisect_right(self._starts, offset) - 1
        return index + 1, offset - self._starts[index] + 1

    def make(self, start: int, end: int) -> SourceSpan:
        start_line, start_col = self._line_col(start)
        end_line, end_col = self._line_col(end)
        return SourceSpan(self.filename, start_line, start_col, end_line, end_col,
                          self.text[start:end], start)


class SugarTokenizer:
    """Priority-based tokenizer for standard syntax"""

    def __init__(self, filename: str = "<input>", jsx: bool = False):
        self.filename = filename
        self.jsx = jsx
        self._setup_token_patterns()

    def _setup_token_patterns(self):
        """Setup token patterns"""

        # Numbers: hex/binary/octal, decimals with exponent, bigint suffix
        self.number_pattern = re.compile(
            r'(?:0[xXbBoO][0-9a-fA-F_]+|(?:\d[\d_]*)?\.?\d[\d_]*(?:[eE][+-]?\d+)?)n?'
        )

        # Identifiers (unicode letters, `_` and `$`, no leading digits)
        self.identifier_pattern = re.compile(r'[^\W\d][\w$]*|\$[\w$]*')

        self.keywords = {
            'abstract', 'as', 'async', 'await', 'break', 'case', 'catch', 'class',
            'const', 'continue', 'declare', 'default', 'delete', 'do', 'else',
            'enum', 'export', 'extends', 'false', 'finally', 'for', 'from',
            'function', 'if', 'implements', 'import', 'in', 'instanceof',
            'interface', 'keyof', 'let', 'new', 'null', 'of', 'readonly',
            'return', 'super', 'switch', 'this', 'throw', 'true', 'try',
            'type', 'typeof', 'undefined', 'var', 'void', 'while', 'yield',
        }

        self.delimiters = set('()[]{},;')

    def tokenize(self, text: str) -> List[Token]:
        """
        Tokenize `text`. Literal and comment extents come from the context
        scanner; comments are dropped.
        """
        spans = SpanFactory(text, self.filename)
        contexts = scan_contexts(text, jsx=self.jsx)
        tokens = []
        line_break = False

        for kind, start, end in contexts.runs():
            if kind is ContextKind.COMMENT:
                line_break = line_break or '\n' in text[start:end]
                continue
            if kind is ContextKind.STRING:
                tokens.append(Token(self._literal_type(text[start]), text[start:end],
                                    spans.make(start, end), line_break))
                line_break = False
                continue

            pos = start
            while pos < end:
                if text[pos].isspace():
                    if text[pos] == '\n':
                        line_break = True
                    pos += 1
                    continue
                token = self._match_token_at_position(text, pos, end, spans, line_break)
                if token is None:
                    raise TokenizerError(f"Unknown character '{text[pos]}' at {spans.make(pos, pos + 1)}")
                tokens.append(token)
                line_break = False
                pos = token.span.end_offset

        return tokens

    def _literal_type(self, first: str) -> str:
        if first in '"\'':
            return "STRING"
        if first == '/':
            return "REGEX"
        return "TEMPLATE"

    def _match_token_at_position(
        self, text: str, pos: int, end: int, spans: SpanFactory, line_break: bool
    ) -> Optional[Token]:
        """Match a token at a specific position using priority order"""

        # Priority 1: Numbers
        if text[pos].isdigit() or (text[pos] == '.' and pos + 1 < end and text[pos + 1].isdigit()):
            num_match = self.number_pattern.match(text, pos, end)
            if num_match and num_match.end() > pos:
                return Token("NUMBER", num_match.group(0), spans.make(pos, num_match.end()), line_break)

        # Priority 2: Identifiers and keywords
        id_match = self.identifier_pattern.match(text, pos, end)
        if id_match:
            value = id_match.group(0)
            kind = "KEYWORD" if value in self.keywords else "IDENTIFIER"
            return Token(kind, value, spans.make(pos, id_match.end()), line_break)

        # Priority 3: Delimiters and single-character punctuation
        if text[pos] in self.delimiters:
            return Token("DELIMITER", text[pos], spans.make(pos, pos + 1), line_break)
        if not text[pos].isspace():
            return Token("PUNCT", text[pos], spans.make(pos, pos + 1), line_break)

        return None


# Standard token pairs that form each operator when byte-adjacent
_OPERATOR_PAIRS = {
    SugarOperator.PIPELINE: ('|', '>'),
    SugarOperator.CONS: (':', ':'),
}


def merge_operator_tokens(tokens: List[Token], flags=None) -> List[Token]:
    """
    Merge byte-adjacent `|` `>` into a PIPELINE token and `:` `:` into a
    CONS token, for each operator enabled by `flags`
    """
    pairs = {_OPERATOR_PAIRS[op]: op for op in enabled_operators(flags)}
    result = []
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if i + 1 < len(tokens) and tok.type == "PUNCT":
            nxt = tokens[i + 1]
            op = pairs.get((tok.value, nxt.value)) if nxt.type == "PUNCT" else None
            if op is not None and tok.span.end_offset == nxt.span.offset:
                span = SourceSpan(
                    tok.span.filename, tok.span.start_line, tok.span.start_col,
                    nxt.span.end_line, nxt.span.end_col, op.token, tok.span.offset
                )
                result.append(Token(op.name, op.token, span, tok.had_line_break))
                i += 2
                continue
        result.append(tok)
        i += 1
    return result


def tokenize(text: str, filename: str = "<input>", flags=None, jsx: bool = False) -> List[Token]:
    """Tokenize and merge operator tokens"""
    return merge_operator_tokens(SugarTokenizer(filename, jsx=jsx).tokenize(text), flags)
