"""
sugarcube Structural Parser
Checks rewritten text at bracket level with pyparsing and builds a concrete
syntax tree of groups, `__binop__` calls, literals and tokens
"""

from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field

from pyparsing import (
    Forward, Group, OneOrMore, ParseBaseException, Regex, StringEnd,
    Suppress, ZeroOrMore,
)

from error_handling import (
    DownstreamParseError,
    IterationLimitExceeded,
    enhance_parse_exception_dict,
)
from lexer import SourceSpan, SpanFactory, Token, tokenize
from preprocess import Dialect, FeatureFlags, PreprocessResult, create_preprocessor
from scanning import ContextKind, scan_contexts


@dataclass(frozen=True)
class CSTNode:
    """Concrete Syntax Tree node over the rewritten text"""
    type: str
    value: Any
    children: List['CSTNode'] = field(default_factory=list)
    span: Optional[SourceSpan] = None

    def __str__(self) -> str:
        if self.children:
            children_str = ", ".join(str(child) for child in self.children)
            return f"{self.type}({self.value}, [{children_str}])"
        return f"{self.type}({self.value})"


# ============================================================================
# LITERAL MASKING
# ============================================================================

def mask_literals(text: str, jsx: bool = False) -> str:
    """
    Length-preserving copy of `text` in which every string, template and
    regex literal becomes `"~~~"` and every comment becomes blanks, so that
    only code structure is left for the grammar
    """
    contexts = scan_contexts(text, jsx=jsx)
    parts = []
    for kind, start, end in contexts.runs():
        chunk = text[start:end]
        if kind is ContextKind.STRING:
            parts.append('"' + '~' * (len(chunk) - 2) + '"' if len(chunk) >= 2 else '"')
        elif kind is ContextKind.COMMENT:
            parts.append(''.join(c if c == '\n' else ' ' for c in chunk))
        else:
            parts.append(''.join(' ' if c.isspace() and c != '\n' else c for c in chunk))
    return ''.join(parts)


def match_brackets(masked: str) -> Dict[int, int]:
    """Offset of each opening bracket mapped to its closing bracket"""
    closers = {}
    stack = []
    for i, c in enumerate(masked):
        if c in '([{':
            stack.append(i)
        elif c in ')]}' and stack:
            closers[stack.pop()] = i
    return closers


# ============================================================================
# GRAMMAR
# ============================================================================

class SugarcubeGrammar:
    """Bracket-level grammar for rewritten text"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._setup_grammar()

    @staticmethod
    def _leaf(kind: str):
        return lambda s, loc, t: (kind, {"start": loc, "end": loc + len(t[0])})

    @staticmethod
    def _group(brackets: str):
        return lambda s, loc, t: ("GROUP", {"brackets": brackets, "start": loc, "children": list(t[0])})

    def _setup_grammar(self):
        """Setup the grammar: balanced groups and well-formed `__binop__` calls"""

        item = Forward()
        arg_item = Forward()

        # Masked literals only ever contain `~`
        string_literal = Regex(r'"~*"').set_parse_action(self._leaf("STRING"))

        binop_name = Regex(r'__binop__(?=\s*\()')
        identifier = Regex(r'(?!__binop__\s*\()(?:[^\W\d][\w$]*|\$[\w$]*)').set_parse_action(self._leaf("TOKEN"))
        number = Regex(r'\d[\w.]*').set_parse_action(self._leaf("TOKEN"))
        punctuation = Regex(r'[^\w\s$()\[\]{}"]').set_parse_action(self._leaf("TOKEN"))
        arg_punctuation = Regex(r'[^\w\s$()\[\]{}",]').set_parse_action(self._leaf("TOKEN"))

        paren_group = (Suppress("(") - Group(ZeroOrMore(item)) - Suppress(")")).set_parse_action(self._group("()"))
        bracket_group = (Suppress("[") - Group(ZeroOrMore(item)) - Suppress("]")).set_parse_action(self._group("[]"))
        brace_group = (Suppress("{") - Group(ZeroOrMore(item)) - Suppress("}")).set_parse_action(self._group("{}"))

        # __binop__(left, "op", right): exactly three arguments, none empty
        operand = Group(OneOrMore(arg_item))
        binop_call = (
            Suppress(binop_name) + Suppress("(")
            - operand - Suppress(",")
            - string_literal - Suppress(",")
            - operand - Suppress(")")
        ).set_parse_action(lambda s, loc, t: ("BINOP", {
            "start": loc, "left": list(t[0]), "operator": t[1], "right": list(t[2])
        }))
        binop_call.set_name("__binop__ call")

        arg_item <<= (binop_call | paren_group | bracket_group | brace_group
                      | string_literal | identifier | number | arg_punctuation)
        item <<= (binop_call | paren_group | bracket_group | brace_group
                  | string_literal | identifier | number | punctuation)

        self.program = ZeroOrMore(item) + StringEnd()

    def parse_program(self, text: str, filename: str = "<input>", jsx: bool = False) -> CSTNode:
        """
        Parse rewritten text into a PROGRAM node.

        Raises:
            ParseBaseException: the text is not structurally valid
        """
        masked = mask_literals(text, jsx=jsx)
        result = self.program.parse_string(masked, parse_all=True)
        return self._convert_to_cst(result, text, masked, filename)

    def _convert_to_cst(self, parse_result: Any, text: str, masked: str, filename: str) -> CSTNode:
        """Convert pyparsing results to CST nodes"""
        spans = SpanFactory(text, filename)
        closers = match_brackets(masked)

        def operand_node(items: List) -> CSTNode:
            children = [convert_item(item) for item in items]
            return CSTNode("OPERAND", None, children,
                           spans.make(children[0].span.offset, children[-1].span.end_offset))

        def convert_item(item) -> CSTNode:
            node_type, value = item
            start = value["start"]

            if node_type in ("TOKEN", "STRING"):
                end = value["end"]
                return CSTNode(node_type, text[start:end], [], spans.make(start, end))

            if node_type == "GROUP":
                end = closers[start] + 1
                children = [convert_item(child) for child in value["children"]]
                return CSTNode("GROUP", value["brackets"], children, spans.make(start, end))

            # BINOP
            end = closers[masked.index('(', start)] + 1
            op = value["operator"][1]
            operator = text[op["start"] + 1:op["end"] - 1]
            children = [operand_node(value["left"]), operand_node(value["right"])]
            return CSTNode("BINOP", operator, children, spans.make(start, end))

        children = [convert_item(item) for item in parse_result]
        return CSTNode("PROGRAM", filename, children, spans.make(0, len(text)))


# ============================================================================
# PARSER
# ============================================================================

class SugarcubeParser:
    """Preprocessor followed by the structural parse"""

    def __init__(
        self,
        flags: Optional[FeatureFlags] = None,
        dialect: Optional[Dialect] = None,
        debug: bool = False
    ):
        self.debug = debug
        self.preprocessor = create_preprocessor(flags, dialect, debug)
        self.grammar = SugarcubeGrammar(debug)

    def parse_result(self, result: PreprocessResult) -> CSTNode:
        """
        Structurally parse the output of one preprocess call.

        Raises:
            DownstreamParseError: with the failure mapped back to the original text
        """
        jsx = self.preprocessor.dialect_for(result.filename).jsx
        try:
            return self.grammar.parse_program(result.text, result.filename, jsx=jsx)
        except ParseBaseException as e:
            raise DownstreamParseError(enhance_parse_exception_dict(
                e, result.text, result.source, result.to_original, result.filename
            ))

    def parse_string(self, source: str, filename: str = "<input>") -> CSTNode:
        """Preprocess and parse source code from string"""
        return self.parse_result(self.preprocessor.preprocess_string(source, filename))

    def parse_file(self, filepath: str) -> CSTNode:
        """Preprocess and parse a source file"""
        return self.parse_result(self.preprocessor.preprocess_file(filepath))

    def check_string(self, source: str, filename: str = "<input>") -> List[Dict]:
        """
        Every diagnostic for `source`: those of the preprocessor, then at
        most one downstream parse failure
        """
        try:
            result = self.preprocessor.preprocess_string(source, filename)
        except IterationLimitExceeded as e:
            return [e.diagnostic]
        diagnostics = list(result.diagnostics)
        try:
            self.parse_result(result)
        except DownstreamParseError as e:
            diagnostics.append(e.diagnostic)
        return diagnostics

    def tokenize(self, source: str, filename: str = "<input>") -> List[Token]:
        """Tokenize source with operator tokens merged"""
        jsx = self.preprocessor.dialect_for(filename).jsx
        return tokenize(source, filename, self.preprocessor.flags, jsx=jsx)


# Factory functions for creating parsers
def create_parser(
    flags: Optional[FeatureFlags] = None,
    dialect: Optional[Dialect] = None,
    debug: bool = False
) -> SugarcubeParser:
    """Create a sugarcube parser"""
    return SugarcubeParser(flags=flags, dialect=dialect, debug=debug)


def create_debug_parser(
    flags: Optional[FeatureFlags] = None,
    dialect: Optional[Dialect] = None
) -> SugarcubeParser:
    """Create a sugarcube parser with debug enabled"""
    return SugarcubeParser(flags=flags, dialect=dialect, debug=True)


def check_source(
    source: str,
    filename: str = "<input>",
    flags: Optional[FeatureFlags] = None,
    dialect: Optional[Dialect] = None
) -> List[Dict]:
    """Run the preprocessor and the structural parse, returning all diagnostics"""
    return create_parser(flags, dialect).check_string(source, filename)


def parse_source(
    source: str,
    filename: str = "<input>",
    flags: Optional[FeatureFlags] = None,
    dialect: Optional[Dialect] = None
) -> CSTNode:
    """Run the preprocessor and return the CST of the rewritten text"""
    return create_parser(flags, dialect).parse_string(source, filename)


# Utility functions for working with CST
def find_nodes_by_type(cst: CSTNode, node_type: str) -> List[CSTNode]:
    """Find all nodes of a specific type in CST"""
    result = []

    def search(node: CSTNode):
        if node.type == node_type:
            result.append(node)
        for child in node.children:
            search(child)

    search(cst)
    return result


def pretty_print_cst(cst: CSTNode, indent: int = 0) -> str:
    """Pretty print a CST node for debugging"""
    result = "  " * indent + f"{cst.type}"
    if cst.value is not None:
        result += f"({repr(cst.value)})"
    result += "\n"

    for child in cst.children:
        result += pretty_print_cst(child, indent + 1)

    return result


def cst_to_dict(cst: CSTNode) -> Dict[str, Any]:
    """Convert CST to dictionary representation"""
    result = {
        "type": cst.type,
        "value": cst.value,
        "span": {
            "filename": cst.span.filename,
            "start_line": cst.span.start_line,
            "start_col": cst.span.start_col,
            "end_line": cst.span.end_line,
            "end_col": cst.span.end_col,
        } if cst.span else None,
        "children": [cst_to_dict(child) for child in cst.children]
    }
    return result
