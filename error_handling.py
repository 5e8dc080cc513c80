"""
Diagnostics for the sugarcube preprocessor with detailed error messages
Pure functional style - diagnostics are plain dictionaries, exception
classes exist only to carry them through control flow
"""

from typing import Callable, List, Optional, Dict
from pyparsing import ParseBaseException

from utilities import offset_to_line_col


# ============================================================================
# DIAGNOSTIC KINDS
# ============================================================================

UNTERMINATED_SCOPE = "UNTERMINATED_SCOPE"
ITERATION_LIMIT_EXCEEDED = "ITERATION_LIMIT_EXCEEDED"
DOWNSTREAM_PARSE_FAILURE = "DOWNSTREAM_PARSE_FAILURE"

ERROR = "error"


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_diagnostic(
    kind: str,
    message: str,
    start: int,
    end: int,
    source_text: Optional[str] = None,
    filename: str = "<input>",
    severity: str = ERROR,
    downstream: bool = False,
    internal: bool = False,
    suggestions: Optional[List[str]] = None
) -> Dict:
    """Create an immutable diagnostic structure anchored at [start, end)"""
    line, column = (0, 0)
    context = None
    if source_text is not None:
        line, column = offset_to_line_col(source_text, start)
        context = get_context_lines(source_text, line, column)
    return {
        'kind': kind,
        'severity': severity,
        'message': message,
        'start': start,
        'end': end,
        'filename': filename,
        'line': line,
        'column': column,
        'context': context,
        'downstream': downstream,
        'internal': internal,
        'suggestions': suggestions or []
    }


def format_diagnostic(diagnostic: Dict) -> str:
    """Format a diagnostic as string"""
    location = diagnostic['filename']
    if diagnostic['line']:
        location += f":{diagnostic['line']}:{diagnostic['column']}"

    label = diagnostic['kind'].lower().replace('_', ' ')
    msg = f"{location}: {diagnostic['severity']}: {label}: {diagnostic['message']}\n"

    if diagnostic['downstream']:
        msg += "  Note: reported by the standard parser after rewriting; the location is approximate\n"

    if diagnostic['internal']:
        msg += "  Note: this is an internal fault of the preprocessor, not an error in the input\n"

    if diagnostic['context']:
        msg += f"{diagnostic['context']}\n"

    if diagnostic['suggestions']:
        msg += "  Suggestions:\n"
        for suggestion in diagnostic['suggestions']:
            msg += f"    - {suggestion}\n"

    return msg


def has_errors(diagnostics: List[Dict]) -> bool:
    return any(d['severity'] == ERROR for d in diagnostics)


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def get_context_lines(source_text: str, line_num: int, col_num: int, context_lines: int = 1) -> str:
    """Get context lines around the error"""
    lines = source_text.split('\n')
    start_line = max(0, line_num - context_lines - 1)
    end_line = min(len(lines), line_num + context_lines)

    context_parts = []
    for i in range(start_line, end_line):
        line_prefix = f"{i+1:4d}: "
        context_parts.append(f"{line_prefix}{lines[i]}")
        if i == line_num - 1:
            context_parts.append(f"{'':6}{' ' * (col_num - 1)}^")

    return '\n'.join(context_parts)


def extract_got(text: str, offset: int) -> str:
    """Extract what was actually found at the error location"""
    got_text = text[offset:offset + 12].split('\n')[0].strip()
    if got_text:
        return f"'{got_text}'"
    return "end of line" if offset < len(text) else "end of input"


def generate_suggestions(rewritten_text: str, offset: int) -> List[str]:
    """Generate helpful suggestions based on where the standard parser failed"""
    suggestions = []
    window = rewritten_text[max(0, offset - 40):offset + 40]

    if "__binop__(," in window.replace(' ', '') or "__binop__( ," in window:
        suggestions.append("An operator ('|>' or '::') has no left operand")

    if ", )" in window or ",)" in window:
        if "__binop__" in window:
            suggestions.append("An operator ('|>' or '::') has no right operand")

    if "<_" in window:
        suggestions.append("A higher-kinded parameter '<_>' was left in place; "
                           "check that its declaration is enclosed in a complete block")

    return suggestions


def enhance_parse_exception_dict(
    exc: ParseBaseException,
    rewritten_text: str,
    original_text: str,
    to_original: Callable[[int], int],
    filename: str = "<input>"
) -> Dict:
    """Convert a pyparsing exception over rewritten text into a downstream diagnostic"""
    offset = min(exc.loc, len(rewritten_text))
    original_offset = to_original(offset)
    suggestions = generate_suggestions(rewritten_text, offset)

    message = f"standard parser rejected the rewritten text near {extract_got(rewritten_text, offset)}"
    if exc.msg:
        message += f" ({exc.msg})"

    return make_diagnostic(
        DOWNSTREAM_PARSE_FAILURE,
        message,
        original_offset,
        original_offset + 1,
        source_text=original_text,
        filename=filename,
        downstream=True,
        suggestions=suggestions
    )


# ============================================================================
# EXCEPTION CLASSES
# ============================================================================

class SugarcubeError(Exception):
    """Base exception carrying a diagnostic dictionary"""

    def __init__(self, diagnostic: Dict):
        self.diagnostic = diagnostic
        self.message = diagnostic['message']
        super().__init__(self.message)

    def __str__(self) -> str:
        return format_diagnostic(self.diagnostic)


class IterationLimitExceeded(SugarcubeError):
    """The operator rewrite loop did not reach a fixed point; aborts the whole call"""
    pass


class DownstreamParseError(SugarcubeError):
    """The standard parser rejected the rewritten text"""
    pass
