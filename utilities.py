"""
Utilities module for the sugarcube preprocessor
Contains small text helpers shared by the scanner and the rewrite passes
"""

from typing import List, Optional, Tuple


# ==================== CHARACTER CLASSES ====================

# Words after which a `{` opens an object literal rather than a block
EXPRESSION_KEYWORDS = frozenset({
  'return', 'yield', 'await', 'typeof', 'case', 'in', 'of', 'void',
  'delete', 'throw', 'new', 'instanceof', 'default',
})

# Characters that, as the last significant character before a line break,
# mean the expression continues on the next line
LINE_CONTINUATION_ENDINGS = frozenset('([{,=+-*/%&|^!~?:<>.')

# Characters that, as the first significant character of a line, mean the
# line continues the expression from the previous one
LINE_CONTINUATION_STARTS = frozenset('.?:+-*/%&|^=<>,)]}')


def is_ident_start(ch: Optional[str]) -> bool:
  """Check if a character can start an identifier"""
  return ch is not None and (ch.isalpha() or ch == '_' or ch == '$')


def is_ident_char(ch: Optional[str]) -> bool:
  """Check if a character can continue an identifier"""
  return ch is not None and (ch.isalnum() or ch == '_' or ch == '$')


def scan_word(text: str, start: int) -> int:
  """
  Find the end of the identifier starting at `start`

  Args:
    text: Source text
    start: Offset of the first identifier character

  Returns:
    Offset one past the last identifier character
  """
  i = start
  while i < len(text) and is_ident_char(text[i]):
    i += 1
  return i


def scan_word_backward(text: str, end: int) -> int:
  """Find the start of the identifier ending just before `end`"""
  i = end
  while i > 0 and is_ident_char(text[i - 1]):
    i -= 1
  return i


def is_word_start(text: str, i: int) -> bool:
  """Check if offset `i` begins a whole identifier (not the middle of one)"""
  if not is_ident_start(text[i]):
    return False
  return i == 0 or not is_ident_char(text[i - 1])


def skip_whitespace(text: str, i: int) -> int:
  """Advance past whitespace, returning the first non-space offset"""
  while i < len(text) and text[i].isspace():
    i += 1
  return i


def skip_whitespace_backward(text: str, i: int) -> int:
  """Move back over whitespace ending at `i`, returning the new end offset"""
  while i > 0 and text[i - 1].isspace():
    i -= 1
  return i


# ==================== POSITION UTILITIES ====================

def line_starts(text: str) -> List[int]:
  """Offsets at which each line of `text` begins"""
  starts = [0]
  for i, ch in enumerate(text):
    if ch == '\n':
      starts.append(i + 1)
  return starts


def offset_to_line_col(text: str, offset: int) -> Tuple[int, int]:
  """
  Convert a character offset into a 1-based (line, column) pair

  Args:
    text: Source text
    offset: Character offset, clamped into the text

  Returns:
    (line, column), both starting at 1

  Examples:
    offset_to_line_col("ab\\ncd", 3) -> (2, 1)
  """
  offset = max(0, min(offset, len(text)))
  line = text.count('\n', 0, offset) + 1
  last_newline = text.rfind('\n', 0, offset)
  return line, offset - last_newline
