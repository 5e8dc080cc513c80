"""
sugarcube edit batches
Half-open spans, replacement edits and the approximate position map built
from every batch that has been applied
"""

from bisect import bisect_right
from typing import Iterable, List, Tuple
from dataclasses import dataclass


@dataclass(frozen=True)
class Span:
    """Half-open [start, end) range of offsets into one text snapshot"""
    start: int
    end: int

    def __post_init__(self):
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid span [{self.start}, {self.end})")

    def __len__(self) -> int:
        return self.end - self.start

    def __str__(self) -> str:
        return f"[{self.start}, {self.end})"


@dataclass(frozen=True)
class EditOperation:
    """Replace the text in `span` with `replacement`"""
    span: Span
    replacement: str

    @classmethod
    def insert(cls, offset: int, text: str) -> 'EditOperation':
        return cls(Span(offset, offset), text)

    @classmethod
    def delete(cls, start: int, end: int) -> 'EditOperation':
        return cls(Span(start, end), "")

    @property
    def delta(self) -> int:
        return len(self.replacement) - len(self.span)


class EditConflictError(ValueError):
    """Two edits of one batch overlap"""
    pass


def order_batch(edits: Iterable[EditOperation]) -> List[EditOperation]:
    """
    Sort a batch by ascending position and reject overlaps.

    An insertion and a replacement may share a start offset; the insertion
    lands in front of the replacement text.
    """
    ordered = sorted(edits, key=lambda e: (e.span.start, e.span.end))
    for prev, cur in zip(ordered, ordered[1:]):
        if cur.span.start < prev.span.end:
            raise EditConflictError(f"Overlapping edits at {prev.span} and {cur.span}")
        if len(prev.span) == 0 and len(cur.span) == 0 and prev.span.start == cur.span.start:
            raise EditConflictError(f"Ambiguous insertions at offset {cur.span.start}")
    return ordered


def apply_edits(text: str, edits: Iterable[EditOperation]) -> Tuple[str, 'EditLayer']:
    """
    Apply one batch of non-overlapping edits computed against `text`.

    Edits are applied rightmost first so that offsets of the edits still
    waiting to be applied stay valid.

    Returns:
        (new_text, layer) where the layer records the batch for position mapping
    """
    ordered = order_batch(edits)
    result = text
    for edit in reversed(ordered):
        result = result[:edit.span.start] + edit.replacement + result[edit.span.end:]
    return result, EditLayer(ordered)


class EditLayer:
    """One applied batch: old spans and the new spans their replacements occupy"""

    def __init__(self, ordered: List[EditOperation]):
        self.old_spans: List[Span] = []
        self.new_spans: List[Span] = []
        shift = 0
        for edit in ordered:
            new_start = edit.span.start + shift
            self.old_spans.append(edit.span)
            self.new_spans.append(Span(new_start, new_start + len(edit.replacement)))
            shift += edit.delta
        self._new_starts = [span.start for span in self.new_spans]

    def __len__(self) -> int:
        return len(self.old_spans)

    def to_old(self, offset: int) -> int:
        """Map an offset in the text after this batch to the text before it"""
        k = bisect_right(self._new_starts, offset) - 1
        if k < 0:
            return offset
        new, old = self.new_spans[k], self.old_spans[k]
        if offset < new.end:
            return old.start
        return old.end + (offset - new.end)


class PositionMap:
    """
    Approximate mapping from offsets in the rewritten text back to the
    original source. Untouched text maps exactly; text produced by a
    replacement maps to the start of the range it replaced.
    """

    def __init__(self):
        self.layers: List[EditLayer] = []

    def __len__(self) -> int:
        return len(self.layers)

    def push(self, layer: EditLayer):
        if len(layer):
            self.layers.append(layer)

    def to_original(self, offset: int) -> int:
        for layer in reversed(self.layers):
            offset = layer.to_old(offset)
        return offset

    def __call__(self, offset: int) -> int:
        return self.to_original(offset)
