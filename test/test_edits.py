"""
Edit batch and position map tests
"""

import pytest
from edits import EditConflictError, EditOperation, PositionMap, Span, apply_edits, order_batch


class TestSpan:
  """Test half-open spans"""

  def test_length_and_str(self):
    """Spans are half-open"""
    span = Span(2, 5)
    assert len(span) == 3
    assert len(Span(4, 4)) == 0
    assert str(span) == "[2, 5)"

  def test_invalid_span(self):
    """Reversed spans are rejected"""
    with pytest.raises(ValueError):
      Span(5, 2)


class TestApplyEdits:
  """Test applying one batch of edits"""

  def test_insert_replace_delete(self):
    """A mixed batch is applied against the original offsets"""
    text = "const x = a |> f;"
    edits = [
        EditOperation.insert(10, "__binop__("),
        EditOperation(Span(11, 15), ', "|>", '),
        EditOperation.insert(16, ")"),
    ]
    result, layer = apply_edits(text, edits)
    assert result == 'const x = __binop__(a, "|>", f);'
    assert len(layer) == 3

  def test_order_does_not_matter(self):
    """Batches are sorted before they are applied"""
    text = "abcdef"
    edits = [EditOperation.delete(4, 5), EditOperation.insert(0, ">"), EditOperation(Span(1, 2), "B")]
    result, _ = apply_edits(text, edits)
    assert result == ">aBcdf"

  def test_empty_batch(self):
    """No edits leaves the text alone"""
    result, layer = apply_edits("same", [])
    assert result == "same"
    assert len(layer) == 0

  def test_overlapping_edits_rejected(self):
    """Overlapping replacements are an error"""
    with pytest.raises(EditConflictError):
      order_batch([EditOperation(Span(0, 3), "x"), EditOperation(Span(2, 4), "y")])

  def test_duplicate_insertions_rejected(self):
    """Two insertions at one offset have no defined order"""
    with pytest.raises(EditConflictError):
      order_batch([EditOperation.insert(3, "a"), EditOperation.insert(3, "b")])

  def test_insert_before_replacement(self):
    """An insertion may share the start of a replacement"""
    result, _ = apply_edits("ab", [EditOperation(Span(0, 1), "X"), EditOperation.insert(0, "<")])
    assert result == "<Xb"


class TestPositionMap:
  """Test mapping rewritten offsets back to the original"""

  @pytest.fixture
  def mapped(self):
    text = "const x = a |> f;"
    result, layer = apply_edits(text, [
        EditOperation.insert(10, "__binop__("),
        EditOperation(Span(11, 15), ', "|>", '),
        EditOperation.insert(16, ")"),
    ])
    position_map = PositionMap()
    position_map.push(layer)
    return text, result, position_map

  def test_untouched_text_maps_exactly(self, mapped):
    """Text outside every edit keeps its identity"""
    text, result, position_map = mapped
    assert position_map(0) == 0
    assert position_map(result.index("a,")) == text.index("a ")
    assert position_map(result.index("f)")) == text.index("f;")
    assert position_map(result.index(";")) == text.index(";")

  def test_replacement_maps_to_replaced_start(self, mapped):
    """Offsets inside replacement text map to the start of what it replaced"""
    text, result, position_map = mapped
    assert position_map(result.index("__binop__") + 4) == 10
    assert position_map(result.index('"|>"')) == 11

  def test_layers_compose(self):
    """Two batches map back through both layers"""
    position_map = PositionMap()
    first, layer = apply_edits("abc", [EditOperation.insert(0, "12")])
    position_map.push(layer)
    second, layer = apply_edits(first, [EditOperation.delete(2, 3)])
    position_map.push(layer)
    assert second == "12bc"
    assert position_map.to_original(second.index("c")) == 2
    assert len(position_map) == 2

  def test_empty_layer_ignored(self):
    """Empty batches do not add layers"""
    position_map = PositionMap()
    _, layer = apply_edits("abc", [])
    position_map.push(layer)
    assert len(position_map) == 0
    assert position_map(2) == 2
