"""
Operator rewriter tests
Tests precedence, associativity, operand boundaries and the rewrite loop
"""

import pytest
from edits import Span
from error_handling import ITERATION_LIMIT_EXCEEDED, IterationLimitExceeded
from operator_pass import (
    Occurrence,
    SugarOperator,
    enabled_operators,
    find_operator_occurrences,
    rewrite_operators,
    select_next_operator,
)
from preprocess import FeatureFlags
from scanning import scan_contexts


class TestOccurrences:
  """Test finding operator tokens"""

  def test_adjacent_characters_only(self):
    """`| >` and `: :` are not operators"""
    text = "a | > b; c ? d : : e"
    assert find_operator_occurrences(text, scan_contexts(text), tuple(SugarOperator)) == []

  def test_finds_both_operators(self):
    """Pipeline and cons tokens are reported in order"""
    text = "const x = a |> f;\nconst y = 1 :: [];"
    found = find_operator_occurrences(text, scan_contexts(text), tuple(SugarOperator))
    assert [o.operator for o in found] == [SugarOperator.PIPELINE, SugarOperator.CONS]
    assert found[0].start == text.index("|>")

  def test_disabled_operators_not_found(self):
    """Only enabled operators are reported"""
    text = "const x = a |> f;"
    operators = enabled_operators(FeatureFlags(pipeline=False))
    assert operators == (SugarOperator.CONS,)
    assert find_operator_occurrences(text, scan_contexts(text), operators) == []


class TestSelection:
  """Test which occurrence is rewritten next"""

  def occurrence(self, operator, start):
    return Occurrence(operator, Span(start, start + 2))

  def test_higher_precedence_first(self):
    """Cons binds tighter than pipeline"""
    pipe = self.occurrence(SugarOperator.PIPELINE, 2)
    cons = self.occurrence(SugarOperator.CONS, 10)
    assert select_next_operator([pipe, cons]) is cons

  def test_left_associative_takes_leftmost(self):
    """Among pipelines the leftmost wins"""
    first = self.occurrence(SugarOperator.PIPELINE, 2)
    second = self.occurrence(SugarOperator.PIPELINE, 8)
    assert select_next_operator([second, first]) is first

  def test_right_associative_takes_rightmost(self):
    """Among conses the rightmost wins"""
    first = self.occurrence(SugarOperator.CONS, 2)
    second = self.occurrence(SugarOperator.CONS, 8)
    assert select_next_operator([first, second]) is second

  def test_empty_selection(self):
    """Selecting from nothing is a programming error"""
    with pytest.raises(ValueError):
      select_next_operator([])

  def test_operator_properties(self):
    """Token, precedence and associativity of each operator"""
    assert SugarOperator.PIPELINE.token == "|>"
    assert SugarOperator.PIPELINE.precedence == 1
    assert not SugarOperator.PIPELINE.right_assoc
    assert SugarOperator.CONS.token == "::"
    assert SugarOperator.CONS.precedence == 5
    assert SugarOperator.CONS.right_assoc


class TestPipeline:
  """Test pipeline rewriting"""

  def test_simple(self, rewrite):
    """A single pipeline becomes one call"""
    assert rewrite("const x = a |> f;") == 'const x = __binop__(a, "|>", f);'

  def test_chain_is_left_nested(self, rewrite):
    """Pipelines associate to the left"""
    assert rewrite("const x = a |> f |> g;") == \
        'const x = __binop__(__binop__(a, "|>", f), "|>", g);'

  def test_call_operands(self, rewrite):
    """Calls and member access stay inside their operand"""
    assert rewrite("const x = load(path).data |> parse(opts);") == \
        'const x = __binop__(load(path).data, "|>", parse(opts));'

  def test_argument_position(self, rewrite):
    """Commas and parentheses bound operands"""
    assert rewrite("foo(a |> f, b);") == 'foo(__binop__(a, "|>", f), b);'

  def test_object_literal_value(self, rewrite):
    """A property value is its own operand"""
    assert rewrite("const o = { v: a |> f, w: 1 };") == \
        'const o = { v: __binop__(a, "|>", f), w: 1 };'

  def test_arrow_body(self, rewrite):
    """`=>` bounds the left operand"""
    assert rewrite("const g = (x) => x |> f;") == 'const g = (x) => __binop__(x, "|>", f);'

  def test_return_statement(self, rewrite):
    """Keywords before the operand are not part of it"""
    assert rewrite("function h(x) { return x |> f; }") == \
        'function h(x) { return __binop__(x, "|>", f); }'

  def test_keyword_named_property(self, rewrite):
    """Keyword spellings after `.` or `?.` are property names"""
    assert rewrite("const y = Maybe.of(3) |> map(f);") == \
        'const y = __binop__(Maybe.of(3), "|>", map(f));'
    assert rewrite("const c = cfg.default |> load;") == \
        'const c = __binop__(cfg.default, "|>", load);'
    assert rewrite("const o = obj?.of |> f;") == 'const o = __binop__(obj?.of, "|>", f);'

  def test_comparison_operand(self, rewrite):
    """A `<` comparison does not hide a following pipeline"""
    assert rewrite("const ok = n<limit |> not;") == 'const ok = __binop__(n<limit, "|>", not);'

  def test_ternary_branch(self, rewrite):
    """`?` and `:` of a conditional bound operands"""
    assert rewrite("const v = ok ? a |> f : b;") == 'const v = ok ? __binop__(a, "|>", f) : b;'

  def test_compound_assignment(self, rewrite):
    """`+=` ends the left operand"""
    assert rewrite("x += a |> f;") == 'x += __binop__(a, "|>", f);'

  def test_equality_is_inside_operand(self, rewrite):
    """Pipeline binds looser than comparison"""
    assert rewrite("const ok = a == b |> f;") == 'const ok = __binop__(a == b, "|>", f);'

  def test_multiline_chain(self, rewrite):
    """A line starting with `|>` continues the previous line"""
    source = "const r = data\n  |> parse\n  |> validate;"
    assert rewrite(source) == 'const r = __binop__(__binop__(data, "|>", parse), "|>", validate);'

  def test_line_break_ends_operand(self, rewrite):
    """Without a continuation character the line break ends the expression"""
    source = "const a = x |> f\nconst b = y"
    assert rewrite(source) == 'const a = __binop__(x, "|>", f)\nconst b = y'

  def test_template_interpolation(self, rewrite):
    """Operators inside `${...}` are rewritten in place"""
    assert rewrite("const s = `${a |> f}`;") == 'const s = `${__binop__(a, "|>", f)}`;'

  def test_missing_left_operand(self, rewrite):
    """A bare operator still rewrites, with an empty operand"""
    assert rewrite("const x = |> f;") == 'const x = __binop__(, "|>", f);'


class TestCons:
  """Test cons rewriting"""

  def test_simple(self, rewrite):
    """A single cons becomes one call"""
    assert rewrite("const l = 1 :: [];") == 'const l = __binop__(1, "::", []);'

  def test_chain_is_right_nested(self, rewrite):
    """Cons associates to the right"""
    assert rewrite("const l = 1 :: 2 :: 3 :: [];") == \
        'const l = __binop__(1, "::", __binop__(2, "::", __binop__(3, "::", [])));'

  def test_cons_before_pipeline(self, rewrite):
    """Cons operands are taken before the pipeline around them"""
    assert rewrite("const x = a :: b |> f;") == \
        'const x = __binop__(__binop__(a, "::", b), "|>", f);'

  def test_cons_on_pipeline_right(self, rewrite):
    """A cons to the right of a pipeline nests inside its right operand"""
    assert rewrite("const x = xs |> f :: g;") == \
        'const x = __binop__(xs, "|>", __binop__(f, "::", g));'


class TestUntouched:
  """Test text that must not change"""

  def test_literals_and_comments(self, rewrite):
    """Operators in strings and comments stay as written"""
    source = 'const s = "a |> b"; // x :: y\nconst t = \'1 :: []\';'
    assert rewrite(source) == source

  def test_type_alias(self, rewrite):
    """Type positions are not rewritten"""
    source = "type T = A |> B;"
    assert rewrite(source) == source

  def test_spaced_tokens(self, rewrite):
    """`| >` is not the pipeline operator"""
    source = "const x = a | > b;"
    assert rewrite(source) == source

  def test_disabled_pipeline(self, rewrite):
    """With pipeline disabled only cons is rewritten"""
    source = "const x = a |> f;\nconst l = 1 :: [];"
    assert rewrite(source, FeatureFlags(pipeline=False)) == \
        'const x = a |> f;\nconst l = __binop__(1, "::", []);'

  def test_disabled_cons(self, rewrite):
    """With cons disabled only pipeline is rewritten"""
    source = "const x = a |> f;\nconst l = 1 :: [];"
    assert rewrite(source, FeatureFlags(cons=False)) == \
        'const x = __binop__(a, "|>", f);\nconst l = 1 :: [];'


class TestRewriteLoop:
  """Test the fixed-point loop"""

  def test_iteration_limit(self):
    """Leftover occurrences after the limit abort the call"""
    with pytest.raises(IterationLimitExceeded) as exc_info:
      rewrite_operators("const x = a |> f |> g;", max_iterations=1)
    diagnostic = exc_info.value.diagnostic
    assert diagnostic['kind'] == ITERATION_LIMIT_EXCEEDED
    assert diagnostic['internal']
    assert diagnostic['start'] == 17

  def test_limit_not_reached(self):
    """Exactly enough iterations is fine"""
    text, position_map = rewrite_operators("const x = a |> f |> g;", max_iterations=2)
    assert text == 'const x = __binop__(__binop__(a, "|>", f), "|>", g);'
    assert len(position_map) == 2

  def test_no_operators_enabled(self):
    """Nothing is rewritten when both operators are off"""
    source = "const x = a |> f;"
    text, position_map = rewrite_operators(source, FeatureFlags(pipeline=False, cons=False))
    assert text == source
    assert len(position_map) == 0

  def test_positions_map_back(self):
    """Rewritten operands map back to their original offsets"""
    source = "const x = a |> f;"
    text, position_map = rewrite_operators(source)
    assert position_map(text.index("a,")) == source.index("a ")
    assert position_map(text.index("f)")) == source.index("f;")

  def test_debug_trace(self, capsys):
    """Debug mode reports each iteration on stderr"""
    rewrite_operators("const x = a |> f;", debug=True)
    err = capsys.readouterr().err
    assert "DEBUG: iteration 1" in err
    assert "finished after 1 iteration(s)" in err
