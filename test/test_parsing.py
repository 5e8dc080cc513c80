"""
Structural parser tests
Tests the bracket-level grammar, CST construction and downstream diagnostics
"""

import pytest
from error_handling import DOWNSTREAM_PARSE_FAILURE, ITERATION_LIMIT_EXCEEDED, DownstreamParseError
from parsing import (
    SugarcubeGrammar,
    check_source,
    create_debug_parser,
    create_parser,
    cst_to_dict,
    find_nodes_by_type,
    mask_literals,
    match_brackets,
    parse_source,
    pretty_print_cst,
)
from preprocess import Preprocessor


class TestMasking:
  """Test literal masking"""

  def test_length_preserved(self):
    """Masked text lines up with the original"""
    text = 'const s = "a (b"; // ) x\nf(`${y}`);'
    masked = mask_literals(text)
    assert len(masked) == len(text)
    assert masked.count('\n') == text.count('\n')

  def test_literals_hidden(self):
    """Brackets inside literals and comments are masked"""
    masked = mask_literals('f("(", /[(]/g); // )')
    assert "(" not in masked.replace("f(", "", 1)
    assert masked.startswith('f("~", "~~~~"')

  def test_bracket_matching(self):
    """Openers map to their closers"""
    assert match_brackets("a(b[c]{d})") == {1: 9, 3: 5, 6: 8}


class TestGrammar:
  """Test the grammar directly"""

  @pytest.fixture
  def grammar(self):
    return SugarcubeGrammar()

  def test_balanced_program(self, grammar):
    """Groups nest in the tree"""
    cst = grammar.parse_program("f(a, [1, {b: 2}]);")
    assert cst.type == "PROGRAM"
    groups = find_nodes_by_type(cst, "GROUP")
    assert [g.value for g in groups] == ["()", "[]", "{}"]

  def test_unbalanced_program(self, grammar):
    """A missing closer is a parse failure"""
    with pytest.raises(Exception):
      grammar.parse_program("f(a, [1);")

  def test_binop_call(self, grammar):
    """`__binop__` calls become BINOP nodes with two operands"""
    cst = grammar.parse_program('x = __binop__(__binop__(a, "|>", f), "|>", g);')
    binops = find_nodes_by_type(cst, "BINOP")
    assert len(binops) == 2
    outer = binops[0]
    assert outer.value == "|>"
    assert [c.type for c in outer.children] == ["OPERAND", "OPERAND"]
    assert outer.children[0].children[0].type == "BINOP"
    assert outer.children[1].children[0].value == "g"

  def test_binop_needs_three_arguments(self, grammar):
    """Empty operands are rejected"""
    with pytest.raises(Exception):
      grammar.parse_program('x = __binop__(, "|>", f);')
    with pytest.raises(Exception):
      grammar.parse_program('x = __binop__(a, "|>");')

  def test_spans(self, grammar):
    """Nodes carry spans into the rewritten text"""
    cst = grammar.parse_program('x = __binop__(a, "::", []);', "out.ts")
    binop = find_nodes_by_type(cst, "BINOP")[0]
    assert binop.span.filename == "out.ts"
    assert binop.span.text == '__binop__(a, "::", [])'
    assert binop.value == "::"


class TestParser:
  """Test preprocessing followed by the structural parse"""

  @pytest.fixture
  def parser(self):
    return create_parser()

  def test_parse_string(self, parser):
    """A simple pipeline becomes one BINOP"""
    cst = parser.parse_string("const x = a |> f;")
    assert [c.type for c in cst.children] == ["TOKEN", "TOKEN", "TOKEN", "BINOP", "TOKEN"]
    assert cst.children[3].value == "|>"

  def test_parse_file(self, parser, tmp_path):
    """Files go through the same pipeline"""
    path = tmp_path / "list.ts"
    path.write_text("const l = 1 :: 2 :: [];\n", encoding="utf-8")
    cst = parser.parse_file(str(path))
    assert [b.value for b in find_nodes_by_type(cst, "BINOP")] == ["::", "::"]
    assert cst.value == str(path)

  def test_missing_left_operand(self, parser):
    """A bare operator fails downstream, located at the operator"""
    with pytest.raises(DownstreamParseError) as exc_info:
      parser.parse_string("const x = |> f;", "bare.ts")
    diagnostic = exc_info.value.diagnostic
    assert diagnostic['kind'] == DOWNSTREAM_PARSE_FAILURE
    assert diagnostic['downstream']
    assert diagnostic['start'] == 10
    assert (diagnostic['line'], diagnostic['column']) == (1, 11)
    assert any("no left operand" in s for s in diagnostic['suggestions'])

  def test_check_string_collects_diagnostics(self, parser):
    """check_string returns every diagnostic instead of raising"""
    assert parser.check_string("const x = a |> f;") == []
    diagnostics = parser.check_string("const x = |> f;")
    assert [d['kind'] for d in diagnostics] == [DOWNSTREAM_PARSE_FAILURE]

  def test_check_string_iteration_limit(self):
    """The iteration limit becomes a diagnostic"""
    parser = create_parser()
    parser.preprocessor = Preprocessor(max_iterations=1)
    diagnostics = parser.check_string("const x = a |> f |> g;")
    assert [d['kind'] for d in diagnostics] == [ITERATION_LIMIT_EXCEEDED]

  def test_tokenize(self, parser):
    """The parser exposes the merged token stream"""
    tokens = parser.tokenize("a |> b")
    assert [t.type for t in tokens] == ["IDENTIFIER", "PIPELINE", "IDENTIFIER"]

  def test_debug_parser(self):
    """The debug factory enables tracing in the preprocessor"""
    parser = create_debug_parser()
    assert parser.debug
    assert parser.preprocessor.debug


class TestHelpers:
  """Test module-level helpers"""

  def test_check_source(self):
    """Valid sources report nothing"""
    assert check_source("const list = 1 :: [];") == []

  def test_parse_source_hkt(self):
    """HKT output parses as ordinary generics"""
    cst = parse_source("interface Functor<F<_>> { map: (fa: F<A>) => F<B>; }")
    assert find_nodes_by_type(cst, "BINOP") == []
    assert find_nodes_by_type(cst, "GROUP")[0].value == "{}"

  def test_pretty_print(self):
    """Pretty printing indents children"""
    output = pretty_print_cst(parse_source("f(a |> g);"))
    lines = output.splitlines()
    assert lines[0].startswith("PROGRAM")
    assert "    BINOP('|>')" in lines

  def test_cst_to_dict(self):
    """Dictionary form carries type, value, span and children"""
    data = cst_to_dict(parse_source("a |> f;", "x.ts"))
    binop = data["children"][0]
    assert binop["type"] == "BINOP"
    assert binop["span"]["filename"] == "x.ts"
    assert binop["span"]["start_line"] == 1
    assert len(binop["children"]) == 2
