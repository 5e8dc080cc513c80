"""
sugarcube Preprocessor
Runs the Scope Resolver and then the Operator Rewriter over one source file,
producing standard text, diagnostics and an approximate position map
"""

import sys
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field

from edits import PositionMap, apply_edits
from error_handling import has_errors
from hkt_pass import ScopeRegion, find_hkt_declarations, rewrite_hkt
from operator_pass import (
    DEFAULT_MAX_ITERATIONS,
    enabled_operators,
    find_operator_occurrences,
    rewrite_operators,
)
from scanning import scan_contexts
from utilities import line_starts, offset_to_line_col


JSX_EXTENSIONS = ('.tsx', '.jsx')


@dataclass(frozen=True)
class FeatureFlags:
    """Which syntax extensions are rewritten"""
    pipeline: bool = True
    cons: bool = True
    hkt: bool = True

    @classmethod
    def disabled(cls) -> 'FeatureFlags':
        return cls(pipeline=False, cons=False, hkt=False)

    @property
    def any_enabled(self) -> bool:
        return self.pipeline or self.cons or self.hkt


@dataclass(frozen=True)
class Dialect:
    """Source dialect options"""
    jsx: bool = False

    @classmethod
    def for_filename(cls, filename: str) -> 'Dialect':
        return cls(jsx=filename.lower().endswith(JSX_EXTENSIONS))


@dataclass
class PreprocessResult:
    """Output of one preprocess call"""
    text: str
    source: str
    filename: str = "<input>"
    diagnostics: List[Dict] = field(default_factory=list)
    position_map: PositionMap = field(default_factory=PositionMap)
    regions: List[ScopeRegion] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not has_errors(self.diagnostics)

    @property
    def changed(self) -> bool:
        return self.text != self.source

    def to_original(self, offset: int) -> int:
        return self.position_map.to_original(offset)


def preprocess(
    source: str,
    filename: str = "<input>",
    flags: Optional[FeatureFlags] = None,
    dialect: Optional[Dialect] = None,
    debug: bool = False,
    max_iterations: int = DEFAULT_MAX_ITERATIONS
) -> PreprocessResult:
    """
    Rewrite every enabled extension in `source` into standard syntax.

    With every flag disabled this is the identity.

    Raises:
        IterationLimitExceeded: the operator loop did not converge
    """
    if flags is None:
        flags = FeatureFlags()
    if dialect is None:
        dialect = Dialect.for_filename(filename)

    result = PreprocessResult(text=source, source=source, filename=filename)

    if flags.hkt:
        edits, regions, diagnostics = rewrite_hkt(
            source, jsx=dialect.jsx, filename=filename, debug=debug
        )
        result.regions = regions
        result.diagnostics.extend(diagnostics)
        if edits:
            result.text, layer = apply_edits(result.text, edits)
            result.position_map.push(layer)
        if debug:
            print(f"DEBUG: {filename}: {len(regions)} HKT scope(s), {len(edits)} edit(s)",
                  file=sys.stderr)

    if flags.pipeline or flags.cons:
        result.text, _ = rewrite_operators(
            result.text,
            flags,
            dialect,
            max_iterations=max_iterations,
            position_map=result.position_map,
            source_text=source,
            filename=filename,
            debug=debug
        )

    return result


def find_sugar_markers(
    text: str,
    flags: Optional[FeatureFlags] = None,
    dialect: Optional[Dialect] = None
) -> List[Tuple[str, int]]:
    """
    Sugar markers (`|>`, `::`, `<_>`) left in code positions of `text`,
    as (marker, offset) pairs. Only markers of enabled flags are reported.
    """
    if flags is None:
        flags = FeatureFlags()
    contexts = scan_contexts(text, jsx=bool(dialect and dialect.jsx))
    markers = []
    for occurrence in find_operator_occurrences(text, contexts, enabled_operators(flags)):
        markers.append((occurrence.operator.token, occurrence.start))
    if flags.hkt:
        for declaration in find_hkt_declarations(text, contexts):
            markers.append(("<_>", declaration.marker.start))
    return sorted(markers, key=lambda m: m[1])


def build_source_map(result: PreprocessResult, output_name: Optional[str] = None) -> Dict[str, Any]:
    """
    Line-level source map: for the start of every output line, the
    approximate original (line, column) it came from
    """
    mappings = []
    for index, start in enumerate(line_starts(result.text)):
        line, column = offset_to_line_col(result.source, result.to_original(start))
        mappings.append([index + 1, line, column])
    return {
        "version": 1,
        "file": output_name or result.filename,
        "source": result.filename,
        "mappings": mappings,
    }


class Preprocessor:
    """Preprocessor bound to one flag set and dialect"""

    def __init__(
        self,
        flags: Optional[FeatureFlags] = None,
        dialect: Optional[Dialect] = None,
        debug: bool = False,
        max_iterations: int = DEFAULT_MAX_ITERATIONS
    ):
        self.flags = flags or FeatureFlags()
        self.dialect = dialect
        self.debug = debug
        self.max_iterations = max_iterations

    def dialect_for(self, filename: str) -> Dialect:
        return self.dialect if self.dialect is not None else Dialect.for_filename(filename)

    def preprocess_string(self, source: str, filename: str = "<input>") -> PreprocessResult:
        return preprocess(
            source,
            filename=filename,
            flags=self.flags,
            dialect=self.dialect_for(filename),
            debug=self.debug,
            max_iterations=self.max_iterations
        )

    def preprocess_file(self, filepath: str) -> PreprocessResult:
        """Read and preprocess a source file"""
        with open(filepath, 'r', encoding='utf-8') as f:
            content = f.read()
        return self.preprocess_string(content, filepath)


# Factory functions for creating preprocessors
def create_preprocessor(
    flags: Optional[FeatureFlags] = None,
    dialect: Optional[Dialect] = None,
    debug: bool = False
) -> Preprocessor:
    """Create a sugarcube preprocessor"""
    return Preprocessor(flags=flags, dialect=dialect, debug=debug)


def create_debug_preprocessor(
    flags: Optional[FeatureFlags] = None,
    dialect: Optional[Dialect] = None
) -> Preprocessor:
    """Create a sugarcube preprocessor with debug enabled"""
    return Preprocessor(flags=flags, dialect=dialect, debug=True)
