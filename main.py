"""
sugarcube - Main Entry Point
Desugars pipeline (`|>`), cons (`::`) and higher-kinded type parameters
(`F<_>`) into standard TypeScript
"""

import sys
import json
import argparse
from pathlib import Path
from typing import List, Optional

from error_handling import format_diagnostic, DownstreamParseError, IterationLimitExceeded
from parsing import create_parser, create_debug_parser, pretty_print_cst, cst_to_dict
from preprocess import Dialect, FeatureFlags, build_source_map
from workers import FileOutcome, check_files, preprocess_files


VERSION = 'sugarcube v0.1.0'


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  common = argparse.ArgumentParser(add_help=False)
  common.add_argument(
      '--tsx',
      action='store_true',
      help='Treat input as the JSX variant (default: by file extension)'
  )
  common.add_argument(
      '--no-pipeline',
      action='store_true',
      help='Leave the |> operator alone'
  )
  common.add_argument(
      '--no-cons',
      action='store_true',
      help='Leave the :: operator alone'
  )
  common.add_argument(
      '--no-hkt',
      action='store_true',
      help='Leave higher-kinded parameters (F<_>) alone'
  )
  common.add_argument(
      '--debug',
      action='store_true',
      help='Print pass traces and tracebacks'
  )

  parser = argparse.ArgumentParser(
      prog='sugarcube',
      description='sugarcube - desugar |>, :: and F<_> into standard TypeScript',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s preprocess app.sc.ts                 # Print the rewritten file
  %(prog)s preprocess app.sc.ts -o app.ts       # Write it to app.ts
  %(prog)s preprocess src/*.ts -o out --jobs 4  # Rewrite many files in parallel
  %(prog)s preprocess app.sc.ts -o app.ts --source-map
  %(prog)s check app.sc.ts                      # Report diagnostics only
  %(prog)s parse app.sc.ts                      # Show the tree of the rewritten file
  %(prog)s parse --tokens app.sc.ts             # Show merged tokens
        """
  )
  parser.add_argument(
      '--version',
      action='version',
      version=VERSION
  )

  commands = parser.add_subparsers(dest='command', metavar='COMMAND')
  commands.required = True

  pre = commands.add_parser('preprocess', parents=[common], help='Rewrite files to standard syntax')
  pre.add_argument('files', nargs='+', metavar='FILE')
  pre.add_argument(
      '-o', '--output',
      help='Output file (or directory when several files are given)'
  )
  pre.add_argument(
      '--source-map',
      action='store_true',
      help='Also write <output>.map.json'
  )
  pre.add_argument(
      '--jobs',
      type=int,
      default=1,
      help='Number of files processed in parallel'
  )

  check = commands.add_parser('check', parents=[common], help='Report diagnostics without writing output')
  check.add_argument('files', nargs='+', metavar='FILE')
  check.add_argument(
      '--jobs',
      type=int,
      default=1,
      help='Number of files processed in parallel'
  )

  parse = commands.add_parser('parse', parents=[common], help='Show the tree of the rewritten file')
  parse.add_argument('file', metavar='FILE')
  parse.add_argument(
      '--ast',
      action='store_true',
      help='Dump the tree as JSON'
  )
  parse.add_argument(
      '--tokens',
      action='store_true',
      help='Show the merged token stream of the input instead'
  )

  return parser


def flags_from_args(args: argparse.Namespace) -> FeatureFlags:
  return FeatureFlags(
      pipeline=not args.no_pipeline,
      cons=not args.no_cons,
      hkt=not args.no_hkt
  )


def dialect_from_args(args: argparse.Namespace) -> Optional[Dialect]:
  """--tsx forces the JSX variant; otherwise it is chosen per file name"""
  return Dialect(jsx=True) if args.tsx else None


def report(outcomes: List[FileOutcome]) -> bool:
  """Print errors and diagnostics to stderr; True if everything succeeded"""
  ok = True
  for outcome in outcomes:
    if outcome.error:
      print(f"Error: {outcome.error}", file=sys.stderr)
      print("  Hint: Check the file path and make sure it is a UTF-8 text file", file=sys.stderr)
    for diagnostic in outcome.diagnostics:
      print(format_diagnostic(diagnostic), file=sys.stderr)
    ok = ok and outcome.ok
  return ok


def output_path_for(source: str, output: str, many: bool) -> Path:
  if not many:
    return Path(output)
  return Path(output) / Path(source).name


def write_output(outcome: FileOutcome, target: Path, source_map: bool) -> None:
  target.parent.mkdir(parents=True, exist_ok=True)
  target.write_text(outcome.result.text, encoding='utf-8')
  if source_map:
    map_path = target.with_name(target.name + '.map.json')
    map_path.write_text(json.dumps(build_source_map(outcome.result, str(target)), indent=2), encoding='utf-8')


def preprocess_command(args: argparse.Namespace) -> bool:
  """Rewrite every input file; print to stdout or write to --output"""
  if args.source_map and not args.output:
    print("Error: --source-map needs --output", file=sys.stderr)
    return False

  outcomes = preprocess_files(
      args.files, flags_from_args(args), dialect_from_args(args), jobs=args.jobs, debug=args.debug
  )
  many = len(args.files) > 1
  for outcome in outcomes:
    if outcome.result is None:
      continue
    if args.output:
      write_output(outcome, output_path_for(outcome.path, args.output, many), args.source_map)
    else:
      sys.stdout.write(outcome.result.text)
      if many and not outcome.result.text.endswith('\n'):
        sys.stdout.write('\n')
  return report(outcomes)


def check_command(args: argparse.Namespace) -> bool:
  """Run the preprocessor and the structural parse, discarding output"""
  outcomes = check_files(
      args.files, flags_from_args(args), dialect_from_args(args), jobs=args.jobs, debug=args.debug
  )
  ok = report(outcomes)
  for outcome in outcomes:
    if outcome.ok:
      print(f"{outcome.path}: ok")
  return ok


def parse_command(args: argparse.Namespace) -> bool:
  """Show the CST of the rewritten file, or the merged tokens of the input"""
  flags = flags_from_args(args)
  dialect = dialect_from_args(args)
  parser = create_debug_parser(flags, dialect) if args.debug else create_parser(flags, dialect)

  try:
    if args.tokens:
      with open(args.file, 'r', encoding='utf-8') as f:
        source = f.read()
      for token in parser.tokenize(source, args.file):
        print(f"{token.span.start_line}:{token.span.start_col}\t{token.type}\t{token.value!r}")
      return True

    cst = parser.parse_file(args.file)
  except FileNotFoundError:
    print(f"Error: File '{args.file}' not found", file=sys.stderr)
    print("  Hint: Check the file path and make sure the file exists", file=sys.stderr)
    return False
  except UnicodeDecodeError as e:
    print(f"Error: Cannot decode file '{args.file}': {e}", file=sys.stderr)
    print("  Hint: Make sure the file is a text file with UTF-8 encoding", file=sys.stderr)
    return False
  except (DownstreamParseError, IterationLimitExceeded) as e:
    print(str(e), file=sys.stderr)
    return False

  if args.ast:
    print(json.dumps(cst_to_dict(cst), indent=2))
  else:
    print(pretty_print_cst(cst), end='')
  return True


COMMANDS = {
    'preprocess': preprocess_command,
    'check': check_command,
    'parse': parse_command,
}


def main(argv: Optional[List[str]] = None) -> None:
  """Main entry point for sugarcube"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args(argv)

  try:
    ok = COMMANDS[args.command](args)
  except Exception as e:
    print(f"Unexpected error while running '{args.command}': {e}", file=sys.stderr)
    if args.debug:
      import traceback
      traceback.print_exc()
    sys.exit(1)

  if not ok:
    sys.exit(1)


if __name__ == "__main__":
  main()
