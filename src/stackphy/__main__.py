#!/usr/bin/env python3
"""
CLI for the stackphy interpreter.

Usage:
    python -m stackphy check FILE.sp
    python -m stackphy run FILE.sp [--seed N]
    python -m stackphy export FILE.sp [-o OUT] [--format json|yaml] [--title TITLE]
    python -m stackphy ops [--group GROUP]
    python -m stackphy repl [--seed N]

Environment:
    STACKPHY_SEED            default sampling seed for run/export/repl
    STACKPHY_EXPORT_FORMAT   default export format (json or yaml)

Examples:
    # Check syntax only
    python -m stackphy check examples/hky_model.sp

    # Run a model and list its variables
    python -m stackphy run examples/hky_model.sp --seed 42

    # Export to CodePhy YAML
    python -m stackphy export examples/hky_model.sp -o model.yaml
"""

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

SEED_ENV = "STACKPHY_SEED"
FORMAT_ENV = "STACKPHY_EXPORT_FORMAT"


def _resolve_seed(seed: Optional[int]) -> Optional[int]:
    """Seed from the command line, else from the environment."""
    if seed is not None:
        return seed
    value = os.environ.get(SEED_ENV)
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{SEED_ENV} must be an integer, got '{value}'")


def _resolve_format(fmt: Optional[str], output: Optional[Path]) -> str:
    if fmt:
        return fmt
    if output is not None and output.suffix.lower() in (".yaml", ".yml"):
        return "yaml"
    value = os.environ.get(FORMAT_ENV, "").strip().lower()
    if not value:
        return "json"
    if value not in ("json", "yaml"):
        raise ValueError(f"{FORMAT_ENV} must be 'json' or 'yaml', got '{value}'")
    return value


def _read_source(path: Path) -> Optional[str]:
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        return None
    return path.read_text(encoding="utf-8")


def _run_program(source: str, filename: str, seed: Optional[int]):
    """Execute source; print the diagnostic and return None on failure."""
    from .runtime.interpreter import Interpreter, execute, RECURSION_MESSAGE

    try:
        result = execute(source, filename, Interpreter(seed=seed))
    except RecursionError:
        print(f"Error: {RECURSION_MESSAGE}", file=sys.stderr)
        return None
    if not result.success:
        print(result.error_message, file=sys.stderr)
        return None
    return result


def cmd_check(args):
    """Check a stackphy file for lexical and syntax errors."""
    from .lexer import Lexer
    from .parser import parse
    from .errors import DslError

    source_path = Path(args.file)
    source = _read_source(source_path)
    if source is None:
        return 1

    lexer = Lexer(source, str(source_path))
    tokens = lexer.tokenize()
    if lexer.diagnostics.has_errors:
        print(lexer.diagnostics.format_all(), file=sys.stderr)
        return 1

    try:
        program = parse(tokens, str(source_path), source)
    except DslError as e:
        print(e.diagnostic.format(), file=sys.stderr)
        return 1

    print(f"OK: {source_path.name} - {len(program)} operation(s), "
          f"{len(program.function_names)} function(s)")
    return 0


def cmd_run(args):
    """Run a stackphy file and list the resulting variables."""
    from .export import phylospec_type

    source_path = Path(args.file)
    source = _read_source(source_path)
    if source is None:
        return 1

    try:
        seed = _resolve_seed(args.seed)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result = _run_program(source, str(source_path), seed)
    if result is None:
        return 1

    env = result.environment
    stochastic = env.stochastic_variables()
    deterministic = env.deterministic_variables()

    print(f"Stochastic variables ({len(stochastic)}):")
    for name, variable in stochastic.items():
        observed = " (observed)" if variable.has_observed_data else ""
        print(f"  {name} ~ {phylospec_type(variable.distribution.kind)}{observed}")

    print(f"Deterministic variables ({len(deterministic)}):")
    for name, variable in deterministic.items():
        print(f"  {name} = {variable.underlying}")

    if not result.stack.is_empty():
        print(f"Stack: {result.stack}")
    return 0


def cmd_export(args):
    """Run a stackphy file and export the model as CodePhy."""
    from .export import CodePhyExporter, default_output_path

    source_path = Path(args.file)
    source = _read_source(source_path)
    if source is None:
        return 1

    output = Path(args.output) if args.output else None
    try:
        seed = _resolve_seed(args.seed)
        fmt = _resolve_format(args.format, output)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result = _run_program(source, str(source_path), seed)
    if result is None:
        return 1

    if output is None:
        output = default_output_path(source_path, fmt)

    exporter = CodePhyExporter(result.environment, title=args.title, description=args.description)
    try:
        exporter.write(output, fmt)
    except OSError as e:
        print(f"Error writing {output}: {e}", file=sys.stderr)
        return 1

    print(f"Model successfully exported to: {output}")
    return 0


def cmd_ops(args):
    """List the built-in operations."""
    from .runtime.builtins import OperationGroup, get_operation_registry

    registry = get_operation_registry()
    group = OperationGroup(args.group) if args.group else None
    ops = registry.operations(group)

    for op in ops:
        status = "" if op.supported else " [unsupported]"
        effect = f" {op.stack_effect}" if op.stack_effect else ""
        print(f"  {op.name:<26} {op.group.value:<20}{effect}{status}")
        if op.doc:
            print(f"      {op.doc}")
    supported = sum(1 for op in ops if op.supported)
    print(f"{len(ops)} operation(s), {supported} supported")
    return 0


def cmd_repl(args):
    """Start the interactive REPL."""
    from .repl import run_repl

    try:
        seed = _resolve_seed(args.seed)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return run_repl(seed)


def main(argv: Optional[List[str]] = None):
    from . import __version__
    from .runtime.builtins import OperationGroup

    parser = argparse.ArgumentParser(
        prog='python -m stackphy',
        description='stackphy phylogenetic model interpreter',
    )
    parser.add_argument('--version', action='version', version=f'stackphy {__version__}')

    subparsers = parser.add_subparsers(dest='action', required=True)

    # check command
    check_parser = subparsers.add_parser('check', help='Check a stackphy file for errors')
    check_parser.add_argument('file', help='stackphy source file')

    # run command
    run_parser = subparsers.add_parser('run', help='Run a stackphy file')
    run_parser.add_argument('file', help='stackphy source file')
    run_parser.add_argument('--seed', type=int, help=f'Sampling seed (default: ${SEED_ENV})')

    # export command
    export_parser = subparsers.add_parser('export', help='Export a model as CodePhy')
    export_parser.add_argument('file', help='stackphy source file')
    export_parser.add_argument('-o', '--output', metavar='FILE',
                               help='Output file (default: input name with .json/.yaml)')
    export_parser.add_argument('--format', choices=['json', 'yaml'],
                               help=f'Output format (default: from suffix or ${FORMAT_ENV})')
    export_parser.add_argument('--title', help='Model title for the metadata block')
    export_parser.add_argument('--description', help='Model description for the metadata block')
    export_parser.add_argument('--seed', type=int, help=f'Sampling seed (default: ${SEED_ENV})')

    # ops command
    ops_parser = subparsers.add_parser('ops', help='List built-in operations')
    ops_parser.add_argument('--group', choices=[g.value for g in OperationGroup],
                            help='Only list one provider group')

    # repl command
    repl_parser = subparsers.add_parser('repl', help='Start an interactive session')
    repl_parser.add_argument('--seed', type=int, help=f'Sampling seed (default: ${SEED_ENV})')

    args = parser.parse_args(argv)

    if args.action == 'check':
        return cmd_check(args)
    elif args.action == 'run':
        return cmd_run(args)
    elif args.action == 'export':
        return cmd_export(args)
    elif args.action == 'ops':
        return cmd_ops(args)
    elif args.action == 'repl':
        return cmd_repl(args)
    else:
        parser.print_help()
        return 1


if __name__ == '__main__':
    sys.exit(main())
