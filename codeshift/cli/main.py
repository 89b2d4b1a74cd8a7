"""codeshift CLI - Command-line interface for Python refactoring.

This module provides the main CLI entrypoint for codeshift, allowing users
to query Python files and run refactoring recipes from the command line.
"""

import argparse
import difflib
import logging
import sys
from pathlib import Path

from codeshift.core.errors import RefactorError
from codeshift.core.query import AssignmentInfo, CallInfo, ImportInfo, describe
from codeshift.core.refactor import Refactor
from codeshift.python.recipes import RECIPE_OPS, apply_recipe, load_recipe, parse_recipe

logger = logging.getLogger(__name__)


def main(argv=None):
    """Main CLI entrypoint for codeshift."""
    parser = argparse.ArgumentParser(
        prog="codeshift",
        description="codeshift - programmatic Python refactoring",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  # List the imports of a module
  codeshift query legacy.py --imports

  # Find calls and try statements
  codeshift query legacy.py --calls get_distribution --try-except DistributionNotFound

  # Run a recipe and show the diff
  codeshift apply legacy.py --recipe py3.yaml --diff

  # Modernize imports and pkg_resources version lookups in place
  codeshift modernize legacy.py --write

  # Verbose mode
  codeshift modernize legacy.py -v

Recipe ops:
  {", ".join(RECIPE_OPS)}
"""
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Query command
    query_parser = subparsers.add_parser(
        "query",
        help="List structural matches in a Python file"
    )
    query_parser.add_argument(
        "input",
        help="Path to the Python file"
    )
    query_parser.add_argument(
        "--imports",
        nargs="?",
        const="",
        metavar="MODULE",
        help="List imports (optionally only those of MODULE)"
    )
    query_parser.add_argument(
        "--calls",
        metavar="NAME",
        help="List calls to NAME"
    )
    query_parser.add_argument(
        "--try-except",
        nargs="?",
        const="",
        metavar="EXCEPTION",
        help="List try statements (optionally only those handling EXCEPTION)"
    )
    query_parser.add_argument(
        "--assignments",
        nargs="?",
        const="",
        metavar="PREFIX",
        help="List assignments (optionally only targets starting with PREFIX)"
    )
    _add_verbose(query_parser)

    # Apply command
    apply_parser = subparsers.add_parser(
        "apply",
        help="Run a YAML refactoring recipe against a Python file"
    )
    apply_parser.add_argument(
        "input",
        help="Path to the Python file"
    )
    apply_parser.add_argument(
        "--recipe",
        required=True,
        help="Path to the recipe YAML file"
    )
    _add_output_options(apply_parser)

    # Modernize command
    modernize_parser = subparsers.add_parser(
        "modernize",
        help="Modernize Python 2 imports and pkg_resources version lookups"
    )
    modernize_parser.add_argument(
        "input",
        help="Path to the Python file"
    )
    modernize_parser.add_argument(
        "--remove-unused",
        action="store_true",
        help="Also remove imports that are never used"
    )
    _add_output_options(modernize_parser)

    # Demo command
    demo_parser = subparsers.add_parser(
        "demo",
        help="Run the demo recipe on a built-in legacy module"
    )
    _add_verbose(demo_parser)

    args = parser.parse_args(argv)

    # Setup logging
    if hasattr(args, 'verbose') and args.verbose:
        logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
    else:
        logging.basicConfig(level=logging.WARNING, format='%(levelname)s: %(message)s')

    # Handle commands
    if args.command == "query":
        return cmd_query(args)
    elif args.command == "apply":
        return cmd_apply(args)
    elif args.command == "modernize":
        return cmd_modernize(args)
    elif args.command == "demo":
        return cmd_demo(args)
    else:
        parser.print_help()
        return 1


def _add_verbose(subparser):
    subparser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )


def _add_output_options(subparser):
    subparser.add_argument(
        "--write",
        action="store_true",
        help="Write the result back to the input file"
    )
    subparser.add_argument(
        "--out",
        help="Write the result to this path instead"
    )
    subparser.add_argument(
        "--diff",
        action="store_true",
        help="Print a unified diff instead of the refactored source"
    )
    _add_verbose(subparser)


def _open_session(input_path: Path):
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return None
    return Refactor.from_file(input_path)


def cmd_query(args):
    """Handle query command."""
    input_path = Path(args.input)
    try:
        session = _open_session(input_path)
        if session is None:
            return 1

        sections = []
        if args.imports is not None:
            sections.append(("imports", session.find_imports(args.imports or None)))
        if args.calls:
            sections.append(("calls", session.find_function_calls(args.calls)))
        if args.try_except is not None:
            sections.append(("try/except", session.find_try_except_blocks(args.try_except or None)))
        if args.assignments is not None:
            sections.append(("assignments", session.find_assignments(args.assignments or None)))
        if not sections:
            sections.append(("imports", session.find_imports()))

        for title, refs in sections:
            print(f"{title}:")
            for ref in refs:
                print(f"  {_format_info(describe(session.tree, ref))}")
        return 0

    except (RefactorError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.debug("Query failed", exc_info=True)
        return 1


def _format_info(info) -> str:
    """One-line rendering of a query info view."""
    if isinstance(info, ImportInfo):
        if info.is_from:
            text = f"from {info.module} import {', '.join(info.items)}"
        else:
            text = f"import {', '.join(info.items)}"
            if info.alias:
                text += f" as {info.alias}"
    elif isinstance(info, CallInfo):
        text = f"{info.function_name}({', '.join(info.arguments)})"
    elif isinstance(info, AssignmentInfo):
        text = f"{', '.join(info.targets)} = {info.value}"
    else:
        handled = ", ".join(info.exception_types) or "<bare>"
        text = f"try/except {handled}"
        if info.has_else:
            text += " +else"
        if info.has_finally:
            text += " +finally"
    return f"line {info.line}: {text}"


def cmd_apply(args):
    """Handle apply command."""
    input_path = Path(args.input)
    try:
        session = _open_session(input_path)
        if session is None:
            return 1
        recipe = load_recipe(args.recipe)
        original = session.get_code()
        apply_recipe(session, recipe)
        return _emit(args, input_path, original, session)

    except (RefactorError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.debug("Recipe failed", exc_info=True)
        return 1


def cmd_modernize(args):
    """Handle modernize command."""
    input_path = Path(args.input)
    try:
        session = _open_session(input_path)
        if session is None:
            return 1
        original = session.get_code()
        session.modernize_imports()
        session.modernize_pkg_resources_version()
        if args.remove_unused:
            session.remove_unused_imports()
        return _emit(args, input_path, original, session)

    except (RefactorError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.debug("Modernize failed", exc_info=True)
        return 1


def _emit(args, input_path: Path, original: str, session: Refactor) -> int:
    """Print or write the refactored source, then the change summary."""
    code = session.get_code()
    if args.diff:
        diff = difflib.unified_diff(
            original.splitlines(keepends=True),
            code.splitlines(keepends=True),
            fromfile=f"a/{input_path.name}",
            tofile=f"b/{input_path.name}",
        )
        sys.stdout.writelines(diff)
    elif not (args.write or args.out):
        sys.stdout.write(code)

    if args.out:
        session.save_to_file(args.out)
    elif args.write:
        session.save_to_file(input_path)

    print(session.change_summary(), file=sys.stderr)
    return 0


def cmd_demo(args):
    """Handle demo command."""
    from codeshift.python.examples import DEMO_RECIPE, LEGACY_MODULE

    print("Running codeshift demo with example module...")
    print()

    try:
        session = Refactor.from_source(LEGACY_MODULE)
        apply_recipe(session, parse_recipe(DEMO_RECIPE))
        print(session.get_code())
        print(session.change_summary())
        return 0

    except (RefactorError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.exception("Demo failed")
        return 1


if __name__ == "__main__":
    sys.exit(main())
