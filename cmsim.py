#!/usr/bin/env python3
"""
cmsim: C Memory Simulator CLI

Usage:
    python cmsim.py <input.c> [--steps N] [--profile default|small|large]
                              [--memory] [--frames] [--verbose]

Runs the program, prints its output, then the warnings and (if any) the
error that stopped it. --memory and --frames print the final memory
cells and call-stack records as tables.

Examples:
    python cmsim.py hello.c
    python cmsim.py leak.c --frames --memory
    python cmsim.py loop.c --steps 500       # stop after 500 statements
    python cmsim.py test.c --tokens          # token dump (debug)
"""

import argparse
import logging
import sys
import os

from rich.console import Console
from rich.table import Table

# Allow running from project root or as module
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from cmemsim import __version__
from cmemsim.config import LAYOUT_PROFILES
from cmemsim.errors import InternalError
from cmemsim.interpreter import Interpreter, StopReason
from cmemsim.lexer import Lexer, LexerError
from cmemsim.logging_setup import setup_logging
from cmemsim.memory import DUMP_COLUMNS
from cmemsim.parser import ParseError
from cmemsim.snapshot import frame_rows

console = Console()
err_console = Console(stderr=True)

FRAME_COLUMNS = ("Frame", "Name", "Type", "Addr", "Size", "Region", "Value", "Refs")


def main():
    parser = argparse.ArgumentParser(
        prog="cmsim",
        description="C Memory Simulator: run a C program on a visible memory model",
        epilog="Profiles: " + ", ".join(LAYOUT_PROFILES.keys()),
    )
    parser.add_argument("input", help="Input C source file")
    parser.add_argument("--steps", type=int, default=None,
                        help="Step budget (default: 1000000)")
    parser.add_argument("--profile", default="default",
                        choices=list(LAYOUT_PROFILES.keys()),
                        help="Memory layout profile (default: default)")
    parser.add_argument("--memory", action="store_true",
                        help="Print the final memory cells")
    parser.add_argument("--frames", action="store_true",
                        help="Print the final call-stack and heap records")
    parser.add_argument("--log-dir", default=None,
                        help="Write a debug log file into this directory")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show interpreter debug logging on stderr")
    parser.add_argument("--tokens", action="store_true",
                        help="Dump token stream and exit (debug)")
    parser.add_argument("--ast", action="store_true",
                        help="Dump AST and exit (debug)")
    parser.add_argument("--version", action="version",
                        version=f"cmsim {__version__}")

    args = parser.parse_args()

    setup_logging(console_level=logging.DEBUG if args.verbose else logging.WARNING,
                  log_dir=args.log_dir)

    # Read input
    try:
        with open(args.input, "r", encoding="utf-8") as f:
            source = f.read()
    except FileNotFoundError:
        err_console.print(f"[red]Error:[/red] File not found: {args.input}")
        sys.exit(1)
    except IOError as e:
        err_console.print(f"[red]Error:[/red] reading {args.input}: {e}")
        sys.exit(1)

    try:
        if args.tokens:
            for tok in Lexer(source).tokenize():
                print(tok)
            sys.exit(0)

        interp = Interpreter(args.profile)
        program = interp.parse(source)

        if args.ast:
            _print_ast(program)
            sys.exit(0)

        output = interp.run(args.steps)
    except LexerError as e:
        err_console.print(f"[red]Lexer error:[/red] {e}", markup=True, highlight=False)
        sys.exit(1)
    except ParseError as e:
        err_console.print(f"[red]Parse error:[/red] {e}", markup=True, highlight=False)
        sys.exit(1)
    except InternalError as e:
        err_console.print(f"[red]Internal interpreter error:[/red] {e}")
        sys.exit(2)

    sys.stdout.write(output)
    if output and not output.endswith("\n"):
        sys.stdout.write("\n")

    report = interp.report()
    for diag, line in report.warnings:
        err_console.print(f"[#9b59b6]Warning:[/#9b59b6] {diag}", highlight=False)
        if line:
            err_console.print(f"    {line}", highlight=False, markup=False)

    if args.frames:
        _print_table("Call stack", FRAME_COLUMNS, frame_rows(interp.snapshot()))
    if args.memory:
        _print_table("Memory", DUMP_COLUMNS, interp.memory.dump())

    if interp.stop_reason is StopReason.ERROR:
        for diag in interp.diagnostics.errors:
            err_console.print(f"[red]Error:[/red] {diag}", highlight=False)
        sys.exit(1)
    if interp.stop_reason is StopReason.STEP_LIMIT:
        err_console.print(f"[yellow]Info:[/yellow] step budget exhausted at line "
                          f"{interp.current_line}")
        sys.exit(3)
    sys.exit((interp.exit_code or 0) & 0xFF)


def _print_table(title, columns, rows):
    table = Table(title=title, show_lines=False)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*row)
    console.print(table)


def _print_ast(node, indent=0):
    """Pretty-print an AST node tree (debug helper)."""
    prefix = "  " * indent
    if hasattr(node, '__dataclass_fields__'):
        print(f"{prefix}{type(node).__name__} @L{node.line}:{node.col}")
        for fname in node.__dataclass_fields__:
            if fname in ("line", "col"):
                continue
            val = getattr(node, fname)
            if isinstance(val, tuple) and val and hasattr(val[0], '__dataclass_fields__'):
                print(f"{prefix}  {fname}:")
                for item in val:
                    _print_ast(item, indent + 2)
            elif hasattr(val, '__dataclass_fields__'):
                print(f"{prefix}  {fname}:")
                _print_ast(val, indent + 2)
            elif val is not None and val != ():
                print(f"{prefix}  {fname}: {val}")
    else:
        print(f"{prefix}{node}")


if __name__ == "__main__":
    main()
