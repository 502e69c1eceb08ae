"""Kinnie command-line entry point.

    kinnie PROGRAM

PROGRAM is a source file, or, when no such file exists and the argument does
not end in `.kn`, the program text itself. Program output goes to stdout;
any fatal condition prints one diagnostic line to stderr and exits with 1.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from .interpreter import Interpreter

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

INLINE_FILENAME = "<string>"


class SourceError(Exception):
    pass


def load_source(program: str) -> Tuple[str, str]:
    """Return (source_text, filename) for the CLI argument."""
    if os.path.isfile(program):
        try:
            text = Path(program).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceError(f"Failed to read {program}: {exc}")
        if not text:
            raise SourceError("The file is empty")
        return text, program
    if program.endswith(".kn"):
        raise SourceError(f"Failed to read {program}: no such file")
    return program, INLINE_FILENAME


def format_error(err: dict, filename: str) -> str:
    where = filename
    if "line" in err:
        where = f"{filename}:{err['line']}:{err['column']}"
    return f"{where}: {err['code']}: {err['message']}"


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="kinnie", description="Kinnie interpreter")
    parser.add_argument("program", help="Source file path, or literal program text")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    try:
        source, filename = load_source(args.program)
    except SourceError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    logger.debug("running %s (%d chars)", filename, len(source))
    result = Interpreter().run(source)
    # output written before a failure is kept as-is
    sys.stdout.write(result["output"])
    sys.stdout.flush()
    if result["errors"]:
        print(format_error(result["errors"], filename), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
