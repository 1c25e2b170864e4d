#!/usr/bin/env python3
"""Run the Tâb test suite through pytest.

``python test_runner.py --fast`` skips the slow statistical tests; any
other arguments are handed to pytest unchanged.
"""

from __future__ import annotations

import sys


def main() -> int:
    try:
        import pytest  # type: ignore
    except ImportError:
        print(
            "pytest is required to run tests. Install it with: pip install -e .[test]",
            file=sys.stderr,
        )
        return 1

    args = sys.argv[1:]
    if "--fast" in args:
        args = [a for a in args if a != "--fast"] + ["-m", "not slow"]
    if not args or all(a.startswith("-") for a in args):
        args = ["-q", "tests", *args]
    return int(pytest.main(args))


if __name__ == "__main__":
    raise SystemExit(main())
