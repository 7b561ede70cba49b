"""Module entrypoint for `python -m svn_fixer`."""

from __future__ import annotations

import sys

from svn_fixer.cli import main


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
