"""Two-tranche yield distribution engine."""

from typing import NoReturn

__version__ = "0.1.0"


def _entry_point() -> NoReturn:
    """Entry point for the tranche-economics-sim script."""
    import sys

    from tranche_economics.cli import main

    raise SystemExit(main(sys.argv[1:]))
