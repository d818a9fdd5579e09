"""``python -m syncforce`` and the ``syncforce`` console script."""

from __future__ import annotations

import sys
from typing import Optional, Sequence

from .cli import cli


def main(argv: Optional[Sequence[str]] = None) -> None:
    # record values may hold any unicode
    reconfigure = getattr(sys.stdout, "reconfigure", None)
    if reconfigure is not None:
        reconfigure(errors="backslashreplace")
    cli.main(args=list(argv) if argv is not None else None, prog_name="syncforce")


if __name__ == "__main__":
    main()
