from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

ENV_FILE_VAR = "SF_ENV_FILE"


def default_candidates() -> List[Path]:
    """``$SF_ENV_FILE`` when set, otherwise ``.env`` then ``.dotenv`` in the cwd."""
    explicit = os.getenv(ENV_FILE_VAR)
    if explicit:
        return [Path(explicit).expanduser()]
    cwd = Path.cwd()
    return [cwd / ".env", cwd / ".dotenv"]


def load_env_files(
    candidates: Optional[Iterable[Path]] = None,
    *,
    override: bool = False,
    quiet: bool = False,
) -> Optional[Path]:
    """Load SF_* credentials from the first existing dotenv file.

    Variables already set in the process environment win unless
    ``override`` is true. Returns the file that was loaded, or None.
    """
    paths = list(candidates) if candidates is not None else default_candidates()
    found = next((p for p in paths if p.is_file()), None)

    if found is None:
        if not quiet:
            _logger.debug("No dotenv file among %s", ", ".join(str(p) for p in paths))
        return None

    load_dotenv(found, override=override)
    if not quiet:
        _logger.debug("Loaded environment variables from %s", found)
    return found
