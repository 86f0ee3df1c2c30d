"""Studio job service package.

Importing the package loads ``.env`` files so provider keys and polling knobs
are in ``os.environ`` before ``studio.config`` evaluates its defaults.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional

from dotenv import load_dotenv

_SERVER_DIR = Path(__file__).resolve().parent.parent
_DEFAULT_DIRS = (_SERVER_DIR.parent, _SERVER_DIR)


def load_environment(directories: Optional[Iterable[Path]] = None) -> None:
    """Load ``.env`` then ``.env.local`` from each directory in order.

    Later directories and ``.env.local`` files override earlier values;
    variables already exported in the shell win over ``.env`` but not over
    ``.env.local``.
    """

    for directory in directories or _DEFAULT_DIRS:
        load_dotenv(Path(directory) / ".env")
        load_dotenv(Path(directory) / ".env.local", override=True)
    os.environ.setdefault("STUDIO_DOTENV_LOADED", "1")


load_environment()
