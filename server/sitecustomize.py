"""Interpreter startup hook for the server directory.

Python imports this module during startup when ``server/`` is on the path,
so running ``python -m studio.main`` or ad-hoc scripts picks up the same
.env files as the installed package.
"""
from __future__ import annotations

from studio import load_environment

load_environment()
