"""Data root resolver.

The single source of truth for "where does this DBGL installation keep
its data?".  Every store path (``db/``, ``profiles/``, ``captures/``)
derives from the data root, never from ``Path.cwd()`` alone.

Algorithm
---------
Walk from *start* (default ``cwd()``) upward through parents looking for
a ``profiles/`` directory.  The first directory that contains it is the
data root.  A brand-new installation has no such directory yet; callers
decide what to fall back to (see :class:`dbgl.core.settings.Settings`).
"""

from __future__ import annotations

from pathlib import Path

from dbgl.core.errors import DataRootNotFound

# Directory that identifies an existing data root.
_MARKER = "profiles"


def find_data_root(start: Path | None = None) -> Path:
    """Return the data root directory.

    Parameters
    ----------
    start:
        Directory to start searching from.  Defaults to ``Path.cwd()``.

    Returns
    -------
    Path
        Absolute, resolved path to the data root.

    Raises
    ------
    DataRootNotFound
        If no ``profiles/`` directory is found in *start* or any of its parents.
    """
    origin = (start or Path.cwd()).resolve()
    for candidate in [origin, *origin.parents]:
        if (candidate / _MARKER).is_dir():
            return candidate
    raise DataRootNotFound(start_path=str(origin))

