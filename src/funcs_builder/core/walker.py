"""Recursive enumeration of a function's source tree."""

from __future__ import annotations

import os

import structlog

from funcs_builder.core.exceptions import WalkError

logger = structlog.get_logger(__name__)


def walk(root: str | os.PathLike[str]) -> list[str]:
    """Return every regular file under *root* as an archive-relative path.

    Paths always use ``/`` separators, whatever the host convention.
    Directories are not listed.  Sub-directories are visited in sorted
    order, so the same tree always yields the same manifest.

    The caller is expected to check that *root* exists first.

    Raises:
        WalkError: On any traversal error.  No partial manifest is returned.
    """
    root_str = os.fspath(root)
    files: list[str] = []

    def _raise(exc: OSError) -> None:
        raise WalkError(
            f"unable to walk {root_str}: {exc.strerror or exc}",
            code="ERR_WALK",
            details={"root": root_str, "path": exc.filename},
        ) from exc

    for dirpath, dirnames, filenames in os.walk(root_str, onerror=_raise):
        dirnames.sort()
        rel_dir = os.path.relpath(dirpath, root_str)
        for name in sorted(filenames):
            full_path = os.path.join(dirpath, name)
            if not os.path.isfile(full_path):
                continue
            rel = name if rel_dir == os.curdir else os.path.join(rel_dir, name)
            rel = rel.replace(os.sep, "/")
            logger.debug("walk_file", root=root_str, file=rel)
            files.append(rel)

    logger.debug("walk_finished", root=root_str, count=len(files))
    return files
