"""Parsing of ``server.files.metadata`` results into GCodeFile records."""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Mapping
from typing import Any

from moonfiles.core.errors import MalformedResponseError
from moonfiles.core.types import ROOT_GCODES, GCodeFile

logger = logging.getLogger(__name__)


def strip_gcode_root(path: str) -> str:
    """Return ``path`` relative to the gcode root.

    The metadata endpoint addresses files below ``gcodes`` without the root
    segment; a path that already omits it is returned unchanged.
    """
    path = path.strip("/")
    if path == ROOT_GCODES:
        return ""
    if path.startswith(ROOT_GCODES + "/"):
        return path[len(ROOT_GCODES) + 1:]
    return path


def metadata_parent_path(query_path: str) -> str:
    """Parent path of the queried file, rooted at ``gcodes``.

    >>> metadata_parent_path("sub/part.gcode")
    'gcodes/sub'
    >>> metadata_parent_path("gcodes/sub/part.gcode")
    'gcodes/sub'
    """
    directory = posixpath.dirname(strip_gcode_root(query_path))
    return posixpath.join(ROOT_GCODES, directory) if directory else ROOT_GCODES


def parse_metadata(result: Any, query_path: str) -> GCodeFile:
    """Build a GCodeFile from a metadata result.

    Args:
        result: The RPC result for the file.
        query_path: The filename the metadata was requested for.

    Returns:
        GCodeFile whose parent path is rooted at ``gcodes``.

    Raises:
        MalformedResponseError: If ``modified`` or ``size`` are missing or
            not numeric.
    """
    if not isinstance(result, Mapping):
        raise MalformedResponseError(
            f"Metadata result must be an object, got {type(result).__name__}"
        )
    name = posixpath.basename(query_path.strip("/"))
    if not name:
        raise MalformedResponseError(f"Cannot derive a filename from '{query_path}'")

    # The result's own 'filename' is relative to the root; the record keeps the basename
    data = dict(result)
    data["filename"] = name
    gcode = GCodeFile.from_dict(data, metadata_parent_path(query_path))
    logger.debug(
        "Parsed metadata for %s (%d thumbnails)", gcode.full_path, len(gcode.thumbnails)
    )
    return gcode
