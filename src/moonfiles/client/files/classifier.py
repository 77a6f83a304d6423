"""Classification of raw directory listings into typed entries.

This module provides:
- allowed_extensions_for: root-specific extension allow-lists
- parse_directory: turn a ``server.files.get_directory`` result into a
  FolderContentWrapper
- parse_roots, parse_action_response: the other small RPC payloads

Everything here is a pure transform; no I/O.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from moonfiles.core.errors import MalformedResponseError
from moonfiles.core.types import (
    GCODE_EXTENSIONS,
    ROOT_CONFIG,
    ROOT_GCODES,
    ROOT_TIMELAPSE,
    FileActionResponse,
    FileRoot,
    Folder,
    FolderContentWrapper,
    GCodeFile,
    GenericFile,
    RemoteFile,
    is_gcode_name,
)

logger = logging.getLogger(__name__)

# Keyed by path prefix; any other root is not filtered
ROOT_EXTENSIONS: dict[str, frozenset[str]] = {
    ROOT_GCODES: GCODE_EXTENSIONS,
    ROOT_CONFIG: frozenset({"conf", "cfg", "md", "bak", "txt", "jpeg", "jpg", "png"}),
    ROOT_TIMELAPSE: frozenset({"mp4"}),
}


def allowed_extensions_for(path: str) -> frozenset[str] | None:
    """Get the extension allow-list for a path.

    Args:
        path: Queried path, starting with its root.

    Returns:
        Allowed extensions (without dot), or None if every file is allowed.
    """
    for prefix, extensions in ROOT_EXTENSIONS.items():
        if path.startswith(prefix):
            return extensions
    return None


def _extension_pattern(extensions: Iterable[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(ext) for ext in sorted(extensions))
    return re.compile(rf".*\.({alternatives})", re.IGNORECASE | re.DOTALL)


def _entries(result: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    raw = result.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise MalformedResponseError(f"'{key}' must be a list, got {type(raw).__name__}")
    return raw


def _name(entry: Any, key: str) -> str:
    if not isinstance(entry, Mapping) or not isinstance(entry.get(key), str):
        raise MalformedResponseError(f"Listing entry without '{key}': {entry!r}")
    return entry[key]


def parse_directory(
    result: Any,
    for_path: str,
    allowed_extensions: Iterable[str] | None = None,
) -> FolderContentWrapper:
    """Build a FolderContentWrapper from a directory listing result.

    Hidden directories (leading ``.``) are dropped. With an allow-list,
    files whose extension is not listed are dropped as well. Surviving
    files become GCodeFile when they carry a g-code extension, whatever
    the root, and GenericFile otherwise.

    Args:
        result: The RPC result (``dirs`` and ``files`` lists).
        for_path: The queried path; becomes the parent path of all entries.
        allowed_extensions: Extensions without dot, or None to allow all.

    Returns:
        The typed listing, in server order.

    Raises:
        MalformedResponseError: If the payload is structurally invalid.
    """
    if not isinstance(result, Mapping):
        raise MalformedResponseError(
            f"Directory listing must be an object, got {type(result).__name__}"
        )

    folders = tuple(
        Folder.from_dict(entry, for_path)
        for entry in _entries(result, "dirs")
        if not _name(entry, "dirname").startswith(".")
    )

    allowed = _extension_pattern(allowed_extensions) if allowed_extensions is not None else None
    files: list[RemoteFile] = []
    for entry in _entries(result, "files"):
        name = _name(entry, "filename")
        if allowed is not None and not allowed.fullmatch(name):
            continue
        if is_gcode_name(name):
            files.append(GCodeFile.from_dict(entry, for_path))
        else:
            files.append(GenericFile.from_dict(entry, for_path))

    logger.debug(
        "Parsed %s: %d folders, %d files", for_path, len(folders), len(files)
    )
    return FolderContentWrapper(for_path, folders, tuple(files))


def parse_roots(result: Any) -> list[FileRoot]:
    """Parse a ``server.files.roots`` result."""
    if not isinstance(result, list):
        raise MalformedResponseError(
            f"Roots listing must be a list, got {type(result).__name__}"
        )
    return [FileRoot.from_dict(entry) for entry in result]


def parse_action_response(result: Any) -> FileActionResponse:
    """Parse the result of a create, delete, move or upload call."""
    if not isinstance(result, Mapping):
        raise MalformedResponseError(
            f"File action result must be an object, got {type(result).__name__}"
        )
    return FileActionResponse.from_dict(result)
