"""Typed domain objects for host file roots, listings and transfers.

This module provides:
- FileRoot, Folder: storage namespaces and directories
- RemoteFile with its variants GCodeFile and GenericFile, tagged by FileKind
- FolderContentWrapper: result of a directory listing
- FileAction, FileItem, FileActionResponse, FileActionEvent: file mutations
- FileDownload with its variants FileDownloadProgress and FileDownloadComplete

Every ``from_dict`` constructor raises MalformedResponseError when a required
field is missing or has the wrong type.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar

from moonfiles.core.errors import MalformedResponseError

ROOT_GCODES = "gcodes"
ROOT_CONFIG = "config"
ROOT_TIMELAPSE = "timelapse"

GCODE_EXTENSIONS = frozenset({"gcode", "g", "gc", "gco"})


def _require(data: Mapping[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    """Get a required field and check its type."""
    if not isinstance(data, Mapping):
        raise MalformedResponseError(f"Expected an object, got {type(data).__name__}")
    if key not in data or data[key] is None:
        raise MalformedResponseError(f"Missing required field '{key}'")
    value = data[key]
    # bool is an int subclass but never a valid number here
    if isinstance(value, bool) or not isinstance(value, kind):
        raise MalformedResponseError(
            f"Field '{key}' has unexpected type {type(value).__name__}"
        )
    # json.loads accepts NaN and Infinity
    if isinstance(value, float) and not math.isfinite(value):
        raise MalformedResponseError(f"Field '{key}' is not a finite number")
    return value


def _optional(data: Mapping[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    """Get an optional field, treating absent, wrongly typed and non-finite values as None."""
    value = data.get(key)
    if value is None or isinstance(value, bool) or not isinstance(value, kind):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _join(*parts: str) -> str:
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


@dataclass(frozen=True)
class FileRoot:
    """A top-level storage namespace exposed by the host."""

    name: str
    path: str = ""
    permissions: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FileRoot:
        """Create from a ``server.files.roots`` entry."""
        return cls(
            name=_require(data, "name", str),
            path=_optional(data, "path", str) or "",
            permissions=_optional(data, "permissions", str) or "",
        )


@dataclass(frozen=True)
class Folder:
    """A remote directory found in a listing."""

    name: str
    parent_path: str
    modified: float
    size: int = 0
    permissions: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], parent_path: str) -> Folder:
        """Create from a ``dirs`` entry of a directory listing."""
        name = _require(data, "dirname", str)
        if not name:
            raise MalformedResponseError("Directory entry has an empty name")
        return cls(
            name=name,
            parent_path=parent_path,
            modified=float(_require(data, "modified", (int, float))),
            size=int(_optional(data, "size", (int, float)) or 0),
            permissions=_optional(data, "permissions", str) or "",
        )

    @property
    def full_path(self) -> str:
        return _join(self.parent_path, self.name)

    @property
    def modified_at(self) -> datetime:
        return datetime.fromtimestamp(self.modified, tz=timezone.utc)


class FileKind(Enum):
    """Tag selecting the RemoteFile variant."""

    GCODE = "gcode"
    GENERIC = "generic"


def is_gcode_name(name: str) -> bool:
    """Check whether a filename carries a g-code extension (case-insensitive)."""
    _, dot, ext = name.rpartition(".")
    return bool(dot) and ext.lower() in GCODE_EXTENSIONS


@dataclass(frozen=True)
class RemoteFile:
    """A regular file on the host.

    Use ``kind`` to distinguish variants instead of checking fields.
    """

    kind: ClassVar[FileKind]

    name: str
    parent_path: str
    modified: float
    size: int
    permissions: str = ""

    @staticmethod
    def _base_fields(data: Mapping[str, Any], parent_path: str, name_key: str) -> dict[str, Any]:
        name = _require(data, name_key, str)
        if not name:
            raise MalformedResponseError("File entry has an empty name")
        if not parent_path:
            raise MalformedResponseError(f"File '{name}' is not rooted under a file root")
        return {
            "name": name,
            "parent_path": parent_path,
            "modified": float(_require(data, "modified", (int, float))),
            "size": int(_require(data, "size", (int, float))),
            "permissions": _optional(data, "permissions", str) or "",
        }

    @property
    def full_path(self) -> str:
        """Path including the root, e.g. ``gcodes/sub/part.gcode``."""
        return _join(self.parent_path, self.name)

    @property
    def root(self) -> str:
        return self.parent_path.split("/", 1)[0]

    @property
    def relative_path(self) -> str:
        """Path below the root, e.g. ``sub/part.gcode``."""
        return self.full_path.split("/", 1)[1] if "/" in self.full_path else self.name

    @property
    def extension(self) -> str:
        _, dot, ext = self.name.rpartition(".")
        return ext.lower() if dot else ""

    @property
    def modified_at(self) -> datetime:
        return datetime.fromtimestamp(self.modified, tz=timezone.utc)


@dataclass(frozen=True)
class GenericFile(RemoteFile):
    """Any non g-code file."""

    kind: ClassVar[FileKind] = FileKind.GENERIC

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], parent_path: str) -> GenericFile:
        """Create from a ``files`` entry of a directory listing."""
        return cls(**cls._base_fields(data, parent_path, "filename"))


@dataclass(frozen=True)
class GCodeThumbnail:
    """A slicer-generated preview image stored next to the g-code file."""

    width: int
    height: int
    size: int
    relative_path: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GCodeThumbnail:
        return cls(
            width=int(_require(data, "width", (int, float))),
            height=int(_require(data, "height", (int, float))),
            size=int(_optional(data, "size", (int, float)) or 0),
            relative_path=_require(data, "relative_path", str),
        )

    @property
    def pixels(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class GCodeFile(RemoteFile):
    """A g-code file, optionally carrying slicer metadata."""

    kind: ClassVar[FileKind] = FileKind.GCODE

    slicer: str | None = None
    slicer_version: str | None = None
    uuid: str | None = None
    estimated_time: float | None = None
    layer_count: int | None = None
    layer_height: float | None = None
    first_layer_height: float | None = None
    object_height: float | None = None
    nozzle_diameter: float | None = None
    filament_total: float | None = None
    filament_weight_total: float | None = None
    filament_name: str | None = None
    filament_type: str | None = None
    first_layer_extr_temp: float | None = None
    first_layer_bed_temp: float | None = None
    chamber_temp: float | None = None
    print_start_time: float | None = None
    job_id: str | None = None
    thumbnails: tuple[GCodeThumbnail, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        parent_path: str,
        name_key: str = "filename",
    ) -> GCodeFile:
        """Create from a listing entry or a ``server.files.metadata`` result.

        Slicer fields are optional; thumbnails that are missing or malformed
        are treated as absent.
        """
        base = cls._base_fields(data, parent_path, name_key)
        raw_thumbs = data.get("thumbnails") or []
        thumbnails = []
        if isinstance(raw_thumbs, list):
            for raw in raw_thumbs:
                try:
                    thumbnails.append(GCodeThumbnail.from_dict(raw))
                except MalformedResponseError:
                    continue
        number = (int, float)
        layer_count = _optional(data, "layer_count", number)
        return cls(
            **base,
            slicer=_optional(data, "slicer", str),
            slicer_version=_optional(data, "slicer_version", str),
            uuid=_optional(data, "uuid", str),
            estimated_time=_optional(data, "estimated_time", number),
            layer_count=int(layer_count) if layer_count is not None else None,
            layer_height=_optional(data, "layer_height", number),
            first_layer_height=_optional(data, "first_layer_height", number),
            object_height=_optional(data, "object_height", number),
            nozzle_diameter=_optional(data, "nozzle_diameter", number),
            filament_total=_optional(data, "filament_total", number),
            filament_weight_total=_optional(data, "filament_weight_total", number),
            filament_name=_optional(data, "filament_name", str),
            filament_type=_optional(data, "filament_type", str),
            first_layer_extr_temp=_optional(data, "first_layer_extr_temp", number),
            first_layer_bed_temp=_optional(data, "first_layer_bed_temp", number),
            chamber_temp=_optional(data, "chamber_temp", number),
            print_start_time=_optional(data, "print_start_time", number),
            job_id=_optional(data, "job_id", str),
            thumbnails=tuple(thumbnails),
        )

    @property
    def big_thumbnail(self) -> GCodeThumbnail | None:
        """The thumbnail with the most pixels."""
        if not self.thumbnails:
            return None
        return max(self.thumbnails, key=lambda t: t.pixels)

    def thumbnail_path(self, thumbnail: GCodeThumbnail) -> str:
        """Path of a thumbnail usable with the host's file endpoint."""
        return _join(self.parent_path, thumbnail.relative_path)

    @property
    def estimated_time_label(self) -> str | None:
        """Human readable estimate, e.g. ``2h 05m``."""
        if self.estimated_time is None:
            return None
        minutes, seconds = divmod(int(self.estimated_time), 60)
        hours, minutes = divmod(minutes, 60)
        if hours:
            return f"{hours}h {minutes:02d}m"
        if minutes:
            return f"{minutes}m {seconds:02d}s"
        return f"{seconds}s"


@dataclass(frozen=True)
class FolderContentWrapper:
    """Folders and files directly below a queried path."""

    folder_path: str
    folders: tuple[Folder, ...] = ()
    files: tuple[RemoteFile, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.folders and not self.files

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)


class FileAction(Enum):
    """Actions reported by ``notify_filelist_changed`` and mutating calls."""

    CREATE_FILE = "create_file"
    CREATE_DIR = "create_dir"
    DELETE_FILE = "delete_file"
    DELETE_DIR = "delete_dir"
    MOVE_FILE = "move_file"
    MOVE_DIR = "move_dir"
    MODIFY_FILE = "modify_file"
    ROOT_UPDATE = "root_update"

    @classmethod
    def try_parse(cls, raw: object) -> FileAction | None:
        """Return the matching action, or None for unknown values."""
        try:
            return cls(raw)
        except ValueError:
            return None

    @property
    def is_move(self) -> bool:
        return self in (FileAction.MOVE_FILE, FileAction.MOVE_DIR)


@dataclass(frozen=True)
class FileItem:
    """Descriptor of the item affected by a file action."""

    path: str
    root: str
    modified: float | None = None
    size: int | None = None
    permissions: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FileItem:
        size = _optional(data, "size", (int, float))
        return cls(
            path=_require(data, "path", str),
            root=_require(data, "root", str),
            modified=_optional(data, "modified", (int, float)),
            size=int(size) if size is not None else None,
            permissions=_optional(data, "permissions", str),
        )

    @property
    def full_path(self) -> str:
        return _join(self.root, self.path)


@dataclass(frozen=True)
class FileActionResponse:
    """Acknowledgement of a create, delete, move or upload."""

    action: FileAction
    item: FileItem
    source_item: FileItem | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FileActionResponse:
        raw_action = _require(data, "action", str)
        action = FileAction.try_parse(raw_action)
        if action is None:
            raise MalformedResponseError(f"Unknown file action '{raw_action}'")
        source = data.get("source_item")
        return cls(
            action=action,
            item=FileItem.from_dict(_require(data, "item", Mapping)),
            source_item=FileItem.from_dict(source) if source is not None else None,
        )


@dataclass(frozen=True)
class FileActionEvent(FileActionResponse):
    """A file action pushed by the host as a change notification."""


class FileDownload:
    """State of a running download."""

    __slots__ = ()


@dataclass(frozen=True)
class FileDownloadProgress(FileDownload):
    """Fraction of the file received so far, in ``[0.0, 1.0]``."""

    progress: float


@dataclass(frozen=True)
class FileDownloadComplete(FileDownload):
    """The download finished and the content is at ``file``."""

    file: Path
