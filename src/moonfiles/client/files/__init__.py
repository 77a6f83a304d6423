"""Pure parsers for file listings, metadata and change notifications."""

from moonfiles.client.files.classifier import (
    ROOT_EXTENSIONS,
    allowed_extensions_for,
    parse_action_response,
    parse_directory,
    parse_roots,
)
from moonfiles.client.files.metadata import (
    metadata_parent_path,
    parse_metadata,
    strip_gcode_root,
)
from moonfiles.client.files.notifications import (
    FILELIST_CHANGED,
    normalize_notification,
)

__all__ = [
    "FILELIST_CHANGED",
    "ROOT_EXTENSIONS",
    "allowed_extensions_for",
    "metadata_parent_path",
    "normalize_notification",
    "parse_action_response",
    "parse_directory",
    "parse_metadata",
    "parse_roots",
    "strip_gcode_root",
]
