"""Core module - Shared configuration, errors and domain types."""

from moonfiles.core.config import HostConfig
from moonfiles.core.errors import (
    FileActionError,
    FileFetchError,
    FileServiceError,
    JsonRpcError,
    MalformedResponseError,
    MoonfilesError,
    ServiceDisposedError,
    TransportError,
    UploadRejectedError,
)
from moonfiles.core.types import (
    FileAction,
    FileActionEvent,
    FileActionResponse,
    FileDownload,
    FileDownloadComplete,
    FileDownloadProgress,
    FileItem,
    FileKind,
    FileRoot,
    Folder,
    FolderContentWrapper,
    GCodeFile,
    GCodeThumbnail,
    GenericFile,
    RemoteFile,
)

__all__ = [
    # Config
    "HostConfig",
    # Errors
    "FileActionError",
    "FileFetchError",
    "FileServiceError",
    "JsonRpcError",
    "MalformedResponseError",
    "MoonfilesError",
    "ServiceDisposedError",
    "TransportError",
    "UploadRejectedError",
    # Types
    "FileAction",
    "FileActionEvent",
    "FileActionResponse",
    "FileDownload",
    "FileDownloadComplete",
    "FileDownloadProgress",
    "FileItem",
    "FileKind",
    "FileRoot",
    "Folder",
    "FolderContentWrapper",
    "GCodeFile",
    "GCodeThumbnail",
    "GenericFile",
    "RemoteFile",
]
