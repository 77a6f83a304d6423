"""Exception hierarchy for moonfiles.

This module provides:
- TransportError, JsonRpcError: failures reported by the RPC/HTTP channels
- MalformedResponseError: structurally invalid payloads
- FileFetchError, FileActionError: transport failures wrapped with the
  requested path (read and mutating operations respectively)
- UploadRejectedError: the upload endpoint answered with a non-201 status
"""

from __future__ import annotations


class MoonfilesError(Exception):
    """Base exception for moonfiles errors."""


class TransportError(MoonfilesError):
    """Network or protocol failure on the RPC or HTTP channel."""


class JsonRpcError(TransportError):
    """The host answered a JSON-RPC request with an error object."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class MalformedResponseError(MoonfilesError):
    """A response payload is missing required fields or has the wrong shape."""


class FileServiceError(MoonfilesError):
    """A file operation failed.

    Attributes:
        req_path: The path the operation was requested for.
        parent: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        req_path: str | None = None,
        parent: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.req_path = req_path
        self.parent = parent

    def __str__(self) -> str:
        text = super().__str__()
        if self.req_path:
            text = f"{text} (path: {self.req_path})"
        if self.parent is not None:
            text = f"{text}: {self.parent}"
        return text


class FileFetchError(FileServiceError):
    """A read operation (roots, listing, metadata, download) failed."""


class FileActionError(FileServiceError):
    """A mutating operation (create, delete, move, upload) failed."""


class UploadRejectedError(FileActionError):
    """The upload endpoint did not answer with 201 Created."""

    def __init__(
        self,
        message: str,
        req_path: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, req_path=req_path)
        self.status_code = status_code


class ServiceDisposedError(MoonfilesError):
    """The file service was used after dispose()."""
