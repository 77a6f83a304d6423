"""Normalization of ``notify_filelist_changed`` push notifications.

Moonraker sends file changes as JSON-RPC notifications of the form:
    {"jsonrpc": "2.0", "method": "notify_filelist_changed",
     "params": [{"action": "move_file",
                 "item": {"root": "gcodes", "path": "b.gcode", ...},
                 "source_item": {"root": "gcodes", "path": "a.gcode"}}]}

Only the first element of ``params`` is processed. Actions outside
FileAction are ignored so new server actions never break clients.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from moonfiles.core.errors import MalformedResponseError
from moonfiles.core.types import FileAction, FileActionEvent

logger = logging.getLogger(__name__)

FILELIST_CHANGED = "notify_filelist_changed"


def normalize_notification(message: Mapping[str, Any]) -> FileActionEvent | None:
    """Turn a raw notification into a FileActionEvent.

    Args:
        message: The full JSON-RPC notification.

    Returns:
        The event, or None if the action is not recognized.

    Raises:
        MalformedResponseError: If the payload has no params object, or the
            action is known but its items cannot be parsed.
    """
    params = message.get("params") if isinstance(message, Mapping) else None
    if not isinstance(params, list) or not params or not isinstance(params[0], Mapping):
        raise MalformedResponseError(f"Notification without params object: {message!r}")

    payload = params[0]
    action = FileAction.try_parse(payload.get("action"))
    if action is None:
        logger.debug("Ignoring unknown file action: %s", payload.get("action"))
        return None

    return FileActionEvent.from_dict(payload)
