"""Structured command logging."""

from __future__ import annotations

import enum
import logging
import os
from typing import Any

from bson import json_util

_DEFAULT_DOCUMENT_LENGTH = 1000
_DOCUMENT_NAMES = ["command", "reply"]
_COMMAND_LOGGER = logging.getLogger("mongo_view.command")


class _CommandStatusMessage(str, enum.Enum):
    STARTED = "Command started"
    SUCCEEDED = "Command succeeded"
    FAILED = "Command failed"


def _debug_log(logger: logging.Logger, **fields: Any) -> None:
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(LogMessage(**fields))


class LogMessage:
    """Log record payload, rendered as extended JSON only when emitted."""

    __slots__ = ["_kwargs"]

    def __init__(self, **kwargs: Any):
        self._kwargs = kwargs

        if "durationMS" in self._kwargs:
            self._kwargs["durationMS"] = self._kwargs["durationMS"].total_seconds() * 1000
        if "message" in self._kwargs and isinstance(self._kwargs["message"], enum.Enum):
            self._kwargs["message"] = self._kwargs["message"].value

    def __str__(self) -> str:
        self._truncate()
        return "%s" % (json_util.dumps(self._kwargs, default=lambda o: o.__repr__()))

    def _truncate(self) -> None:
        document_length = int(
            os.getenv("MONGO_VIEW_LOG_MAX_DOCUMENT_LENGTH", _DEFAULT_DOCUMENT_LENGTH)
        )
        if document_length < 0:
            document_length = _DEFAULT_DOCUMENT_LENGTH

        for doc_name in _DOCUMENT_NAMES:
            doc = self._kwargs.get(doc_name)
            if doc is not None and not isinstance(doc, str):
                doc = json_util.dumps(doc, default=lambda o: o.__repr__())
                if len(doc) > document_length:
                    doc = doc[:document_length] + "..."
                self._kwargs[doc_name] = doc
