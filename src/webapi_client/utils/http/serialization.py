"""Request body encoding for Web API calls.

Call options are flat key/value pairs. When any value is binary the
whole body is sent as ``multipart/form-data``, otherwise as
``application/x-www-form-urlencoded``.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

BINARY_TYPES = (bytes, bytearray, memoryview)

FileField = Tuple[str, bytes]


@dataclass
class SerializedBody:
    """Form fields and file parts ready to hand to ``httpx.Request``."""

    data: Dict[str, str] = field(default_factory=dict)
    files: Dict[str, FileField] = field(default_factory=dict)

    @property
    def is_multipart(self) -> bool:
        return bool(self.files)


def is_binary(value: Any) -> bool:
    """Whether ``value`` must be uploaded as a file part."""
    if isinstance(value, BINARY_TYPES):
        return True
    return callable(getattr(value, "read", None))


def flatten_value(value: Any) -> str:
    """Render a non-binary option value as a form field string."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(",", ":"), default=str)


def _read_binary(name: str, value: Any) -> FileField:
    if isinstance(value, BINARY_TYPES):
        return name, bytes(value)
    content = value.read()
    if isinstance(content, str):
        content = content.encode("utf-8")
    filename = getattr(value, "name", None)
    if isinstance(filename, str) and filename:
        filename = filename.replace("\\", "/").rsplit("/", 1)[-1]
    else:
        filename = name
    return filename, content


def serialize_call_options(options: Optional[Mapping[str, Any]]) -> SerializedBody:
    """Turn call options into a request body.

    ``None`` values are dropped. File objects are read once here so the
    body can be resent on retry.

    :param options: Arguments for the Web API method
    :return: The serialized body
    """
    body = SerializedBody()
    if not options:
        return body

    for key, value in options.items():
        if value is None:
            continue
        if is_binary(value):
            body.files[key] = _read_binary(key, value)
        else:
            body.data[key] = flatten_value(value)
    return body
