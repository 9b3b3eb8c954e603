"""Binary-safe encoding of record Data for the Kinesis JSON API."""

import base64
import json
from typing import Any


def encode_data(value: Any) -> str:
    """
    Base64-encode a record's Data field.

    Strings are encoded from their UTF-8 bytes ("hello" -> "aGVsbG8=").
    Any other JSON value (object, array, number, bool) is encoded from its
    compact JSON text, so structured payloads arrive as JSON bytes.
    """
    if isinstance(value, bytes):
        raw = value
    elif isinstance(value, str):
        raw = value.encode("utf-8")
    else:
        raw = json.dumps(value, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")
