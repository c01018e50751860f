"""Blob payload decoding and the binary-content heuristic."""

from __future__ import annotations

import base64
from typing import Any

BINARY_SAMPLE_BYTES = 2000
# Share of control bytes (outside tab / LF / VT / FF / CR) above which a sample is binary.
BINARY_CONTROL_RATIO = 0.2


def decode_blob(payload: dict[str, Any]) -> bytes:
    """Return the raw bytes of a GitHub blob response.

    GitHub sends ``encoding: base64`` with the content wrapped at 60
    columns; embedded newlines are ignored by the decoder.
    """
    content = payload.get("content") or ""
    encoding = (payload.get("encoding") or "base64").lower()
    if encoding == "base64":
        return base64.b64decode("".join(content.split()))
    return content.encode("utf-8")


def is_likely_binary(data: bytes) -> bool:
    """Classify *data* as binary by sampling its first bytes.

    Any zero byte means binary. Otherwise the sample is binary when more
    than 20 % of its bytes are control characters below 9 or in 14..31.
    Empty input is not binary.
    """
    if not data:
        return False

    sample = data[:BINARY_SAMPLE_BYTES]
    if 0 in sample:
        return True
    control = sum(1 for b in sample if b < 9 or 13 < b < 32)
    return control / len(sample) > BINARY_CONTROL_RATIO


def to_text(data: bytes) -> str:
    """Decode UTF-8, replacing undecodable sequences."""
    return data.decode("utf-8", errors="replace")
