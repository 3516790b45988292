"""
Annotation Codec: JSON Envelope with LZ4 Compression

Wire format (one Redis sorted-set member):
    [1 flag byte][body]
    flag 0x00: body is UTF-8 JSON
    flag 0x01: body is lz4.frame compressed UTF-8 JSON

JSON envelope keys:
    c  coordinate (JSON-native)
    g  group
    p  payload (JSON-native)
    t  write timestamp
    s  write sequence (arrival order within the backend)

Bodies at or above COMPRESSION_THRESHOLD_BYTES are compressed.
"""

from __future__ import annotations

import json
from typing import Any

import lz4.frame

from annomesh.core import constants as C
from annomesh.core.types import Annotation


class CodecError(ValueError):
    """Member bytes cannot be decoded into an annotation."""


def encode_annotation(
    annotation: Annotation[Any],
    sequence: int,
    threshold: int = C.COMPRESSION_THRESHOLD_BYTES,
) -> bytes:
    """Serialize an annotation; raises TypeError for non-JSON values."""
    body = json.dumps(
        {
            "c": annotation.coordinate,
            "g": annotation.group,
            "p": annotation.payload,
            "t": annotation.write_timestamp,
            "s": sequence,
        },
        separators=(",", ":"),
        sort_keys=True,
    ).encode("utf-8")
    if len(body) >= threshold:
        return C.CODEC_FLAG_LZ4 + lz4.frame.compress(body)
    return C.CODEC_FLAG_RAW + body


def decode_annotation(data: bytes) -> tuple[Annotation[Any], int]:
    """Inverse of encode_annotation; returns (annotation, sequence)."""
    if not data:
        raise CodecError("empty member")
    flag, body = data[:1], data[1:]
    try:
        if flag == C.CODEC_FLAG_LZ4:
            body = lz4.frame.decompress(body)
        elif flag != C.CODEC_FLAG_RAW:
            raise CodecError(f"unknown codec flag {flag!r}")
        envelope = json.loads(body.decode("utf-8"))
        annotation = Annotation(
            coordinate=envelope["c"],
            group=envelope["g"],
            payload=envelope.get("p"),
            write_timestamp=envelope["t"],
        )
        return annotation, envelope["s"]
    except CodecError:
        raise
    except (KeyError, TypeError, UnicodeDecodeError, json.JSONDecodeError, RuntimeError) as e:
        raise CodecError(f"corrupt member: {e}") from e
