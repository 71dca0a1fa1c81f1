# Copyright 2025 Hewlett Packard Enterprise Development LP.
# SPDX-License-Identifier: MIT
#
# Split (mimetype + opaque payload) message representation and payload layout resolution.

"""
Split message representation.

A split message is a CBOR map with two keys::

    {"mimetype": "application/vnd.enarx.att.sev+cbor; msg=launch-start",
     "payload": h'...'}

The mimetype names the variant; the payload is an opaque byte string. That
byte string is either the CBOR encoding of the structured payload (the same
item an envelope message carries) or the raw AMD SEV platform layout of the
object (see :mod:`layout`).

The mimetype may also carry ``layout=structured`` or ``layout=raw``. When it
does the payload is decoded that way only. Without it, the structured
interpretation is tried first and the raw layout second; this order never
changes. Measurement payloads are containers and have no raw layout.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .errors import (
    AmbiguousPayloadUnresolvable,
    DecodeError,
    MalformedEnvelope,
    PayloadShapeMismatch,
)
from .layout import (
    pack_chain,
    pack_launch_start,
    pack_secret,
    unpack_chain,
    unpack_launch_start,
    unpack_secret,
)
from .message import (
    Message,
    MessageKind,
    Payload,
    cbor_dumps,
    cbor_loads,
    payload_from_item,
    payload_to_item,
)
from .payloads import Finish
from .sev_logging import get_logger

logger = get_logger(__name__)

MIME_TYPE_BASE = "application/vnd.enarx.att.sev+cbor"
MIME_TYPE_SUFFIX = f"{MIME_TYPE_BASE}; msg="


class PayloadLayout(Enum):
    STRUCTURED = "structured"
    RAW = "raw"


def mimetype_for(kind: MessageKind, layout: Optional[PayloadLayout] = None) -> str:
    """
    mimetype_for
    Description: Build the mimetype naming a message variant
    Inputs:
        kind (MessageKind): The variant
        layout (PayloadLayout): Optional explicit payload layout parameter
    Output: str
    """
    mimetype = MIME_TYPE_SUFFIX + kind.tag
    if layout is not None:
        mimetype += f"; layout={layout.value}"
    return mimetype


def parse_mimetype(mimetype: str) -> Tuple[MessageKind, Optional[PayloadLayout]]:
    """
    parse_mimetype
    Description: Extract the variant and optional payload layout from a mimetype
    Input: mimetype (str)
    Output: tuple: (MessageKind, PayloadLayout or None)
    Raises:
        MalformedEnvelope: If the media type or its parameters are invalid
        UnknownVariant: If msg does not name a known variant
    """
    parts = [part.strip() for part in mimetype.split(";")]
    if parts[0].lower() != MIME_TYPE_BASE:
        raise MalformedEnvelope(f"Unsupported mimetype: {parts[0]!r}")

    params = {}
    for part in parts[1:]:
        if not part:
            continue
        name, sep, value = part.partition("=")
        if not sep:
            raise MalformedEnvelope(f"Invalid mimetype parameter: {part!r}")
        name = name.strip().lower()
        if name in params:
            raise MalformedEnvelope(f"Repeated mimetype parameter: {name!r}")
        params[name] = value.strip()

    if "msg" not in params:
        raise MalformedEnvelope(f"Mimetype has no msg parameter: {mimetype!r}")
    kind = MessageKind.from_tag(params.pop("msg"))

    layout = None
    if "layout" in params:
        value = params.pop("layout")
        try:
            layout = PayloadLayout(value)
        except ValueError:
            raise MalformedEnvelope(f"Unknown payload layout: {value!r}")

    if params:
        logger.debug(f"Ignoring mimetype parameters: {sorted(params)}")

    return kind, layout


@dataclass(frozen=True)
class SplitMessage:
    """
    SplitMessage
    Description: A message in split form, a mimetype and an opaque payload blob
    """

    mimetype: str
    payload: bytes

    def to_bytes(self) -> bytes:
        return cbor_dumps({"mimetype": self.mimetype, "payload": self.payload})

    @classmethod
    def from_bytes(cls, data: bytes) -> "SplitMessage":
        """
        from_bytes
        Description: Decode the outer split map
        Input: data (bytes): CBOR-encoded split message
        Output: SplitMessage
        Raises:
            MalformedEnvelope: If the item is not a {mimetype, payload} map
            TruncatedInput: If the input is incomplete
        """
        item = cbor_loads(data)
        if not isinstance(item, dict) or set(item.keys()) != {"mimetype", "payload"}:
            raise MalformedEnvelope("Split message must be a map of mimetype and payload")
        mimetype = item["mimetype"]
        payload = item["payload"]
        if not isinstance(mimetype, str):
            raise MalformedEnvelope("Split message mimetype must be a text string")
        if not isinstance(payload, bytes):
            raise MalformedEnvelope("Split message payload must be a byte string")
        return cls(mimetype, payload)


def pack_raw_payload(kind: MessageKind, payload: Payload) -> bytes:
    """
    pack_raw_payload
    Description: Lay a payload out in the raw platform layout
    Inputs:
        kind (MessageKind): The variant
        payload: The payload for that variant
    Output: bytes
    Raises:
        ValueError: If the variant has no raw layout or the payload does not fit it
    """
    if kind.is_container:
        raise ValueError(f"{kind.tag} is a container and has no raw layout")
    if kind.is_certificate_chain:
        return pack_chain(payload)
    if kind is MessageKind.LAUNCH_START:
        return pack_launch_start(payload)
    if kind is MessageKind.SECRET:
        if payload is None:
            raise ValueError("An absent secret has no raw layout")
        return pack_secret(payload)
    return b""


def unpack_raw_payload(kind: MessageKind, blob: bytes) -> Payload:
    """Interpret a blob as the raw platform layout of the variant."""
    if kind.is_container:
        raise ValueError(f"{kind.tag} is a container and has no raw layout")
    if kind.is_certificate_chain:
        return unpack_chain(blob)
    if kind is MessageKind.LAUNCH_START:
        return unpack_launch_start(blob)
    if kind is MessageKind.SECRET:
        return unpack_secret(blob)
    if blob:
        raise ValueError(f"Raw finish payload must be empty, got {len(blob)} bytes")
    return Finish()


def _structured(kind: MessageKind, blob: bytes) -> Payload:
    return payload_from_item(kind, cbor_loads(blob))


def resolve_payload(
    kind: MessageKind, blob: bytes, layout: Optional[PayloadLayout] = None
) -> Payload:
    """
    Decode a split payload blob for the given variant.

    With no explicit layout the structured interpretation is attempted
    first and the raw platform layout second. Container variants never
    fall back to the raw layout.

    Args:
        kind: The variant named by the mimetype
        blob: The opaque payload bytes
        layout: Explicit layout from the mimetype, if any

    Returns:
        The decoded payload

    Raises:
        PayloadShapeMismatch: Structured decoding failed where no raw fallback is allowed
        AmbiguousPayloadUnresolvable: Both interpretations failed
        DecodeError: The explicit structured layout could not be decoded
    """
    if layout is PayloadLayout.STRUCTURED:
        return _structured(kind, blob)

    if layout is PayloadLayout.RAW:
        if kind.is_container:
            raise PayloadShapeMismatch(f"{kind.tag} payloads must use the structured layout")
        try:
            return unpack_raw_payload(kind, blob)
        except ValueError as e:
            raise PayloadShapeMismatch(f"Invalid raw {kind.tag} payload: {e}") from e

    try:
        return _structured(kind, blob)
    except DecodeError as structured_error:
        if kind.is_container:
            logger.debug(f"Structured {kind.tag} payload rejected: {structured_error}")
            raise PayloadShapeMismatch(
                f"{kind.tag} payloads must use the structured layout: {structured_error}"
            ) from structured_error

        logger.debug(
            f"Structured {kind.tag} payload rejected ({structured_error}), trying raw layout"
        )
        try:
            payload = unpack_raw_payload(kind, blob)
        except ValueError as raw_error:
            raise AmbiguousPayloadUnresolvable(
                f"{kind.tag} payload is neither structured ({structured_error}) "
                f"nor raw layout ({raw_error})"
            ) from raw_error

    logger.debug(f"Resolved {kind.tag} payload using raw layout")
    return payload


def encode_split(message: Message, layout: Optional[PayloadLayout] = None) -> bytes:
    """
    encode_split
    Description: Encode a message in split form
    Inputs:
        message (Message): The message to encode
        layout (PayloadLayout): None writes a structured payload with no layout parameter;
            STRUCTURED or RAW writes that layout and names it in the mimetype
    Output: bytes
    Raises:
        ValueError: If RAW is requested for a payload without a raw layout
    """
    if layout is PayloadLayout.RAW:
        blob = pack_raw_payload(message.kind, message.payload)
    else:
        blob = cbor_dumps(payload_to_item(message.kind, message.payload))
    return SplitMessage(mimetype_for(message.kind, layout), blob).to_bytes()


def decode_split(data: bytes) -> Message:
    """
    decode_split
    Description: Decode a split-form message, resolving its payload layout
    Input: data (bytes): CBOR-encoded split message
    Output: Message
    Raises:
        DecodeError: One of its subclasses
    """
    split = SplitMessage.from_bytes(data)
    kind, layout = parse_mimetype(split.mimetype)
    return Message(kind, resolve_payload(kind, split.payload, layout))
