# Copyright 2025 Hewlett Packard Enterprise Development LP.
# SPDX-License-Identifier: MIT
#
# Attestation message model and CBOR envelope codec for the AMD SEV remote attestation protocol.

import io
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

import cbor2

from .errors import (
    MalformedEnvelope,
    PayloadShapeMismatch,
    TruncatedInput,
    UnknownVariant,
)
from .payloads import Chain, Finish, LaunchStart, Measurement, array_to_bytes, bytes_to_array
from .sev_logging import get_logger

logger = get_logger(__name__)


class MessageKind(Enum):
    """The six message variants, valued by their wire tag."""

    CERTIFICATE_CHAIN_NAPLES = "certificate-chain-naples"
    CERTIFICATE_CHAIN_ROME = "certificate-chain-rome"
    LAUNCH_START = "launch-start"
    MEASUREMENT = "measurement"
    SECRET = "secret"
    FINISH = "finish"

    @property
    def tag(self) -> str:
        return self.value

    @property
    def is_certificate_chain(self) -> bool:
        return self in (
            MessageKind.CERTIFICATE_CHAIN_NAPLES,
            MessageKind.CERTIFICATE_CHAIN_ROME,
        )

    @property
    def is_container(self) -> bool:
        """Containers must always travel in the structured encoding."""
        return self is MessageKind.MEASUREMENT

    @classmethod
    def from_tag(cls, tag: Any) -> "MessageKind":
        """
        from_tag
        Description: Look up a variant by its wire tag
        Input: tag (str): Wire tag, e.g. "launch-start"
        Output: MessageKind
        Raises:
            UnknownVariant: If the tag is not one of the six variants
        """
        if isinstance(tag, str):
            for kind in cls:
                if kind.value == tag:
                    return kind
        raise UnknownVariant(f"Unknown message variant: {tag!r}")

    def __str__(self):
        return self.value


Payload = Union[Chain, LaunchStart, Measurement, Optional[bytes], Finish]


@dataclass(frozen=True)
class Message:
    """
    Message - A single attestation protocol message

    A message is an immutable pair of a variant (kind) and the payload that
    variant carries:

    - certificate-chain-naples / certificate-chain-rome: Chain
    - launch-start: LaunchStart
    - measurement: Measurement
    - secret: bytes, or None when no secret is being sent (legacy form)
    - finish: Finish

    Construction checks that the payload fits the kind, so a Message whose
    tag disagrees with its payload cannot exist.
    """

    kind: MessageKind
    payload: Payload = None

    def __post_init__(self):
        if not isinstance(self.kind, MessageKind):
            raise TypeError(f"kind must be a MessageKind, not {type(self.kind).__name__}")

        payload = self.payload
        if self.kind is MessageKind.SECRET:
            if isinstance(payload, (bytearray, memoryview)):
                object.__setattr__(self, "payload", bytes(payload))
            elif payload is not None and not isinstance(payload, bytes):
                raise TypeError(
                    f"secret payload must be bytes or None, not {type(payload).__name__}"
                )
            return

        if self.kind is MessageKind.FINISH and payload is None:
            object.__setattr__(self, "payload", Finish())
            return

        expected = _PAYLOAD_TYPES[self.kind]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{self.kind.tag} payload must be {expected.__name__}, not {type(payload).__name__}"
            )

    @classmethod
    def certificate_chain_naples(cls, chain: Chain) -> "Message":
        return cls(MessageKind.CERTIFICATE_CHAIN_NAPLES, chain)

    @classmethod
    def certificate_chain_rome(cls, chain: Chain) -> "Message":
        return cls(MessageKind.CERTIFICATE_CHAIN_ROME, chain)

    @classmethod
    def launch_start(cls, start: LaunchStart) -> "Message":
        return cls(MessageKind.LAUNCH_START, start)

    @classmethod
    def measurement(cls, measurement: Measurement) -> "Message":
        return cls(MessageKind.MEASUREMENT, measurement)

    @classmethod
    def secret(cls, secret: Optional[bytes] = None) -> "Message":
        return cls(MessageKind.SECRET, secret)

    @classmethod
    def finish(cls) -> "Message":
        return cls(MessageKind.FINISH, Finish())

    def encode(self) -> bytes:
        return encode(self)

    def log_details(self) -> None:
        """
        log_details
        Description: Log the message variant and the size of every opaque blob it carries
        Input: None
        Output: None (logs message details)
        """
        logger.info(f"Message: {self.kind.tag}")
        payload = self.payload
        if self.kind is MessageKind.SECRET:
            if payload is None:
                logger.info("  Secret: <absent>")
            else:
                logger.info(f"  Secret: {len(payload)} bytes")
        elif self.kind is MessageKind.FINISH:
            logger.info("  Finish: <no fields>")
        else:
            for name, size in payload.sizes().items():
                logger.info(f"  {name}: {size} bytes")
                logger.debug(f"    {getattr(payload, name).hex()}")


_PAYLOAD_TYPES = {
    MessageKind.CERTIFICATE_CHAIN_NAPLES: Chain,
    MessageKind.CERTIFICATE_CHAIN_ROME: Chain,
    MessageKind.LAUNCH_START: LaunchStart,
    MessageKind.MEASUREMENT: Measurement,
    MessageKind.FINISH: Finish,
}


def payload_to_item(kind: MessageKind, payload: Payload) -> Any:
    """Return the CBOR item for a payload of the given kind."""
    if kind is MessageKind.SECRET:
        if payload is None:
            return None
        return bytes_to_array(payload)
    return payload.to_cbor_item()


def payload_from_item(kind: MessageKind, item: Any) -> Payload:
    """
    payload_from_item
    Description: Interpret a decoded CBOR item as the payload of the given kind
    Inputs:
        kind (MessageKind): The variant named by the tag
        item: The decoded CBOR item
    Output: The payload value for the kind
    Raises:
        PayloadShapeMismatch: If the item does not have the shape the kind requires
    """
    if kind is MessageKind.SECRET:
        # Both the legacy null and a (possibly empty) byte array are valid
        if item is None:
            return None
        return array_to_bytes(item, "Secret")
    return _PAYLOAD_TYPES[kind].from_cbor_item(item)


def cbor_dumps(item: Any) -> bytes:
    return cbor2.dumps(item)


def cbor_loads(data: bytes) -> Any:
    """
    cbor_loads
    Description: Decode exactly one CBOR data item from data
    Input: data (bytes): Encoded item
    Output: The decoded item
    Raises:
        TruncatedInput: If data ends before the item is complete
        MalformedEnvelope: If data is not bytes, is not valid CBOR or has trailing bytes
    """
    if isinstance(data, (bytearray, memoryview)):
        data = bytes(data)
    if not isinstance(data, bytes):
        raise MalformedEnvelope(f"Message data must be bytes, not {type(data).__name__}")

    fp = io.BytesIO(data)
    decoder = cbor2.CBORDecoder(fp)
    try:
        item = decoder.decode()
    except cbor2.CBORDecodeEOF as e:
        logger.debug(f"CBOR input truncated after {len(data)} bytes: {e}")
        raise TruncatedInput(f"Input ended before a complete item was read: {e}") from e
    except cbor2.CBORDecodeError as e:
        logger.debug(f"CBOR decode failed: {e}")
        raise MalformedEnvelope(f"Invalid CBOR: {e}") from e

    # The decoder may read ahead, so tell() only proves trailing data when short
    if fp.tell() < len(data):
        raise MalformedEnvelope(
            f"{len(data) - fp.tell()} trailing bytes after the encoded item"
        )
    try:
        decoder.decode()
    except cbor2.CBORDecodeEOF:
        return item
    except cbor2.CBORDecodeError:
        pass
    raise MalformedEnvelope("Trailing data after the encoded item")


def encode(message: Message) -> bytes:
    """
    Encode a message as a CBOR single-key tagged map.

    Args:
        message: The message to encode

    Returns:
        The encoded bytes
    """
    item = {message.kind.tag: payload_to_item(message.kind, message.payload)}
    return cbor_dumps(item)


def decode_item(item: Any) -> Message:
    """
    Build a message from an already decoded envelope item.

    Raises:
        MalformedEnvelope: If the item is not a single-key map
        UnknownVariant: If the key is not a known variant tag
        PayloadShapeMismatch: If the payload does not fit the variant
    """
    if not isinstance(item, dict) or len(item) != 1:
        raise MalformedEnvelope("Message must be a map with exactly one variant key")

    (tag, payload_item), = item.items()
    kind = MessageKind.from_tag(tag)
    try:
        payload = payload_from_item(kind, payload_item)
    except PayloadShapeMismatch as e:
        logger.debug(f"Payload shape mismatch for {kind.tag}: {e}")
        raise
    return Message(kind, payload)


def decode(data: bytes) -> Message:
    """
    decode
    Description: Decode an envelope-era attestation message
    Input: data (bytes): CBOR-encoded message
    Output: Message
    Raises:
        DecodeError: One of its subclasses; the message is unusable
    """
    return decode_item(cbor_loads(data))
