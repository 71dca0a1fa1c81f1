# Copyright 2025 Hewlett Packard Enterprise Development LP.
# SPDX-License-Identifier: MIT
#
# Payload types carried by SEV attestation protocol messages.

"""
Payload types for the SEV attestation protocol.

Every payload is an immutable container of opaque byte sequences. The
byte sequences are laid out by the AMD SEV platform and are transported
verbatim; nothing in this module looks inside them.

On the wire each container is a CBOR map from fixed field names to an
array of unsigned byte values (not a CBOR byte string).
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, List

from .errors import PayloadShapeMismatch


def bytes_to_array(data: bytes) -> List[int]:
    """Convert a byte sequence to the array-of-unsigned-bytes wire form."""
    return list(data)


def array_to_bytes(item: Any, name: str = "payload") -> bytes:
    """
    array_to_bytes
    Description: Convert an array-of-unsigned-bytes wire item back to bytes
    Inputs:
        item: Decoded CBOR item, expected to be a list of ints in 0..255
        name (str): Field name used in error messages
    Output: bytes
    Raises:
        PayloadShapeMismatch: If the item is not a list of byte values
    """
    if not isinstance(item, list):
        raise PayloadShapeMismatch(
            f"{name}: expected an array of byte values, got {type(item).__name__}"
        )
    for index, value in enumerate(item):
        # bool is an int subclass; CBOR true/false are not byte values
        if isinstance(value, bool) or not isinstance(value, int):
            raise PayloadShapeMismatch(
                f"{name}[{index}]: expected an unsigned byte, got {type(value).__name__}"
            )
        if not 0 <= value <= 0xFF:
            raise PayloadShapeMismatch(f"{name}[{index}]: {value} is not in 0..255")
    return bytes(item)


def _coerce_bytes(obj, name: str, value) -> None:
    if isinstance(value, (bytearray, memoryview)):
        value = bytes(value)
    if not isinstance(value, bytes):
        raise TypeError(
            f"{type(obj).__name__}.{name} must be bytes, not {type(value).__name__}"
        )
    object.__setattr__(obj, name, value)


class _BlobContainer:
    """
    Shared behaviour for payloads made of named opaque byte fields.

    Subclasses are frozen dataclasses whose fields are all bytes; the
    dataclass field order is the order fields are written on the wire.
    """

    def __post_init__(self):
        for f in fields(self):
            _coerce_bytes(self, f.name, getattr(self, f.name))

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def to_cbor_item(self) -> Dict[str, List[int]]:
        """Return the CBOR map item for this payload, fields in wire order."""
        return {name: bytes_to_array(getattr(self, name)) for name in self.field_names()}

    @classmethod
    def from_cbor_item(cls, item: Any):
        """
        Build the payload from a decoded CBOR map.

        Args:
            item: Decoded CBOR item

        Returns:
            An instance of the payload class

        Raises:
            PayloadShapeMismatch: If the item is not a map with exactly the expected fields
        """
        if not isinstance(item, dict):
            raise PayloadShapeMismatch(
                f"{cls.__name__}: expected a map, got {type(item).__name__}"
            )

        expected = cls.field_names()
        keys = set(item.keys())
        missing = [name for name in expected if name not in keys]
        extra = sorted(repr(key) for key in keys if key not in expected)
        if missing or extra:
            raise PayloadShapeMismatch(
                f"{cls.__name__}: missing fields {missing}, unexpected fields {extra}"
            )

        values = {
            name: array_to_bytes(item[name], f"{cls.__name__}.{name}")
            for name in expected
        }
        return cls(**values)

    def sizes(self) -> Dict[str, int]:
        """Get the length in bytes of each field."""
        return {name: len(getattr(self, name)) for name in self.field_names()}


@dataclass(frozen=True)
class Chain(_BlobContainer):
    """
    Chain
    Description: The SEV platform certificate chain

    ark and ask are the AMD root and signing certificates; oca, cek, pek
    and pdh are the owner, chip endorsement, platform endorsement and
    platform Diffie-Hellman certificates. Naples and Rome chains share
    this type; their component sizes differ but are not checked here.
    """

    ark: bytes
    ask: bytes
    oca: bytes
    cek: bytes
    pek: bytes
    pdh: bytes


@dataclass(frozen=True)
class LaunchStart(_BlobContainer):
    """
    LaunchStart
    Description: Session parameters tailored by the tenant to start a secure launch
    """

    policy: bytes
    cert: bytes
    session: bytes


@dataclass(frozen=True)
class Measurement(_BlobContainer):
    """
    Measurement
    Description: The platform build descriptor together with the launch measurement
    """

    build: bytes
    measurement: bytes


@dataclass(frozen=True)
class Finish:
    """
    Finish
    Description: Marks a successful attestation and launch; carries no fields
    """

    def to_cbor_item(self) -> None:
        return None

    @classmethod
    def from_cbor_item(cls, item: Any) -> "Finish":
        """Accept CBOR null or an empty map."""
        if item is None:
            return cls()
        if isinstance(item, dict) and not item:
            return cls()
        raise PayloadShapeMismatch(
            f"Finish: expected null or an empty map, got {type(item).__name__}"
        )
