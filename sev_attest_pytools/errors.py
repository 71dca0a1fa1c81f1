# Copyright 2025 Hewlett Packard Enterprise Development LP.
# SPDX-License-Identifier: MIT
#
# Exception types raised by the SEV attestation message codec and sequencer.


class DecodeError(ValueError):
    """Base class for every failure to decode an attestation message."""

    pass


class MalformedEnvelope(DecodeError):
    """The outer item is not a single-key tagged map (or a two-key split map)."""

    pass


class UnknownVariant(DecodeError):
    """The tag does not name one of the six message variants."""

    pass


class PayloadShapeMismatch(DecodeError):
    """Fields are missing, extra, or of the wrong type for the named variant."""

    pass


class TruncatedInput(DecodeError):
    """The input ended before a complete data item was read."""

    pass


class AmbiguousPayloadUnresolvable(DecodeError):
    """Neither the structured nor the raw platform layout interpretation of a payload succeeded."""

    pass


class HandshakeError(Exception):
    """
    Raised when a message arrives out of the attestation handshake order.

    Attributes:
        step: The handshake step the session was in when the message arrived
        kind: The kind of the offending message, if one was decoded
    """

    def __init__(self, message, step=None, kind=None):
        super().__init__(message)
        self.step = step
        self.kind = kind


class TransportError(Exception):
    """Raised when the HTTP transport cannot deliver a message."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code
