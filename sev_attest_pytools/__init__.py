# Copyright 2025 Hewlett Packard Enterprise Development LP.
# SPDX-License-Identifier: MIT
#
# sev_attest_pytools - Python tools for the AMD SEV remote attestation protocol.

"""
sev_attest_pytools - Python tools for the AMD SEV remote attestation protocol

This package provides the message set exchanged between a tenant and an
SEV host during remote attestation, its CBOR wire encodings (envelope and
split mimetype forms), raw platform layout resolution, and enforcement of
the handshake order.
"""

# Errors
from .errors import (
    AmbiguousPayloadUnresolvable,
    DecodeError,
    HandshakeError,
    MalformedEnvelope,
    PayloadShapeMismatch,
    TransportError,
    TruncatedInput,
    UnknownVariant,
)

# Payloads and messages
from .payloads import Chain, Finish, LaunchStart, Measurement
from .message import Message, MessageKind, decode, encode

# Split representation and payload layout resolution
from .mime import (
    MIME_TYPE_SUFFIX,
    PayloadLayout,
    SplitMessage,
    decode_split,
    encode_split,
    mimetype_for,
    parse_mimetype,
    resolve_payload,
)

# Raw platform layouts
from .layout import AmdCertificate, KeyUsage, SecretHeader, SevCertificate

# Handshake order
from .sequencer import HandshakeSequencer, HandshakeStep, validate_sequence

# Keep registry
from .registry import (
    BIND_PORT,
    PROTO_NAME,
    PROTO_VERSION,
    Backend,
    KeepContract,
    KeepInfo,
    KeepMgr,
    KeepRegistry,
    LoaderState,
)

# Transport
from .transport import HttpTransport

# Logging utilities
from .sev_logging import (
    get_logger,
    log_network_request,
    log_section_header,
    log_subsection_header,
    log_verification_step,
    setup_cli_logging,
    setup_library_logging,
    setup_logging,
)

setup_library_logging()

__version__ = "0.1.0"
__author__ = "Isaac Matthews"

__all__ = [
    # Errors
    "DecodeError",
    "MalformedEnvelope",
    "UnknownVariant",
    "PayloadShapeMismatch",
    "TruncatedInput",
    "AmbiguousPayloadUnresolvable",
    "HandshakeError",
    "TransportError",
    # Payloads and messages
    "Chain",
    "LaunchStart",
    "Measurement",
    "Finish",
    "Message",
    "MessageKind",
    "encode",
    "decode",
    # Split representation
    "MIME_TYPE_SUFFIX",
    "PayloadLayout",
    "SplitMessage",
    "decode_split",
    "encode_split",
    "mimetype_for",
    "parse_mimetype",
    "resolve_payload",
    # Raw layouts
    "AmdCertificate",
    "KeyUsage",
    "SecretHeader",
    "SevCertificate",
    # Handshake
    "HandshakeSequencer",
    "HandshakeStep",
    "validate_sequence",
    # Registry
    "BIND_PORT",
    "PROTO_NAME",
    "PROTO_VERSION",
    "Backend",
    "KeepContract",
    "KeepInfo",
    "KeepMgr",
    "KeepRegistry",
    "LoaderState",
    # Transport
    "HttpTransport",
    # Logging utilities
    "get_logger",
    "setup_cli_logging",
    "setup_library_logging",
    "setup_logging",
    "log_section_header",
    "log_subsection_header",
    "log_verification_step",
    "log_network_request",
]
