# Copyright 2025 Hewlett Packard Enterprise Development LP.
# SPDX-License-Identifier: MIT
#
# Native AMD SEV platform memory layouts used as the raw payload interpretation.

"""
Raw AMD SEV platform layouts.

These are the byte layouts defined by the AMD SEV API specification for
the objects carried inside attestation messages. They are only used to
find the boundaries between the opaque blobs of a raw payload; the blobs
themselves are returned untouched.

Layouts (all integers little-endian):

- AMD CA certificate (ARK, ASK): 64 byte header, then public exponent,
  modulus and signature whose sizes come from the header
- SEV certificate (OCA, PEK, PDH, CEK): fixed 2084 bytes
- Chain: PDH | PEK | OCA | CEK | ASK | ARK
- Launch start: policy (4) | PDH certificate (2084) | session (128)
- Secret: header (52) | ciphertext
"""

import struct
from dataclasses import dataclass
from enum import IntEnum

from cryptography.hazmat.primitives.asymmetric import rsa

from .payloads import Chain, LaunchStart
from .sev_logging import get_logger

logger = get_logger(__name__)

AMD_CERT_HEADER_SIZE = 64
AMD_CERT_VERSION = 1
SEV_CERT_SIZE = 2084
SEV_CERT_VERSION = 1
SEV_PUBKEY_SIZE = 1028
SEV_SIG_SIZE = 512

POLICY_SIZE = 4
SESSION_SIZE = 128  # nonce 16, wrap_tk 32, wrap_iv 16, wrap_mac 32, policy_mac 32
LAUNCH_START_SIZE = POLICY_SIZE + SEV_CERT_SIZE + SESSION_SIZE

SECRET_HEADER_SIZE = 52  # flags 4, iv 16, mac 32

NAPLES_MODULUS_BITS = 2048
ROME_MODULUS_BITS = 4096


class KeyUsage(IntEnum):
    ARK = 0x0000
    ASK = 0x0013
    INVALID = 0x1000
    OCA = 0x1001
    PEK = 0x1002
    PDH = 0x1003
    CEK = 0x1004


@dataclass
class AmdCertificate:
    """
    AmdCertificate
    Description: An AMD root (ARK) or signing (ASK) key certificate in platform layout
    """

    version: int
    key_id: bytes
    certifying_id: bytes
    key_usage: int
    _reserved: bytes
    pubexp_size: int  # bits
    modulus_size: int  # bits
    pubexp: bytes
    modulus: bytes
    signature: bytes

    @property
    def size(self) -> int:
        return AMD_CERT_HEADER_SIZE + len(self.pubexp) + len(self.modulus) + len(self.signature)

    @property
    def generation(self) -> str:
        """Get the platform generation implied by the modulus size."""
        if self.modulus_size == NAPLES_MODULUS_BITS:
            return "naples"
        if self.modulus_size == ROME_MODULUS_BITS:
            return "rome"
        return "unknown"

    @classmethod
    def from_prefix(cls, data: bytes, offset: int = 0) -> "AmdCertificate":
        """
        from_prefix
        Description: Parse an AMD certificate starting at offset; trailing data is left alone
        Inputs:
            data: bytes: Buffer holding the certificate
            offset: int: Start of the certificate within data
        Output: AmdCertificate
        Raises:
            ValueError: If the header is invalid or the buffer is too short
        """
        header = data[offset : offset + AMD_CERT_HEADER_SIZE]
        if len(header) != AMD_CERT_HEADER_SIZE:
            raise ValueError(
                f"AMD certificate header needs {AMD_CERT_HEADER_SIZE} bytes, got {len(header)}"
            )

        (
            version,
            key_id,
            certifying_id,
            key_usage,
            reserved,
            pubexp_size,
            modulus_size,
        ) = struct.unpack("<I16s16sI16sII", header)

        if version != AMD_CERT_VERSION:
            raise ValueError(f"Unsupported AMD certificate version: {version}")
        if key_usage not in (KeyUsage.ARK, KeyUsage.ASK):
            raise ValueError(f"Invalid AMD certificate key usage: {key_usage:#x}")
        if modulus_size not in (NAPLES_MODULUS_BITS, ROME_MODULUS_BITS):
            raise ValueError(f"Unsupported AMD certificate modulus size: {modulus_size}")
        if pubexp_size == 0 or pubexp_size % 8 or pubexp_size > modulus_size:
            raise ValueError(f"Invalid AMD certificate exponent size: {pubexp_size}")

        pubexp_len = pubexp_size // 8
        modulus_len = modulus_size // 8
        body_start = offset + AMD_CERT_HEADER_SIZE
        end = body_start + pubexp_len + 2 * modulus_len
        if len(data) < end:
            raise ValueError(
                f"AMD certificate needs {end - offset} bytes, got {len(data) - offset}"
            )

        pubexp = data[body_start : body_start + pubexp_len]
        modulus = data[body_start + pubexp_len : body_start + pubexp_len + modulus_len]
        signature = data[body_start + pubexp_len + modulus_len : end]

        return cls(
            version=version,
            key_id=key_id,
            certifying_id=certifying_id,
            key_usage=key_usage,
            _reserved=reserved,
            pubexp_size=pubexp_size,
            modulus_size=modulus_size,
            pubexp=pubexp,
            modulus=modulus,
            signature=signature,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "AmdCertificate":
        """Parse a buffer holding exactly one AMD certificate."""
        cert = cls.from_prefix(data)
        if cert.size != len(data):
            raise ValueError(
                f"AMD certificate is {cert.size} bytes, buffer holds {len(data)}"
            )
        return cert

    def to_bytes(self) -> bytes:
        header = struct.pack(
            "<I16s16sI16sII",
            self.version,
            self.key_id,
            self.certifying_id,
            self.key_usage,
            self._reserved,
            self.pubexp_size,
            self.modulus_size,
        )
        return header + self.pubexp + self.modulus + self.signature

    def public_key(self) -> rsa.RSAPublicKey:
        """
        public_key
        Description: Get the certified RSA public key as a cryptography object
        Input: None
        Output: rsa.RSAPublicKey
        """
        e = int.from_bytes(self.pubexp, "little")
        n = int.from_bytes(self.modulus, "little")
        return rsa.RSAPublicNumbers(e, n).public_key()


@dataclass
class SevCertificate:
    """
    SevCertificate
    Description: A platform certificate (OCA, PEK, PDH or CEK) in the fixed 2084 byte layout
    """

    version: int
    api_major: int
    api_minor: int
    _reserved: bytes
    pubkey_usage: int
    pubkey_algo: int
    pubkey: bytes
    sig1_usage: int
    sig1_algo: int
    sig1: bytes
    sig2_usage: int
    sig2_algo: int
    sig2: bytes

    _FORMAT = f"<IBB2sII{SEV_PUBKEY_SIZE}sII{SEV_SIG_SIZE}sII{SEV_SIG_SIZE}s"

    @classmethod
    def unpack(cls, data: bytes) -> "SevCertificate":
        """
        Parse a SEV certificate.

        Args:
            data: Exactly 2084 bytes

        Raises:
            ValueError: If the length or version is wrong
        """
        if len(data) != SEV_CERT_SIZE:
            raise ValueError(
                f"Invalid SEV certificate length: {len(data)}, expected {SEV_CERT_SIZE}"
            )
        cert = cls(*struct.unpack(cls._FORMAT, data))
        if cert.version != SEV_CERT_VERSION:
            raise ValueError(f"Unsupported SEV certificate version: {cert.version}")
        return cert

    def to_bytes(self) -> bytes:
        return struct.pack(
            self._FORMAT,
            self.version,
            self.api_major,
            self.api_minor,
            self._reserved,
            self.pubkey_usage,
            self.pubkey_algo,
            self.pubkey,
            self.sig1_usage,
            self.sig1_algo,
            self.sig1,
            self.sig2_usage,
            self.sig2_algo,
            self.sig2,
        )


def _expect_sev_cert(data: bytes, usage: KeyUsage) -> SevCertificate:
    cert = SevCertificate.unpack(data)
    if cert.pubkey_usage != usage:
        raise ValueError(
            f"Expected {usage.name} certificate, found key usage {cert.pubkey_usage:#x}"
        )
    return cert


def unpack_chain(data: bytes) -> Chain:
    """
    unpack_chain
    Description: Split a raw certificate chain into its six components
    Input: data: bytes: PDH | PEK | OCA | CEK | ASK | ARK
    Output: Chain
    Raises:
        ValueError: If any component is missing, malformed, or out of place
    """
    sev_part = 4 * SEV_CERT_SIZE
    if len(data) < sev_part + 2 * AMD_CERT_HEADER_SIZE:
        raise ValueError(f"Raw certificate chain too short: {len(data)} bytes")

    blobs = {}
    for index, usage in enumerate((KeyUsage.PDH, KeyUsage.PEK, KeyUsage.OCA, KeyUsage.CEK)):
        blob = data[index * SEV_CERT_SIZE : (index + 1) * SEV_CERT_SIZE]
        _expect_sev_cert(blob, usage)
        blobs[usage.name.lower()] = blob

    offset = sev_part
    for usage in (KeyUsage.ASK, KeyUsage.ARK):
        cert = AmdCertificate.from_prefix(data, offset)
        if cert.key_usage != usage:
            raise ValueError(
                f"Expected {usage.name} certificate, found key usage {cert.key_usage:#x}"
            )
        blobs[usage.name.lower()] = data[offset : offset + cert.size]
        offset += cert.size

    if offset != len(data):
        raise ValueError(f"{len(data) - offset} trailing bytes after raw certificate chain")

    logger.debug(f"Split raw certificate chain of {len(data)} bytes")
    return Chain(**blobs)


def pack_chain(chain: Chain) -> bytes:
    """Concatenate a chain in raw order, rejecting chains that would not split back."""
    blob = chain.pdh + chain.pek + chain.oca + chain.cek + chain.ask + chain.ark
    unpack_chain(blob)
    return blob


def unpack_launch_start(data: bytes) -> LaunchStart:
    """
    unpack_launch_start
    Description: Split a raw launch start buffer into policy, PDH certificate and session
    Input: data: bytes: Exactly 2216 bytes
    Output: LaunchStart
    """
    if len(data) != LAUNCH_START_SIZE:
        raise ValueError(
            f"Invalid raw launch start length: {len(data)}, expected {LAUNCH_START_SIZE}"
        )
    cert = data[POLICY_SIZE : POLICY_SIZE + SEV_CERT_SIZE]
    _expect_sev_cert(cert, KeyUsage.PDH)
    return LaunchStart(
        policy=data[:POLICY_SIZE],
        cert=cert,
        session=data[POLICY_SIZE + SEV_CERT_SIZE :],
    )


def pack_launch_start(start: LaunchStart) -> bytes:
    if (
        len(start.policy) != POLICY_SIZE
        or len(start.cert) != SEV_CERT_SIZE
        or len(start.session) != SESSION_SIZE
    ):
        raise ValueError(
            f"Launch start fields do not fit the raw layout: {start.sizes()}"
        )
    _expect_sev_cert(start.cert, KeyUsage.PDH)
    return start.policy + start.cert + start.session


@dataclass
class SecretHeader:
    """Header of a launch secret packet."""

    flags: int
    iv: bytes
    mac: bytes

    @classmethod
    def unpack(cls, data: bytes) -> "SecretHeader":
        if len(data) < SECRET_HEADER_SIZE:
            raise ValueError(
                f"Raw secret needs at least {SECRET_HEADER_SIZE} bytes, got {len(data)}"
            )
        return cls(*struct.unpack("<I16s32s", data[:SECRET_HEADER_SIZE]))


def unpack_secret(data: bytes) -> bytes:
    """Validate a raw secret packet (header followed by ciphertext) and return it unchanged."""
    SecretHeader.unpack(data)
    return bytes(data)


def pack_secret(secret: bytes) -> bytes:
    SecretHeader.unpack(secret)
    return secret
