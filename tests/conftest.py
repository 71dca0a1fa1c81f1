import struct

import pytest

from sev_attest_pytools import Chain, LaunchStart, Measurement, Message
from sev_attest_pytools.layout import KeyUsage


def make_sev_cert(usage, fill=0):
    """Build a 2084 byte SEV platform certificate with the given key usage."""

    header = struct.pack("<IBB2sII", 1, 0, 22, bytes(2), usage, 0x14)
    pubkey = bytes([fill]) * 1028
    sig = struct.pack("<II", KeyUsage.PEK, 0x2) + bytes(512)
    return header + pubkey + sig + sig


def make_amd_cert(usage, modulus_bits=2048):
    """Build an AMD ARK/ASK certificate; 832 bytes for Naples, 1600 for Rome."""

    size = modulus_bits // 8
    header = struct.pack(
        "<I16s16sI16sII",
        1,
        bytes(range(16)),
        bytes(range(16, 32)),
        usage,
        bytes(16),
        modulus_bits,
        modulus_bits,
    )
    pubexp = (65537).to_bytes(size, "little")
    modulus = ((1 << (modulus_bits - 1)) | 0xF1).to_bytes(size, "little")
    signature = bytes([0xA5]) * size
    return header + pubexp + modulus + signature


def make_raw_chain(modulus_bits=2048):
    return (
        make_sev_cert(KeyUsage.PDH, 1)
        + make_sev_cert(KeyUsage.PEK, 2)
        + make_sev_cert(KeyUsage.OCA, 3)
        + make_sev_cert(KeyUsage.CEK, 4)
        + make_amd_cert(KeyUsage.ASK, modulus_bits)
        + make_amd_cert(KeyUsage.ARK, modulus_bits)
    )


@pytest.fixture
def chain():
    return Chain(
        ark=bytes([1, 2, 3, 4]),
        ask=bytes([5, 6, 7, 8]),
        pek=bytes([9, 10, 11, 12]),
        cek=bytes([13, 14, 15, 16]),
        pdh=bytes([17, 18, 19, 20]),
        oca=bytes([21, 22, 23, 24]),
    )


@pytest.fixture
def launch_start():
    return LaunchStart(
        policy=bytes([1, 0, 0, 0]),
        cert=make_sev_cert(KeyUsage.PDH, 7),
        session=bytes(range(128)),
    )


@pytest.fixture
def measurement():
    return Measurement(build=bytes([0, 22, 13]), measurement=bytes(range(48)))


@pytest.fixture
def handshake(chain, launch_start, measurement):
    """A complete, correctly ordered Naples handshake."""

    return [
        Message.certificate_chain_naples(chain),
        Message.launch_start(launch_start),
        Message.measurement(measurement),
        Message.secret(bytes(range(64))),
        Message.finish(),
    ]
