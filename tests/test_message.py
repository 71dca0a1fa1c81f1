import cbor2
import pytest

from sev_attest_pytools import (
    Chain,
    Finish,
    LaunchStart,
    MalformedEnvelope,
    Measurement,
    Message,
    MessageKind,
    PayloadShapeMismatch,
    TruncatedInput,
    UnknownVariant,
    decode,
    encode,
)


def all_messages(chain, launch_start, measurement):
    return [
        Message.certificate_chain_naples(chain),
        Message.certificate_chain_rome(chain),
        Message.launch_start(launch_start),
        Message.measurement(measurement),
        Message.secret(b"\x00secret"),
        Message.secret(b""),
        Message.secret(None),
        Message.finish(),
    ]


def test_round_trip_every_variant(chain, launch_start, measurement):

    messages = all_messages(chain, launch_start, measurement)
    assert {m.kind for m in messages} == set(MessageKind)

    for message in messages:
        data = encode(message)
        assert isinstance(data, bytes)
        decoded = decode(data)
        assert decoded == message
        assert encode(decoded) == data


def test_finish_scenario():

    data = cbor2.dumps({"finish": None})
    assert data == b"\xa1\x66finish\xf6"

    message = decode(data)
    assert message.kind is MessageKind.FINISH
    assert message.payload == Finish()
    assert encode(message) == data
    assert encode(Message.finish()) == data


def test_finish_accepts_empty_map():

    message = decode(cbor2.dumps({"finish": {}}))
    assert message == Message.finish()


def test_secret_accepts_both_eras():

    current = decode(cbor2.dumps({"secret": [1, 2, 3, 4]}))
    legacy = decode(cbor2.dumps({"secret": None}))

    assert current.kind is MessageKind.SECRET
    assert current.payload == bytes([1, 2, 3, 4])

    assert legacy.kind is MessageKind.SECRET
    assert legacy.payload is None


def test_secret_absent_and_empty_are_distinct():

    absent = Message.secret(None)
    empty = Message.secret(b"")
    assert absent != empty

    assert cbor2.loads(encode(absent)) == {"secret": None}
    assert cbor2.loads(encode(empty)) == {"secret": []}
    assert decode(encode(empty)).payload == b""


@pytest.mark.parametrize(
    "kind", [MessageKind.CERTIFICATE_CHAIN_NAPLES, MessageKind.CERTIFICATE_CHAIN_ROME]
)
def test_chain_round_trip_under_both_tags(chain, kind):

    message = Message(kind, chain)
    decoded = decode(encode(message))

    assert decoded.kind is kind
    assert decoded.payload.ark == bytes([1, 2, 3, 4])
    assert decoded.payload.ask == bytes([5, 6, 7, 8])
    assert decoded.payload.pek == bytes([9, 10, 11, 12])
    assert decoded.payload.cek == bytes([13, 14, 15, 16])
    assert decoded.payload.pdh == bytes([17, 18, 19, 20])
    assert decoded.payload.oca == bytes([21, 22, 23, 24])


def test_wire_layout(chain):

    item = cbor2.loads(encode(Message.certificate_chain_naples(chain)))
    assert list(item) == ["certificate-chain-naples"]

    payload = item["certificate-chain-naples"]
    assert list(payload) == ["ark", "ask", "oca", "cek", "pek", "pdh"]
    assert payload["ark"] == [1, 2, 3, 4]

    item = cbor2.loads(encode(Message.secret(bytes([1, 2, 3, 4]))))
    assert item == {"secret": [1, 2, 3, 4]}


def test_tags():

    tags = sorted(kind.tag for kind in MessageKind)
    assert tags == [
        "certificate-chain-naples",
        "certificate-chain-rome",
        "finish",
        "launch-start",
        "measurement",
        "secret",
    ]


def test_tag_payload_coherence(chain, launch_start, measurement):

    chain_item = chain.to_cbor_item()
    start_item = launch_start.to_cbor_item()
    measurement_item = measurement.to_cbor_item()

    crafted = [
        {"launch-start": chain_item},
        {"measurement": start_item},
        {"certificate-chain-rome": measurement_item},
        {"certificate-chain-naples": start_item},
        {"secret": chain_item},
        {"finish": measurement_item},
        {"finish": [1, 2, 3]},
        {"measurement": [1, 2, 3]},
        {"launch-start": None},
    ]

    for envelope in crafted:
        with pytest.raises(PayloadShapeMismatch):
            decode(cbor2.dumps(envelope))


def test_malformed_envelope():

    for item in ([], {}, 5, "finish", None, {"finish": None, "secret": None}):
        with pytest.raises(MalformedEnvelope):
            decode(cbor2.dumps(item))

    with pytest.raises(MalformedEnvelope):
        decode(b"\xff")

    # Text and other non-binary values are not encoded messages
    for data in ("finish", None, 0, [0xA1, 0x66]):
        with pytest.raises(MalformedEnvelope):
            decode(data)

    assert decode(bytearray(encode(Message.finish()))) == Message.finish()


def test_unknown_variant():

    for item in ({"attest": None}, {"Finish": None}, {"launch_start": None}, {1: None}):
        with pytest.raises(UnknownVariant):
            decode(cbor2.dumps(item))


def test_payload_fields(measurement):

    good = measurement.to_cbor_item()

    missing = dict(good)
    del missing["build"]

    extra = dict(good)
    extra["nonce"] = [1]

    byte_string = dict(good)
    byte_string["build"] = b"\x00\x16\x0d"

    for item in (missing, extra, byte_string):
        with pytest.raises(PayloadShapeMismatch):
            decode(cbor2.dumps({"measurement": item}))

    for leaf in ([256], [-1], [True], ["a"], [1.0], "abc"):
        with pytest.raises(PayloadShapeMismatch):
            decode(cbor2.dumps({"secret": leaf}))


def test_truncated_input(launch_start):

    data = encode(Message.launch_start(launch_start))

    for cut in (0, 1, 10, len(data) // 2, len(data) - 1):
        with pytest.raises(TruncatedInput):
            decode(data[:cut])


def test_trailing_bytes():

    data = encode(Message.finish())

    with pytest.raises(MalformedEnvelope):
        decode(data + b"\x00")

    with pytest.raises(MalformedEnvelope):
        decode(data + data)


def test_message_requires_matching_payload(chain, measurement):

    with pytest.raises(TypeError):
        Message(MessageKind.LAUNCH_START, chain)

    with pytest.raises(TypeError):
        Message(MessageKind.CERTIFICATE_CHAIN_ROME, measurement)

    with pytest.raises(TypeError):
        Message(MessageKind.SECRET, [1, 2, 3])

    with pytest.raises(TypeError):
        Message("finish", Finish())


def test_messages_are_immutable(chain):

    message = Message.certificate_chain_rome(chain)

    with pytest.raises(AttributeError):
        message.kind = MessageKind.CERTIFICATE_CHAIN_NAPLES

    with pytest.raises(AttributeError):
        chain.ark = b""


def test_payload_coercion():

    chain = Chain(
        ark=bytearray(b"a"), ask=b"b", oca=b"c", cek=b"d", pek=b"e", pdh=memoryview(b"f")
    )
    assert chain.ark == b"a"
    assert chain.pdh == b"f"

    with pytest.raises(TypeError):
        LaunchStart(policy=[1, 0, 0, 0], cert=b"", session=b"")

    assert Message.secret(bytearray(b"xy")).payload == b"xy"
    assert Measurement(build=b"", measurement=b"").sizes() == {"build": 0, "measurement": 0}


def test_finish_default_payload():

    assert Message(MessageKind.FINISH) == Message.finish()
