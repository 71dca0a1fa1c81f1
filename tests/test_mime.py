import cbor2
import pytest

from sev_attest_pytools import (
    AmbiguousPayloadUnresolvable,
    DecodeError,
    MalformedEnvelope,
    Message,
    MessageKind,
    PayloadLayout,
    PayloadShapeMismatch,
    SplitMessage,
    UnknownVariant,
    decode_split,
    encode,
    encode_split,
    mimetype_for,
    parse_mimetype,
    resolve_payload,
)
from sev_attest_pytools.layout import KeyUsage, unpack_chain
from sev_attest_pytools.mime import pack_raw_payload

from conftest import make_raw_chain, make_sev_cert


def test_mimetype():

    assert (
        mimetype_for(MessageKind.LAUNCH_START)
        == "application/vnd.enarx.att.sev+cbor; msg=launch-start"
    )
    assert (
        mimetype_for(MessageKind.SECRET, PayloadLayout.RAW)
        == "application/vnd.enarx.att.sev+cbor; msg=secret; layout=raw"
    )

    for kind in MessageKind:
        assert parse_mimetype(mimetype_for(kind)) == (kind, None)
        for layout in PayloadLayout:
            assert parse_mimetype(mimetype_for(kind, layout)) == (kind, layout)

    assert parse_mimetype("Application/Vnd.Enarx.Att.Sev+CBOR;msg=finish;charset=x") == (
        MessageKind.FINISH,
        None,
    )


def test_mimetype_errors():

    bad = (
        "application/cbor; msg=finish",
        "application/vnd.enarx.att.sev+cbor",
        "application/vnd.enarx.att.sev+cbor; finish",
        "application/vnd.enarx.att.sev+cbor; msg=finish; msg=secret",
        "application/vnd.enarx.att.sev+cbor; msg=finish; layout=packed",
    )
    for mimetype in bad:
        with pytest.raises(MalformedEnvelope):
            parse_mimetype(mimetype)

    with pytest.raises(UnknownVariant):
        parse_mimetype("application/vnd.enarx.att.sev+cbor; msg=attestation")


def test_structured_round_trip(handshake, chain):

    messages = handshake + [Message.certificate_chain_rome(chain), Message.secret(None)]

    for message in messages:
        for layout in (None, PayloadLayout.STRUCTURED):
            data = encode_split(message, layout)
            assert decode_split(data) == message
            assert SplitMessage.from_bytes(data).mimetype == mimetype_for(message.kind, layout)


def test_split_payload_is_structured_item(measurement):

    message = Message.measurement(measurement)
    split = SplitMessage.from_bytes(encode_split(message))

    assert isinstance(split.payload, bytes)
    assert cbor2.loads(split.payload) == measurement.to_cbor_item()


@pytest.mark.parametrize("modulus_bits", [2048, 4096])
def test_raw_chain(modulus_bits):

    raw = make_raw_chain(modulus_bits)
    chain = unpack_chain(raw)

    for kind in (MessageKind.CERTIFICATE_CHAIN_NAPLES, MessageKind.CERTIFICATE_CHAIN_ROME):
        message = Message(kind, chain)

        data = encode_split(message, PayloadLayout.RAW)
        assert SplitMessage.from_bytes(data).payload == raw
        assert decode_split(data) == message

        # Without the layout parameter the raw blob is found by fallback
        unannotated = SplitMessage(mimetype_for(kind), raw).to_bytes()
        assert decode_split(unannotated) == message


def test_raw_launch_start_secret_and_finish(launch_start):

    secret = bytes(52) + b"ciphertext"

    for message in (
        Message.launch_start(launch_start),
        Message.secret(secret),
        Message.finish(),
    ):
        blob = pack_raw_payload(message.kind, message.payload)
        assert resolve_payload(message.kind, blob) == message.payload
        assert decode_split(encode_split(message, PayloadLayout.RAW)) == message
        assert decode_split(SplitMessage(mimetype_for(message.kind), blob).to_bytes()) == message


def test_structured_interpretation_wins():

    # Valid CBOR for a secret array, and long enough to pass as a raw secret
    blob = cbor2.dumps(list(range(60)))
    assert len(blob) >= 52

    assert resolve_payload(MessageKind.SECRET, blob) == bytes(range(60))
    assert resolve_payload(MessageKind.SECRET, blob, PayloadLayout.RAW) == blob


def test_explicit_layout_disables_fallback(launch_start):

    raw = pack_raw_payload(MessageKind.LAUNCH_START, launch_start)

    assert resolve_payload(MessageKind.LAUNCH_START, raw) == launch_start
    with pytest.raises(DecodeError):
        resolve_payload(MessageKind.LAUNCH_START, raw, PayloadLayout.STRUCTURED)

    structured = cbor2.dumps(launch_start.to_cbor_item())
    with pytest.raises(PayloadShapeMismatch):
        resolve_payload(MessageKind.LAUNCH_START, structured, PayloadLayout.RAW)


def test_measurement_never_raw(measurement):

    raw = measurement.build + measurement.measurement

    with pytest.raises(PayloadShapeMismatch):
        resolve_payload(MessageKind.MEASUREMENT, raw)

    with pytest.raises(PayloadShapeMismatch):
        resolve_payload(MessageKind.MEASUREMENT, raw, PayloadLayout.RAW)

    # A valid structured payload is still refused when labelled raw
    structured = cbor2.dumps(measurement.to_cbor_item())
    with pytest.raises(PayloadShapeMismatch):
        resolve_payload(MessageKind.MEASUREMENT, structured, PayloadLayout.RAW)

    with pytest.raises(ValueError):
        encode_split(Message.measurement(measurement), PayloadLayout.RAW)


def test_message_container_never_raw(launch_start):

    raw = pack_raw_payload(MessageKind.LAUNCH_START, launch_start)

    with pytest.raises(MalformedEnvelope):
        decode_split(raw)

    # An envelope-era message is not a split message either
    with pytest.raises(MalformedEnvelope):
        decode_split(encode(Message.launch_start(launch_start)))


def test_unresolvable_payload():

    for kind, blob in (
        (MessageKind.SECRET, b"\xff" * 10),
        (MessageKind.CERTIFICATE_CHAIN_ROME, bytes(100)),
        (MessageKind.LAUNCH_START, b"\x01\x02\x03"),
        (MessageKind.FINISH, b"\x01\x02"),
    ):
        with pytest.raises(AmbiguousPayloadUnresolvable):
            resolve_payload(kind, blob)


def test_split_envelope_errors():

    bad = (
        {"mimetype": mimetype_for(MessageKind.FINISH)},
        {"mimetype": mimetype_for(MessageKind.FINISH), "payload": b"", "extra": 1},
        {"mimetype": mimetype_for(MessageKind.SECRET), "payload": [1, 2]},
        {"mimetype": b"finish", "payload": b""},
        [mimetype_for(MessageKind.FINISH), b""],
    )
    for item in bad:
        with pytest.raises(MalformedEnvelope):
            decode_split(cbor2.dumps(item))


def test_raw_layout_limits():

    with pytest.raises(ValueError):
        pack_raw_payload(MessageKind.SECRET, None)

    with pytest.raises(ValueError):
        pack_raw_payload(MessageKind.SECRET, b"short")

    with pytest.raises(ValueError):
        encode_split(Message.secret(None), PayloadLayout.RAW)


def test_raw_chain_must_split_back(chain):

    # Four byte placeholders cannot be told apart once concatenated
    with pytest.raises(ValueError):
        encode_split(Message.certificate_chain_naples(chain), PayloadLayout.RAW)

    data = encode_split(Message.certificate_chain_naples(chain))
    assert decode_split(data) == Message.certificate_chain_naples(chain)


def test_raw_launch_start_needs_pdh_cert(launch_start):

    start = type(launch_start)(
        policy=launch_start.policy,
        cert=make_sev_cert(KeyUsage.PEK, 7),
        session=launch_start.session,
    )
    with pytest.raises(ValueError):
        encode_split(Message.launch_start(start), PayloadLayout.RAW)
