# Copyright 2025 Hewlett Packard Enterprise Development LP.
# SPDX-License-Identifier: MIT
#
# Per-session enforcement of the attestation handshake message order.

import threading
from enum import Enum
from typing import Callable, Iterable, List, Optional

from .errors import DecodeError, HandshakeError
from .message import Message, MessageKind, decode
from .payloads import Measurement
from .sev_logging import get_logger, log_verification_step

logger = get_logger(__name__)


class HandshakeStep(Enum):
    """The last step a session has completed."""

    START = "start"
    CERTIFICATE_CHAIN = "certificate-chain"
    LAUNCH_START = "launch-start"
    MEASUREMENT = "measurement"
    SECRET = "secret"
    FINISH = "finish"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (HandshakeStep.FINISH, HandshakeStep.FAILED)


# Step reached by a message kind, keyed by the step it must follow
_TRANSITIONS = {
    HandshakeStep.START: {
        MessageKind.CERTIFICATE_CHAIN_NAPLES: HandshakeStep.CERTIFICATE_CHAIN,
        MessageKind.CERTIFICATE_CHAIN_ROME: HandshakeStep.CERTIFICATE_CHAIN,
    },
    HandshakeStep.CERTIFICATE_CHAIN: {MessageKind.LAUNCH_START: HandshakeStep.LAUNCH_START},
    HandshakeStep.LAUNCH_START: {MessageKind.MEASUREMENT: HandshakeStep.MEASUREMENT},
    HandshakeStep.MEASUREMENT: {MessageKind.SECRET: HandshakeStep.SECRET},
    HandshakeStep.SECRET: {MessageKind.FINISH: HandshakeStep.FINISH},
}


class HandshakeSequencer:
    """
    HandshakeSequencer - Tracks one attestation session and rejects out-of-order messages

    The accepted order is::

        certificate-chain-(naples|rome) -> launch-start -> measurement -> secret -> finish

    No step may be skipped or repeated. A secret is only accepted after a
    measurement has been accepted; when a ``verify_measurement`` callback is
    given, a measurement is accepted only if the callback returns True.

    Any violation fails the session for good. Calls on one sequencer are
    serialized; separate sequencers share no state.
    """

    def __init__(
        self,
        verify_measurement: Optional[Callable[[Measurement], bool]] = None,
        name: Optional[str] = None,
    ):
        self.verify_measurement = verify_measurement
        self.name = name or "session"
        self._step = HandshakeStep.START
        self._history: List[MessageKind] = []
        self._measurement_accepted = False
        self._lock = threading.Lock()

    @property
    def step(self) -> HandshakeStep:
        return self._step

    @property
    def history(self) -> List[MessageKind]:
        """Kinds of the messages accepted so far, in order."""
        with self._lock:
            return list(self._history)

    @property
    def measurement_accepted(self) -> bool:
        return self._measurement_accepted

    @property
    def complete(self) -> bool:
        return self._step is HandshakeStep.FINISH

    def expected(self) -> List[MessageKind]:
        """Get the message kinds that may come next."""
        return list(_TRANSITIONS.get(self._step, {}))

    def _fail(self, reason: str, kind: Optional[MessageKind] = None) -> HandshakeError:
        step = self._step
        self._step = HandshakeStep.FAILED
        logger.error(f"{self.name}: handshake failed at step {step.value}: {reason}")
        return HandshakeError(reason, step=step, kind=kind)

    def observe(self, message: Message) -> HandshakeStep:
        """
        Advance the session with a decoded message.

        Args:
            message: The message sent or received next in this session

        Returns:
            The step reached

        Raises:
            HandshakeError: If the message is out of order or the measurement is rejected
        """
        with self._lock:
            kind = message.kind

            if self._step is HandshakeStep.FAILED:
                raise HandshakeError(
                    f"{self.name}: session has failed and must be discarded",
                    step=self._step,
                    kind=kind,
                )
            if self._step is HandshakeStep.FINISH:
                raise self._fail(f"{kind.tag} received after finish", kind)

            if kind is MessageKind.SECRET and not self._measurement_accepted:
                raise self._fail("secret received before a measurement was accepted", kind)

            next_step = _TRANSITIONS[self._step].get(kind)
            if next_step is None:
                expected = ", ".join(k.tag for k in _TRANSITIONS[self._step])
                raise self._fail(f"unexpected {kind.tag}, expected {expected}", kind)

            if kind is MessageKind.MEASUREMENT:
                self._check_measurement(message.payload)

            self._step = next_step
            self._history.append(kind)
            logger.debug(f"{self.name}: {kind.tag} accepted, now at {next_step.value}")
            return next_step

    def _check_measurement(self, measurement: Measurement) -> None:
        if self.verify_measurement is None:
            self._measurement_accepted = True
            return

        try:
            accepted = bool(self.verify_measurement(measurement))
        except Exception as e:
            raise self._fail(f"measurement verification raised: {e}", MessageKind.MEASUREMENT) from e

        if not accepted:
            log_verification_step("Launch measurement", "FAIL")
            raise self._fail("measurement rejected", MessageKind.MEASUREMENT)
        log_verification_step("Launch measurement", "PASS")
        self._measurement_accepted = True

    def receive(self, data: bytes) -> Message:
        """
        receive
        Description: Decode an envelope-era message and advance the session with it
        Input: data (bytes): Encoded message
        Output: Message: The decoded message
        Raises:
            DecodeError: If the bytes do not decode; the session fails as well
            HandshakeError: If the message is out of order
        """
        try:
            message = decode(data)
        except DecodeError as e:
            with self._lock:
                if self._step is not HandshakeStep.FAILED:
                    self._fail(f"undecodable message: {e}")
            raise
        self.observe(message)
        return message


def validate_sequence(
    messages: Iterable[Message],
    verify_measurement: Optional[Callable[[Measurement], bool]] = None,
) -> HandshakeStep:
    """
    validate_sequence
    Description: Check a whole message stream against the handshake order
    Inputs:
        messages: Messages in the order they were exchanged
        verify_measurement: Optional measurement acceptance callback
    Output: HandshakeStep: The step reached after the last message
    Raises:
        HandshakeError: At the first message out of order
    """
    sequencer = HandshakeSequencer(verify_measurement=verify_measurement, name="stream")
    for message in messages:
        sequencer.observe(message)
    return sequencer.step
