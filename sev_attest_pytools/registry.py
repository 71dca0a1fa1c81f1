# Copyright 2025 Hewlett Packard Enterprise Development LP.
# SPDX-License-Identifier: MIT
#
# Registry of running keeps and the attestation handshake attached to each.

import enum
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
from uuid import UUID

from .errors import HandshakeError
from .message import Message
from .payloads import Measurement
from .sequencer import HandshakeSequencer, HandshakeStep
from .sev_logging import get_logger

logger = get_logger(__name__)

PROTO_VERSION = 0.2
PROTO_NAME = "Enarx-Keep-Manager"
BIND_PORT = 3030


class Backend(enum.Enum):
    NIL = "nil"
    SEV = "sev"
    SGX = "sgx"
    KVM = "kvm"

    def as_str(self) -> str:
        return self.value

    def file_match(self) -> str:
        """
        file_match
        Description: Get the device node whose presence indicates the backend is available
        Input: self (Backend)
        Output: str
        """
        return {
            Backend.NIL: "/",
            Backend.SEV: "/dev/sev",
            Backend.SGX: "/dev/sgx/enclave",
            Backend.KVM: "/dev/kvm",
        }[self]


class LoaderState(enum.Enum):
    INDETERMINATE = "Indeterminate"
    READY = "Ready"
    RUNNING = "Running"
    SHUTDOWN = "Shutdown"
    ERROR = "Error"


@dataclass(frozen=True)
class KeepMgr:
    address: str
    port: int = BIND_PORT


@dataclass(frozen=True)
class KeepContract:
    """A keep manager's offer to launch a keep on a given backend."""

    keepmgr: KeepMgr
    backend: Backend
    uuid: UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True)
class KeepInfo:
    """
    KeepInfo
    Description: Point-in-time copy of a registry record handed out to callers
    """

    kuuid: uuid.UUID
    backend: Backend
    state: LoaderState
    step: HandshakeStep
    human_readable_info: Optional[str] = None


@dataclass
class Keep:
    backend: Backend
    kuuid: uuid.UUID
    state: LoaderState
    sequencer: HandshakeSequencer
    human_readable_info: Optional[str] = None

    def snapshot(self) -> KeepInfo:
        return KeepInfo(
            kuuid=self.kuuid,
            backend=self.backend,
            state=self.state,
            step=self.sequencer.step,
            human_readable_info=self.human_readable_info,
        )


class KeepRegistry:
    """
    KeepRegistry - Arena of keeps indexed by UUID

    A single lock guards the arena. Callers never get references to the
    records, only KeepInfo snapshots. Messages for one keep are handled by
    that keep's own sequencer, so keeps proceed independently once looked up.
    """

    def __init__(
        self,
        verify_measurement: Optional[Callable[[Measurement], bool]] = None,
    ):
        self.verify_measurement = verify_measurement
        self._keeps: Dict[uuid.UUID, Keep] = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._keeps)

    def __contains__(self, kuuid):
        with self._lock:
            return kuuid in self._keeps

    def create(
        self,
        backend: Backend,
        kuuid: Optional[uuid.UUID] = None,
        human_readable_info: Optional[str] = None,
    ) -> KeepInfo:
        """
        Register a new keep with a fresh handshake.

        Args:
            backend: The keep's backend
            kuuid: Identifier to use; a random one is generated if omitted
            human_readable_info: Free-form description

        Returns:
            KeepInfo snapshot of the new keep

        Raises:
            ValueError: If a keep with this identifier already exists
        """
        kuuid = kuuid or uuid.uuid4()
        sequencer = HandshakeSequencer(
            verify_measurement=self.verify_measurement, name=f"keep {kuuid}"
        )
        keep = Keep(
            backend=backend,
            kuuid=kuuid,
            state=LoaderState.INDETERMINATE,
            sequencer=sequencer,
            human_readable_info=human_readable_info,
        )
        with self._lock:
            if kuuid in self._keeps:
                raise ValueError(f"Keep already registered: {kuuid}")
            self._keeps[kuuid] = keep
        logger.info(f"Registered {backend.as_str()} keep {kuuid}")
        return keep.snapshot()

    def create_from_contract(self, contract: KeepContract) -> KeepInfo:
        return self.create(contract.backend, kuuid=contract.uuid)

    def _lookup(self, kuuid: uuid.UUID) -> Keep:
        with self._lock:
            try:
                return self._keeps[kuuid]
            except KeyError:
                raise KeyError(f"Unknown keep: {kuuid}") from None

    def get(self, kuuid: uuid.UUID) -> KeepInfo:
        with self._lock:
            keep = self._keeps.get(kuuid)
            if keep is None:
                raise KeyError(f"Unknown keep: {kuuid}")
            return keep.snapshot()

    def list(self, backend: Optional[Backend] = None) -> List[KeepInfo]:
        with self._lock:
            return [
                keep.snapshot()
                for keep in self._keeps.values()
                if backend is None or keep.backend is backend
            ]

    def update_state(self, kuuid: uuid.UUID, state: LoaderState) -> KeepInfo:
        with self._lock:
            keep = self._keeps.get(kuuid)
            if keep is None:
                raise KeyError(f"Unknown keep: {kuuid}")
            keep.state = state
            logger.debug(f"Keep {kuuid} is now {state.value}")
            return keep.snapshot()

    def discard(self, kuuid: uuid.UUID) -> bool:
        """
        discard
        Description: Remove a keep and drop any partial handshake state
        Input: kuuid (uuid.UUID)
        Output: bool: True if the keep was registered
        """
        with self._lock:
            keep = self._keeps.pop(kuuid, None)
        if keep is None:
            return False
        logger.info(f"Discarded keep {kuuid} at handshake step {keep.sequencer.step.value}")
        return True

    def observe(self, kuuid: uuid.UUID, message: Message) -> HandshakeStep:
        """Advance a keep's handshake with an already decoded message."""
        keep = self._lookup(kuuid)
        return self._advance(keep, lambda: keep.sequencer.observe(message))

    def dispatch(self, kuuid: uuid.UUID, data: bytes) -> Message:
        """
        dispatch
        Description: Decode a message for a keep and advance that keep's handshake
        Inputs:
            kuuid (uuid.UUID): The keep the message belongs to
            data (bytes): Encoded message
        Output: Message
        Raises:
            KeyError: If the keep is unknown
            DecodeError, HandshakeError: The keep's state becomes Error
        """
        keep = self._lookup(kuuid)
        return self._advance(keep, lambda: keep.sequencer.receive(data))

    def _advance(self, keep: Keep, action):
        try:
            result = action()
        except (HandshakeError, ValueError):
            with self._lock:
                keep.state = LoaderState.ERROR
            raise
        if keep.sequencer.complete:
            with self._lock:
                keep.state = LoaderState.READY
        return result
