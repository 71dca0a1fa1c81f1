# Copyright 2025 Hewlett Packard Enterprise Development LP.
# SPDX-License-Identifier: MIT
#
# HTTP transport for exchanging CBOR-encoded attestation messages with a keep manager.

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import TransportError
from .message import Message, decode, encode
from .registry import BIND_PORT
from .sev_logging import get_logger, log_network_request

logger = get_logger(__name__)

CBOR_CONTENT_TYPE = "application/cbor"


def create_retry_session(
    retries=5, backoff_factor=0.1, status_forcelist=(500, 502, 503, 504), timeout=5
):
    """
    create_retry_session
    Description: Create a requests session with retry logic
    Inputs:
        - retries: int (number of retries)
        - backoff_factor: float (backoff factor for retries)
        - status_forcelist: tuple (HTTP status codes to retry on)
        - timeout: int (default timeout for requests)
    Output: requests.Session object with retry logic
    """
    session = requests.Session()
    retries = Retry(
        total=retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=None,
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.timeout = timeout
    return session


class HttpTransport:
    """
    HttpTransport - Posts encoded attestation messages to a keep manager endpoint

    The transport owns retries and timeouts; the codec never retries.
    """

    def __init__(
        self,
        base_url: str,
        retries: int = 5,
        backoff_factor: float = 0.1,
        timeout: int = 5,
        session: requests.Session = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or create_retry_session(
            retries=retries, backoff_factor=backoff_factor, timeout=timeout
        )
        self.timeout = timeout

    @classmethod
    def for_keepmgr(cls, address: str, port: int = BIND_PORT, path: str = "", **kwargs):
        return cls(f"http://{address}:{port}/{path.lstrip('/')}", **kwargs)

    def send(self, message: Message) -> bytes:
        """
        send
        Description: Post a message and return the raw reply body
        Input: message (Message)
        Output: bytes: The reply body
        Raises:
            TransportError: On connection failure or a non-200 reply
        """
        url = self.base_url
        data = encode(message)
        logger.debug(f"Sending {message.kind.tag} ({len(data)} bytes)")
        log_network_request(url, "POST")

        try:
            response = self.session.post(
                url,
                data=data,
                headers={"Content-Type": CBOR_CONTENT_TYPE},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            error_msg = f"Unable to send {message.kind.tag}: {e}"
            logger.error(error_msg)
            raise TransportError(error_msg) from e

        log_network_request(url, "POST", response.status_code)

        if response.status_code != 200:
            error_msg = f"Unable to send {message.kind.tag}: HTTP {response.status_code}"
            logger.error(error_msg)
            raise TransportError(error_msg, status_code=response.status_code)

        return response.content

    def exchange(self, message: Message) -> Message:
        """Post a message and decode the reply as a message."""
        reply = decode(self.send(message))
        logger.debug(f"Received {reply.kind.tag}")
        return reply

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
