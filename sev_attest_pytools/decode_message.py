# Copyright 2025 Hewlett Packard Enterprise Development LP.
# SPDX-License-Identifier: MIT
#
# Command-line utility for decoding and displaying SEV attestation protocol messages.

import argparse

from .errors import DecodeError
from .message import decode
from .mime import decode_split
from .sev_logging import log_section_header, log_subsection_header, setup_cli_logging


def main(argv=None):
    """
    main
    Description: Parse command-line arguments, read an encoded message file, and print its details
    Input: argv (list): Arguments to parse instead of sys.argv (optional)
    Arguments:
        -f, --file: Path to the message file (default: message.cbor)
        --split: Decode the split (mimetype + payload) representation
        -v, --verbose: Enable verbose logging (flag)
        -q, --quiet: Enable quiet mode (flag)
        --log-file: Path to log file (optional)
    Output: int: Exit status
    Examples:
        sev-attest-decode -f measurement.cbor
        sev-attest-decode -f launch-start.cbor --split --verbose
    """
    parser = argparse.ArgumentParser(description="Decode an SEV attestation message")
    parser.add_argument(
        "-f",
        "--file",
        default="message.cbor",
        help="Path to the message file (default: message.cbor)",
    )
    parser.add_argument(
        "--split",
        action="store_true",
        default=False,
        help="Decode the split mimetype/payload representation",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=False,
        help="Enable quiet mode (warnings and errors only)",
    )
    parser.add_argument("--log-file", type=str, help="Path to log file (optional)")
    args = parser.parse_args(argv)

    logger = setup_cli_logging(
        verbose=args.verbose, quiet=args.quiet, log_file=args.log_file
    )

    log_section_header("SEV ATTESTATION MESSAGE")

    try:
        logger.info(f"Reading attestation message from: {args.file}")
        with open(args.file, "rb") as file:
            data = file.read()

        logger.debug(f"Read {len(data)} bytes from file")
        message = decode_split(data) if args.split else decode(data)
        logger.info("Successfully decoded attestation message")

        form = "split" if args.split else "envelope"
        log_subsection_header(f"Message Details ({form} form)")
        message.log_details()

    except FileNotFoundError:
        logger.error(f"File not found: {args.file}")
        return 1
    except DecodeError as e:
        logger.error(f"Invalid attestation message ({type(e).__name__}): {e}")
        return 1
    except Exception as e:
        logger.error(f"Error processing attestation message: {e}")
        if args.verbose:
            logger.exception("Full traceback:")
        return 1

    return 0


if __name__ == "__main__":
    exit_code = main()
    exit(exit_code)
