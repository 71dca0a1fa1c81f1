# Copyright 2025 Hewlett Packard Enterprise Development LP.
# SPDX-License-Identifier: MIT
#
# Setup configuration for sev_attest_pytools package.

from setuptools import find_packages, setup

setup(
    name="sev_attest_pytools",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "cbor2>=5.4.0",
        "requests",
        "cryptography>=39.0.0",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "sev-attest-decode=sev_attest_pytools.decode_message:main",
        ],
    },
    description="Python tools for the AMD SEV remote attestation protocol",
    author="Isaac Matthews",
    author_email="isaac@hpe.com",
    license="MIT",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
    ],
)
