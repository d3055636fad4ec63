#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Setup script for TrustChain

Installs the ``trustchain`` package (ledger-consistency watchdog, relational
store adapter, REST router) and the ``trustchain`` console script.
"""

from pathlib import Path

from setuptools import find_packages, setup

VERSION = "1.0.0"

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")
else:
    long_description = "TrustChain ledger-consistency watchdog for vehicle registrations"

setup(
    name="trustchain",
    version=VERSION,
    description="Ledger-consistency watchdog for a relational registry backed by an append-only ledger",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="TrustChain Platform Team",
    python_requires=">=3.9",
    packages=find_packages(include=["trustchain", "trustchain.*"]),
    install_requires=[
        "pydantic>=2.0",
        "prometheus_client>=0.17",
        "fastapi>=0.100,<0.137",
        "requests>=2.31",
        "typer>=0.9",
        "rich>=13.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "trustchain=trustchain.cli.main:main",
        ],
    },
)
