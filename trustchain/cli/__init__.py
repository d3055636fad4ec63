# -*- coding: utf-8 -*-
"""TrustChain CLI - Main entry point."""

from trustchain.cli.main import app, main

__all__ = ["app", "main"]
