# -*- coding: utf-8 -*-
"""REST API for the Ledger Consistency Watchdog."""

from trustchain.ledger_watchdog.api.router import router

__all__ = ["router"]
