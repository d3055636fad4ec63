"""
TrustChain
==========

Vehicle-registration platform tooling: relational system of record plus
the ledger-consistency watchdog that keeps it aligned with the
permissioned distributed ledger.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
