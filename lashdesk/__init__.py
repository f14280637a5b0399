"""LashDesk booking ledger and Labs checkout engine."""

__version__ = "0.1.0"
