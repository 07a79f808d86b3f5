"""SolScope - Solana wallet analytics."""

__version__ = "0.1.0"
