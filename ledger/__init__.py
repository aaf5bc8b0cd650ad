"""
Tamper-Evident Asset Ledger

Append-only, hash-chained event history for tracked assets and properties.
"""

__version__ = "0.1.0"
