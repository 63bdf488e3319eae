"""
Tellerline

Transaction authorization and audit pipeline: account state policies,
feature layers, rule validation, approval classification and a
hash-chained, append-only transaction ledger.
"""

__version__ = "1.0.0"
