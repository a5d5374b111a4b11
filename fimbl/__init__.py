# fimbl/__init__.py
"""
fimbl: file integrity ledger.
Records a SHA3-256 baseline for files you register and later reports whether any of them changed.

Detection only: run it from cron or by hand, read the outcomes, accept or investigate.
"""

__version__ = "0.1.0"
