"""
WARDEN - Access Control & Audit Core

Role-based access decisions and an append-only audit trail for the
administrative dashboard.
"""

__version__ = "1.0.0"
