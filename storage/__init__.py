"""Relational storage for CRM records."""

from storage.store import CRMStore

__all__ = ["CRMStore"]
