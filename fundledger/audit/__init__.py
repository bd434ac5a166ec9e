"""Audit logging package."""

from fundledger.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
