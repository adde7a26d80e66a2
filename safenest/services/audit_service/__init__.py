"""Audit Service - hash-chained trail of safety signal and Safe Escape actions."""

from .audit_logger import (
    AuditAction,
    AuditEntity,
    AuditEntry,
    AuditLogger,
)

__all__ = [
    "AuditAction",
    "AuditEntity",
    "AuditEntry",
    "AuditLogger",
]
