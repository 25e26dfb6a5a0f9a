"""
Audit logging for email2dm.

This package records connection rejections and dispatch outcomes as
syslog lines, with an optional JSON Lines copy.
"""

from email2dm.audit.logger import AuditEventType, AuditLogger, format_audit_line

__all__ = [
    "AuditEventType",
    "AuditLogger",
    "format_audit_line",
]
