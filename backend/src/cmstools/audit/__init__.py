"""Audit trail writer and reader."""

from cmstools.audit.logger import AuditLogger, RequestInfo
from cmstools.audit.reader import AuditEntry, AuditLogReader, AuditPage

__all__ = ["AuditLogger", "RequestInfo", "AuditEntry", "AuditLogReader", "AuditPage"]
