from caseops.integrity.auditor import AuditReport, IntegrityAuditor, TimestampReport

__all__ = ["AuditReport", "IntegrityAuditor", "TimestampReport"]
