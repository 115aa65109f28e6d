from caseops.health.engine import HealthCheckEngine, HealthReport, aggregate_status
from caseops.health.models import CheckResult, Probe, ProbeContext, Status, Verdict

__all__ = [
    "CheckResult",
    "HealthCheckEngine",
    "HealthReport",
    "Probe",
    "ProbeContext",
    "Status",
    "Verdict",
    "aggregate_status",
]
