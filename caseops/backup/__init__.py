from caseops.backup.manager import BackupInfo, BackupManager, BackupResult
from caseops.backup.models import BackupFile, BackupFormatError, BackupMetadata
from caseops.backup.restore import ChecksumVerdict, RestoreManager, RestoreSummary

__all__ = [
    "BackupFile",
    "BackupFormatError",
    "BackupInfo",
    "BackupManager",
    "BackupMetadata",
    "BackupResult",
    "ChecksumVerdict",
    "RestoreManager",
    "RestoreSummary",
]
