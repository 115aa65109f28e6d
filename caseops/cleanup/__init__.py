from caseops.cleanup.engine import CleanupAction, CleanupEngine, CleanupOptions, CleanupResult

__all__ = ["CleanupAction", "CleanupEngine", "CleanupOptions", "CleanupResult"]
