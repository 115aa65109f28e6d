from caseops.monitor.change_monitor import ChangeEvent, ChangeMonitor, ChangeType, MonitorState, diff_snapshots

__all__ = ["ChangeEvent", "ChangeMonitor", "ChangeType", "MonitorState", "diff_snapshots"]
