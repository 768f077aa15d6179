"""
Presence Module.

One attendance record per subject per day, marked in group batches.
Statistics and reports are computed from the stored records.
"""

from school_modules.presence.config import PresenceConfig
from school_modules.presence.models import (
    AttendanceBatchResult,
    AttendanceDashboard,
    AttendanceEntry,
    AttendanceStatistics,
    GroupReportRow,
    PresenceRecord,
    PresenceStatus,
    attendance_percentage,
)

__all__ = [
    "AttendanceBatchResult",
    "AttendanceDashboard",
    "AttendanceEntry",
    "AttendanceStatistics",
    "GroupReportRow",
    "PresenceRecord",
    "PresenceStatus",
    "attendance_percentage",
    "PresenceConfig",
]
