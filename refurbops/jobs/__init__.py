"""
Background Jobs Module

Scheduled sweeps:
- TAT approaching / breached alerts for open repair jobs
- Purchase order aging alerts
"""

from refurbops.jobs.scheduler import create_scheduler, start_scheduler, shutdown_scheduler, get_job_status
from refurbops.jobs.tat_jobs import scan_and_notify, check_po_aging

__all__ = [
    "create_scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "scan_and_notify",
    "check_po_aging",
]
