"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import IntEnum


class JobStatus(IntEnum):
    """
    Job lifecycle states, persisted as small integers.

    State transitions:
    - PENDING -> RUNNING (claimed by pop)
    - RUNNING -> PENDING (release, or recover after a worker crash)
    - RUNNING -> DELETED (job succeeded)
    - RUNNING -> BURIED (job failed permanently)
    """

    PENDING = 1
    RUNNING = 2
    DELETED = 3
    BURIED = 4


# Retention sentinels for deleted/buried jobs (positive values are minutes)
LIFETIME_DISABLED = 0
LIFETIME_UNLIMITED = -1

# Default values
DEFAULT_TABLE_NAME = "queue_jobs"
DEFAULT_QUEUE_NAME = "default"

# Metrics names
METRIC_JOBS_PUSHED = "tablequeue_jobs_pushed_total"
METRIC_JOBS_CLAIMED = "tablequeue_jobs_claimed_total"
METRIC_JOBS_COMPLETED = "tablequeue_jobs_completed_total"
METRIC_JOBS_RECOVERED = "tablequeue_jobs_recovered_total"
METRIC_JOBS_PURGED = "tablequeue_jobs_purged_total"
METRIC_JOB_DURATION = "tablequeue_job_duration_seconds"
METRIC_CLAIM_LATENCY = "tablequeue_claim_latency_seconds"
METRIC_QUEUE_PENDING = "tablequeue_queue_pending"

# Trace span names
SPAN_POP_JOB = "pop_job"
SPAN_EXECUTE_JOB = "execute_job"
SPAN_RECOVER = "recover_jobs"
