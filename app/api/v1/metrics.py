from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response

router = APIRouter()

# Metrics Definitions
QUEUE_DEPTH = Gauge('docgen_queue_depth', 'Number of jobs in queued state', ['tenant_id'])
JOBS_INFLIGHT = Gauge('docgen_jobs_inflight', 'Number of jobs currently processing')

JOB_ENQUEUED_TOTAL = Counter('docgen_jobs_enqueued_total', 'Total jobs enqueued', ['kind'])
JOB_CLAIM_TOTAL = Counter('docgen_job_claims_total', 'Total jobs claimed by dispatchers', ['kind'])
JOB_FAILURES = Counter('docgen_job_failures_total', 'Total failed render attempts', ['kind', 'type'])  # type=retryable|final
JOB_COMPLETE_TOTAL = Counter('docgen_jobs_completed_total', 'Total jobs completed', ['kind'])
JOB_CANCELLED_TOTAL = Counter('docgen_jobs_cancelled_total', 'Total jobs cancelled before dispatch')

RENDER_DURATION = Histogram(
    'docgen_render_duration_seconds',
    'Time spent in the renderer per attempt',
    ['kind'],
    buckets=[0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

NOTIFY_FAILURES = Counter('docgen_notify_failures_total', 'Completion notifications that could not be delivered')

REAPER_RECOVERED_JOBS = Counter(
    "docgen_reaper_recovered_jobs_total",
    "Total number of stale claims recovered by the reaper"
)

@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
