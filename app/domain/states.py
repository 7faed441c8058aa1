from enum import StrEnum, auto

class JobStatus(StrEnum):
    QUEUED = auto()       # Created or requeued, waiting for a dispatcher
    PROCESSING = auto()   # Claimed by a dispatcher, renderer call in flight
    COMPLETED = auto()    # Artifact rendered
    FAILED = auto()       # Retry budget exhausted
    CANCELLED = auto()    # Cancelled before dispatch

class JobEvent(StrEnum):
    CREATED = auto()
    CLAIMED = auto()
    COMPLETED = auto()
    RETRIED = auto()
    FAILED = auto()
    CANCELLED = auto()
    CLAIM_EXPIRED = auto()

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

# Client-facing progress per status
PROGRESS = {
    JobStatus.QUEUED: 10,
    JobStatus.PROCESSING: 50,
    JobStatus.COMPLETED: 100,
    JobStatus.FAILED: 0,
    JobStatus.CANCELLED: 0,
}

# Allowed edges of the lifecycle
TRANSITIONS = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.QUEUED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

def can_transition(current: str, target: str) -> bool:
    return JobStatus(target) in TRANSITIONS[JobStatus(current)]
