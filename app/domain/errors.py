class JobError(Exception):
    """Base exception for document job errors."""
    pass

class ConfigurationError(JobError):
    pass

class InvalidConfigError(JobError):
    """Generation request rejected at enqueue time. Never retried."""
    pass

class JobNotFoundError(JobError):
    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")

class InvalidTransitionError(JobError):
    def __init__(self, current_status, target_status):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(f"Cannot transition from {current_status} to {target_status}")

class RenderFailure(JobError):
    """Renderer raised, timed out or returned no artifact. Retryable."""
    pass
