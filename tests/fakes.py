from typing import Optional

from app.services.renderer import RenderResult


class ScriptedRenderer:
    """Plays back a list of outcomes: an Exception is raised, anything else returned."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def render(self, kind, subject_id, config):
        self.calls.append((kind, subject_id, config))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingNotifier:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.sent = []

    async def notify(self, target, job_id, artifact_ref):
        self.sent.append((target, job_id, artifact_ref))
        if self.error:
            raise self.error


def artifact(ref: str = "s3://docs/claim-1.pdf", summary: Optional[str] = None) -> RenderResult:
    return RenderResult(artifact_ref=ref, summary=summary)
