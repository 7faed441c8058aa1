import logging
from typing import Optional, Protocol
from uuid import UUID

import httpx

logger = logging.getLogger(__name__)

class CompletionNotifier(Protocol):
    async def notify(self, target: str, job_id: UUID, artifact_ref: str) -> None:
        ...

class WebhookNotifier:
    """
    Delivers completion notices.
    http(s) targets are called directly; anything else (an e-mail address)
    goes through the relay service when one is configured.
    Errors propagate: the dispatcher decides they are best-effort.
    """

    def __init__(self, relay_url: Optional[str] = None, timeout: float = 10.0):
        self.relay_url = relay_url
        self.client = httpx.AsyncClient(timeout=timeout)

    async def notify(self, target: str, job_id: UUID, artifact_ref: str) -> None:
        body = {"job_id": str(job_id), "artifact_ref": artifact_ref, "event": "document.completed"}

        if target.startswith(("http://", "https://")):
            resp = await self.client.post(target, json=body)
        elif self.relay_url:
            resp = await self.client.post(self.relay_url, json={"to": target, **body})
        else:
            logger.info("No relay configured, skipping notification to %s for job %s", target, job_id)
            return

        resp.raise_for_status()

    async def close(self):
        await self.client.aclose()
