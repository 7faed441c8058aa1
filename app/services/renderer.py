import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from app.domain.errors import RenderFailure

logger = logging.getLogger(__name__)

@dataclass
class RenderResult:
    artifact_ref: Optional[str]
    summary: Optional[str] = None

class Renderer(Protocol):
    async def render(self, kind: str, subject_id: str, config: dict[str, Any]) -> RenderResult:
        ...

class HttpRenderer:
    """
    Renderer adapter backed by the rendering service.
    POST {base_url}/render -> {"artifact_ref": ..., "summary": ...}
    Timeouts are enforced by the dispatcher, not here.
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        self.client = httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=None)

    async def render(self, kind: str, subject_id: str, config: dict[str, Any]) -> RenderResult:
        try:
            resp = await self.client.post(
                "/render",
                json={"kind": kind, "subject_id": subject_id, "config": config},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise RenderFailure(f"Renderer returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise RenderFailure(f"Renderer unavailable: {e}") from e

        if not isinstance(data, dict):
            raise RenderFailure("Renderer returned a malformed response")

        return RenderResult(artifact_ref=data.get("artifact_ref"), summary=data.get("summary"))

    async def close(self):
        await self.client.aclose()
