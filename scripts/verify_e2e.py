#!/usr/bin/env python3
import asyncio
import sys
import uuid

import httpx

API_URL = "http://localhost:8000"

async def verify():
    # 0. Wait for API Readiness
    print("Waiting for API to be ready...")
    async with httpx.AsyncClient(base_url=API_URL, timeout=5.0) as client:
        for _ in range(30):
            try:
                resp = await client.get("/health")
                if resp.status_code == 200:
                    break
            except httpx.HTTPError:
                pass
            await asyncio.sleep(1)
        else:
            print("FAILURE: API never became ready")
            sys.exit(1)

        tenant_id = f"tenant-e2e-{uuid.uuid4()}"

        # 1. Enqueue
        print("1. Enqueueing SUPPLEMENT job...")
        resp = await client.post("/api/v1/jobs", json={
            "tenant_id": tenant_id,
            "subject_id": "claim-e2e",
            "kind": "SUPPLEMENT",
            "config": {"sections": ["cover", "line_items"], "title": "E2E Supplement"},
            "requested_by": "verify-script",
        })
        resp.raise_for_status()
        job_id = resp.json()["job_id"]
        print(f"   Job created: {job_id}")

        # 2. Poll status until terminal
        print("2. Polling status...")
        status = None
        for _ in range(120):
            resp = await client.get(f"/api/v1/jobs/{job_id}")
            resp.raise_for_status()
            view = resp.json()
            if view["status"] != status:
                status = view["status"]
                print(f"   {status} (progress={view['progress']}, attempts={view['attempts']})")
            if status in ("completed", "failed", "cancelled"):
                break
            await asyncio.sleep(1)

        if status == "completed":
            print(f"SUCCESS: Job completed, artifact at {view['result_url']}")
        elif status == "failed":
            print(f"FAILURE: Job failed after {view['attempts']} attempts: {view['last_error']}")
            sys.exit(1)
        else:
            print(f"FAILURE: Job still {status} (is a dispatcher running?)")
            sys.exit(1)

        # 3. Cancel after completion must be refused
        resp = await client.post(f"/api/v1/jobs/{job_id}/cancel")
        if resp.json() != {"cancelled": False}:
            print(f"FAILURE: Completed job was cancellable: {resp.json()}")
            sys.exit(1)
        print("SUCCESS: Completed job refused cancellation.")

if __name__ == "__main__":
    asyncio.run(verify())
