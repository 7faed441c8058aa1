#!/usr/bin/env python3
import asyncio
import os
import sys
import uuid

sys.path.append(os.getcwd())

from app.db.session import AsyncSessionLocal
from app.commands.enqueue_job import enqueue_job
from app.commands.claim_job import claim_job

async def attempt_claim(worker_id):
    async with AsyncSessionLocal() as session:
        async with session.begin():
            job = await claim_job(session, worker_id)
    return (worker_id, job) if job else None

async def verify_no_double_claim():
    tenant_id = f"tenant-concurrency-{uuid.uuid4()}"

    # 1. Create 1 job
    print("1. Creating 1 job...")
    async with AsyncSessionLocal() as session:
        async with session.begin():
            job = await enqueue_job(
                session,
                tenant_id=tenant_id,
                subject_id="claim-concurrency",
                kind="PACKET",
                config={"sections": ["cover"]},
                requested_by="verify-script",
            )
    job_id = job.id
    print(f"   Job created: {job_id}")

    # 2. Spawn 20 concurrent dispatchers trying to claim
    print("2. Spawning 20 concurrent claim attempts...")
    results = await asyncio.gather(*[attempt_claim(f"worker-{i}") for i in range(20)])

    # 3. Analyze results (other queued jobs in the database may be claimed too)
    claims = [r for r in results if r is not None and r[1].id == job_id]
    print(f"3. Results: {len(claims)} claims on {job_id}.")

    if len(claims) == 1:
        print(f"SUCCESS: Exactly one dispatcher claimed the job. Winner: {claims[0][0]}")
    elif len(claims) == 0:
        print("FAILURE: No one claimed the job (unexpected).")
        sys.exit(1)
    else:
        print(f"FAILURE: {len(claims)} dispatchers claimed the job! Double claim detected.")
        sys.exit(1)

if __name__ == "__main__":
    asyncio.run(verify_no_double_claim())
