import asyncio
from datetime import timedelta

from harvester.jobs.scheduler import (
    CANCELLED_MESSAGE,
    INTERRUPTED_MESSAGE,
    NO_RESULT_MESSAGE,
    SHUTDOWN_MESSAGE,
    JobScheduler,
    JobSpec,
)
from harvester.models.job import Job
from harvester.schemas.enums import JobStatus
from harvester.storage.json_file import JsonFileStorage
from harvester.utils.date_utils import get_now

META = {"campaign_id": "ABC123", "category": "Casa"}


def _waiting_work(gate: asyncio.Event, started: asyncio.Event = None, value="done"):
    async def work(job_id):
        if started is not None:
            started.set()
        await gate.wait()
        return value
    return work


def test_submit_runs_work_with_its_own_id():
    seen = []

    async def work(job_id):
        seen.append(job_id)
        return {"items": 3}

    async def scenario():
        scheduler = JobScheduler(max_concurrent_jobs=2)
        job = await scheduler.submit("campaign-scraping", work, META)
        assert job.status == JobStatus.PENDING
        return job, await scheduler.wait_for(job.id, timeout=1)

    job, settled = asyncio.run(scenario())

    assert seen == [job.id]
    assert settled.status == JobStatus.COMPLETED
    assert settled.result == {"items": 3}
    assert settled.started_at is not None and settled.completed_at is not None


def test_work_errors_and_missing_results_fail_the_job():
    async def boom(job_id):
        raise ValueError("boom")

    async def nothing(job_id):
        return None

    async def scenario():
        scheduler = JobScheduler(max_concurrent_jobs=2)
        failed = await scheduler.submit("campaign-scraping", boom, META)
        empty = await scheduler.submit("campaign-scraping", nothing, META)
        return await scheduler.wait_for(failed.id, 1), await scheduler.wait_for(empty.id, 1)

    failed, empty = asyncio.run(scenario())

    assert failed.status == JobStatus.FAILED and failed.error == "boom"
    assert failed.result is None
    assert empty.status == JobStatus.FAILED and empty.error == NO_RESULT_MESSAGE


def test_find_by_correlation_matches_exact_key_and_skips_failed():
    async def boom(job_id):
        raise RuntimeError("nope")

    async def scenario():
        scheduler = JobScheduler(max_concurrent_jobs=2)
        gate = asyncio.Event()
        live = await scheduler.submit("orchestrator", _waiting_work(gate), META)

        same = await scheduler.find_by_correlation("ABC123", "Casa", None)
        narrower = await scheduler.find_by_correlation("ABC123", "Casa", "Cozinha")
        wider = await scheduler.find_by_correlation("ABC123")

        failed = await scheduler.submit("campaign-scraping", boom, {"campaign_id": "XYZ789"})
        await scheduler.wait_for(failed.id, 1)
        after_failure = await scheduler.find_by_correlation("XYZ789")

        gate.set()
        await scheduler.wait_for(live.id, 1)
        return live, same, narrower, wider, after_failure

    live, same, narrower, wider, after_failure = asyncio.run(scenario())

    assert same.id == live.id
    assert narrower is None
    assert wider is None
    assert after_failure is None


def test_concurrency_ceiling_and_fifo_admission():
    started = []
    running = 0
    peak = 0

    def make_work(index):
        async def work(job_id):
            nonlocal running, peak
            started.append(index)
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return index
        return work

    async def scenario():
        scheduler = JobScheduler(max_concurrent_jobs=2)
        jobs = [await scheduler.submit("campaign-scraping", make_work(i), META) for i in range(6)]
        for job in jobs:
            await scheduler.wait_for(job.id, 1)
        return await scheduler.stats()

    stats = asyncio.run(scenario())

    assert peak == 2
    assert started == list(range(6))
    assert stats.completed == 6 and stats.total == 6


def test_unthrottled_jobs_do_not_take_a_slot():
    async def scenario():
        scheduler = JobScheduler(max_concurrent_jobs=1)
        gate = asyncio.Event()
        coordinator = await scheduler.submit("orchestrator", _waiting_work(gate), META, throttled=False)

        async def quick(job_id):
            return "ok"

        worker = await scheduler.submit("campaign-scraping", quick, META)
        finished = await scheduler.wait_for(worker.id, 1)
        gate.set()
        await scheduler.wait_for(coordinator.id, 1)
        return finished

    assert asyncio.run(scenario()).status == JobStatus.COMPLETED


def test_create_batch_persists_every_job_before_running(tmp_path):
    storage = JsonFileStorage(str(tmp_path))
    seen = []

    async def work(job_id):
        seen.append(len(await storage.list_keys("job:")))
        return job_id

    async def scenario():
        scheduler = JobScheduler(storage=storage, max_concurrent_jobs=2)
        jobs = await scheduler.create_batch([JobSpec("campaign-scraping", work, META) for _ in range(3)])
        for job in jobs:
            await scheduler.wait_for(job.id, 1)
        return jobs

    jobs = asyncio.run(scenario())

    assert len(jobs) == 3
    assert seen[0] == 3


def test_cancel_pending_job_prevents_it_from_running():
    ran = []

    async def second(job_id):
        ran.append(job_id)
        return "ran"

    async def scenario():
        scheduler = JobScheduler(max_concurrent_jobs=1)
        gate = asyncio.Event()
        first = await scheduler.submit("campaign-scraping", _waiting_work(gate), META)
        queued = await scheduler.submit("campaign-scraping", second, META)

        cancelled = await scheduler.cancel(queued.id)
        gate.set()
        await scheduler.wait_for(first.id, 1)
        await scheduler.wait_for(queued.id, 1)
        again = await scheduler.cancel(queued.id)
        return cancelled, again, await scheduler.get(queued.id)

    cancelled, again, queued = asyncio.run(scenario())

    assert cancelled is True
    assert again is False
    assert ran == []
    assert queued.status == JobStatus.FAILED and queued.error == CANCELLED_MESSAGE


def test_cancel_running_job_records_failure():
    async def scenario():
        scheduler = JobScheduler(max_concurrent_jobs=1)
        started = asyncio.Event()
        job = await scheduler.submit("campaign-scraping", _waiting_work(asyncio.Event(), started), META)
        await started.wait()

        cancelled = await scheduler.cancel(job.id)
        settled = await scheduler.wait_for(job.id, 1)
        unknown = await scheduler.cancel("does-not-exist")
        return cancelled, settled, unknown

    cancelled, settled, unknown = asyncio.run(scenario())

    assert cancelled is True
    assert settled.status == JobStatus.FAILED and settled.error == CANCELLED_MESSAGE
    assert unknown is False


def test_metadata_patch_during_run_is_not_lost():
    async def scenario():
        scheduler = JobScheduler(max_concurrent_jobs=1)

        async def work(job_id):
            await scheduler.update_metadata(job_id, {"child_job_ids": ["a", "b"]})
            await scheduler.update_progress(job_id, message="halfway")
            return "done"

        job = await scheduler.submit("orchestrator", work, META)
        await scheduler.update_metadata(job.id, {"note": "external"})
        return await scheduler.wait_for(job.id, 1)

    settled = asyncio.run(scenario())

    assert settled.status == JobStatus.COMPLETED
    assert settled.metadata.child_job_ids == ["a", "b"]
    assert settled.metadata.campaign_id == "ABC123"
    assert settled.metadata.model_extra["note"] == "external"
    assert settled.progress.message == "halfway"


def test_transitions_are_persisted_and_restart_fails_open_jobs(tmp_path):
    storage = JsonFileStorage(str(tmp_path))

    async def scenario():
        first = JobScheduler(storage=storage, max_concurrent_jobs=1)
        started = asyncio.Event()
        job = await first.submit("campaign-scraping", _waiting_work(asyncio.Event(), started), META)
        await started.wait()
        persisted_running = await storage.get(f"job:{job.id}")

        # a fresh process sees the record as it was left on disk
        second = JobScheduler(storage=storage, max_concurrent_jobs=1)
        loaded = await second.load_from_storage()
        restored = await second.get(job.id)
        persisted_after = await storage.get(f"job:{job.id}")

        await first.shutdown()
        return persisted_running, loaded, restored, persisted_after

    persisted_running, loaded, restored, persisted_after = asyncio.run(scenario())

    assert persisted_running["status"] == "running"
    assert loaded == 1
    assert restored.status == JobStatus.FAILED
    assert restored.error == INTERRUPTED_MESSAGE
    assert persisted_after["status"] == "failed"


def test_purge_forgets_old_settled_jobs(tmp_path):
    storage = JsonFileStorage(str(tmp_path))
    old = Job(
        type="campaign-scraping",
        status=JobStatus.COMPLETED,
        result={"a": 1},
        completed_at=get_now() - timedelta(hours=2),
        metadata=META,
    )

    async def quick(job_id):
        return "fresh"

    async def scenario():
        await storage.save(f"job:{old.id}", old.to_storage())
        scheduler = JobScheduler(storage=storage)
        await scheduler.load_from_storage()
        fresh = await scheduler.submit("campaign-scraping", quick, META)
        await scheduler.wait_for(fresh.id, 1)

        purged = await scheduler.purge_completed_older_than(60)
        return purged, await scheduler.get(old.id), await scheduler.get(fresh.id), await storage.get(f"job:{old.id}")

    purged, old_after, fresh_after, old_on_disk = asyncio.run(scenario())

    assert purged == 1
    assert old_after is None
    assert fresh_after is not None
    assert old_on_disk is None


def test_shutdown_fails_in_flight_jobs():
    async def scenario():
        scheduler = JobScheduler(max_concurrent_jobs=1)
        started = asyncio.Event()
        running = await scheduler.submit("campaign-scraping", _waiting_work(asyncio.Event(), started), META)
        queued = await scheduler.submit("campaign-scraping", _waiting_work(asyncio.Event()), META)
        await started.wait()
        await scheduler.shutdown()
        return await scheduler.get(running.id), await scheduler.get(queued.id)

    running, queued = asyncio.run(scenario())

    assert running.error == SHUTDOWN_MESSAGE
    assert queued.error == SHUTDOWN_MESSAGE


def test_admission_slot_holds_back_throttled_jobs():
    async def quick(job_id):
        return "ok"

    async def scenario():
        scheduler = JobScheduler(max_concurrent_jobs=1)
        async with scheduler.admission():
            job = await scheduler.submit("campaign-scraping", quick, META)
            await asyncio.sleep(0.01)
            while_held = (await scheduler.get(job.id)).status
        return while_held, await scheduler.wait_for(job.id, 1)

    while_held, settled = asyncio.run(scenario())

    assert while_held == JobStatus.PENDING
    assert settled.status == JobStatus.COMPLETED
