"""Unit tests for the worker entry point outcomes."""

from __future__ import annotations

import pytest

from aijobs.jobs.dispatch import JobHandlerRegistry
from aijobs.jobs.errors import WorkerAuthorizationError, WorkerBadRequestError
from aijobs.jobs.retry import ClaimLostError
from aijobs.jobs.worker import claim_token, run_worker, verify_worker_secret
from aijobs.telemetry.context import get_context
from tests.support import WORKER_SECRET, InMemoryJobsRepo, RecordingPublisher, StubHandler, build_settings, make_job


def _registry(*handlers: StubHandler) -> JobHandlerRegistry:
  return JobHandlerRegistry(handlers, {handler.job_type for handler in handlers})


async def _run(job_id, secret, *, repo, publisher, registry, settings=None):
  return await run_worker(job_id, secret, settings=settings or build_settings(), jobs_repo=repo, registry=registry, publisher=publisher)


def test_verify_worker_secret_rejects_missing_configuration() -> None:
  with pytest.raises(WorkerAuthorizationError):
    verify_worker_secret("anything", build_settings(worker_secret=None))
  with pytest.raises(WorkerAuthorizationError):
    verify_worker_secret(None, build_settings())
  verify_worker_secret(WORKER_SECRET, build_settings())


def test_claim_token_is_unique_per_invocation() -> None:
  settings = build_settings()
  first = claim_token(settings)
  second = claim_token(settings)
  assert first.startswith("worker:test#")
  assert first != second


@pytest.mark.anyio
@pytest.mark.parametrize("secret", [None, "", "wrong-secret"])
async def test_bad_secret_is_rejected_before_touching_store(secret) -> None:
  repo = InMemoryJobsRepo()
  repo.seed(make_job())
  publisher = RecordingPublisher()

  with pytest.raises(WorkerAuthorizationError):
    await _run("job-1", secret, repo=repo, publisher=publisher, registry=_registry(StubHandler("echo")))

  assert repo.calls == []
  assert (await repo.get_job("job-1")).status == "queued"
  assert publisher.published == []


@pytest.mark.anyio
async def test_unconfigured_secret_rejects_every_call() -> None:
  repo = InMemoryJobsRepo()

  with pytest.raises(WorkerAuthorizationError):
    await _run("job-1", "", repo=repo, publisher=RecordingPublisher(), registry=_registry(StubHandler("echo")), settings=build_settings(worker_secret=None))

  assert repo.calls == []


@pytest.mark.anyio
@pytest.mark.parametrize("job_id", [None, "", "   "])
async def test_missing_job_id_is_a_bad_request(job_id) -> None:
  repo = InMemoryJobsRepo()

  with pytest.raises(WorkerBadRequestError, match="Missing jobId"):
    await _run(job_id, WORKER_SECRET, repo=repo, publisher=RecordingPublisher(), registry=_registry(StubHandler("echo")))

  assert repo.calls == []


@pytest.mark.anyio
async def test_success_marks_done_and_stores_result() -> None:
  repo = InMemoryJobsRepo()
  repo.seed(make_job(payload={"n": 1}))
  handler = StubHandler("echo", result={"answer": 42})

  outcome = await _run("job-1", WORKER_SECRET, repo=repo, publisher=RecordingPublisher(), registry=_registry(handler))

  assert outcome.status_code == 200
  assert outcome.body == {"ok": True, "jobId": "job-1", "status": "done"}
  stored = await repo.get_job("job-1")
  assert stored.status == "done"
  assert stored.result == {"answer": 42}
  assert stored.finished_at is not None
  assert stored.locked_by is None
  assert handler.seen[0].status == "running"


@pytest.mark.anyio
@pytest.mark.parametrize("status", ["running", "done", "error", "cancelled"])
async def test_non_queued_job_is_skipped(status) -> None:
  repo = InMemoryJobsRepo()
  repo.seed(make_job(status=status))
  handler = StubHandler("echo")

  outcome = await _run("job-1", WORKER_SECRET, repo=repo, publisher=RecordingPublisher(), registry=_registry(handler))

  assert outcome.status_code == 200
  assert outcome.body == {"ok": True, "skipped": True}
  assert handler.seen == []
  assert (await repo.get_job("job-1")).status == status


@pytest.mark.anyio
async def test_unknown_job_id_is_skipped() -> None:
  outcome = await _run("nope", WORKER_SECRET, repo=InMemoryJobsRepo(), publisher=RecordingPublisher(), registry=_registry(StubHandler("echo")))

  assert outcome.status_code == 200
  assert outcome.body == {"ok": True, "skipped": True}


@pytest.mark.anyio
async def test_redelivery_after_success_is_skipped() -> None:
  repo = InMemoryJobsRepo()
  repo.seed(make_job())
  handler = StubHandler("echo")
  registry = _registry(handler)

  first = await _run("job-1", WORKER_SECRET, repo=repo, publisher=RecordingPublisher(), registry=registry)
  second = await _run("job-1", WORKER_SECRET, repo=repo, publisher=RecordingPublisher(), registry=registry)

  assert first.body["status"] == "done"
  assert second.body == {"ok": True, "skipped": True}
  assert len(handler.seen) == 1


@pytest.mark.anyio
async def test_handler_failure_schedules_retry() -> None:
  repo = InMemoryJobsRepo()
  repo.seed(make_job(attempts=0, max_attempts=3))
  publisher = RecordingPublisher()

  outcome = await _run("job-1", WORKER_SECRET, repo=repo, publisher=publisher, registry=_registry(StubHandler("echo", error=RuntimeError("upstream 503"))))

  assert outcome.status_code == 202
  assert outcome.body == {"ok": False, "status": "queued", "attempts": 1, "retried": True, "retry_in_seconds": 15}
  assert publisher.published[0]["deduplication_id"] == "job-1:retry:1"
  assert publisher.published[0]["url"] == "http://test/api/ai/worker/run"
  assert (await repo.get_job("job-1")).status == "queued"


@pytest.mark.anyio
async def test_final_failure_is_terminal() -> None:
  repo = InMemoryJobsRepo()
  repo.seed(make_job(attempts=2, max_attempts=3))
  publisher = RecordingPublisher()

  outcome = await _run("job-1", WORKER_SECRET, repo=repo, publisher=publisher, registry=_registry(StubHandler("echo", error=RuntimeError("boom"))))

  assert outcome.status_code == 200
  assert outcome.body == {"ok": False, "status": "error", "attempts": 3, "retried": False}
  assert publisher.published == []
  assert (await repo.get_job("job-1")).status == "error"


@pytest.mark.anyio
async def test_unknown_job_type_goes_through_retry_policy() -> None:
  repo = InMemoryJobsRepo()
  repo.seed(make_job(job_type="mystery", attempts=2, max_attempts=3))

  outcome = await _run("job-1", WORKER_SECRET, repo=repo, publisher=RecordingPublisher(), registry=_registry(StubHandler("echo")))

  assert outcome.body["status"] == "error"
  assert (await repo.get_job("job-1")).error_message == "Unknown job_type: mystery"


@pytest.mark.anyio
async def test_missing_payload_field_fails_before_handler_runs() -> None:
  repo = InMemoryJobsRepo()
  repo.seed(make_job(attempts=0, max_attempts=2))
  handler = StubHandler("echo", required_fields=("adventure_id",))

  outcome = await _run("job-1", WORKER_SECRET, repo=repo, publisher=RecordingPublisher(), registry=_registry(handler))

  assert outcome.status_code == 202
  assert handler.seen == []
  assert "payload.adventure_id" in (await repo.get_job("job-1")).error_message


@pytest.mark.anyio
async def test_claim_lost_before_mark_done_raises() -> None:
  repo = InMemoryJobsRepo()
  repo.seed(make_job())

  class StealingHandler(StubHandler):
    async def handle(self, job):
      # Simulate lease recovery reassigning the row mid-flight.
      repo._jobs[job.id].locked_by = "lease-recovery:other"
      return {"ok": True}

  with pytest.raises(ClaimLostError):
    await _run("job-1", WORKER_SECRET, repo=repo, publisher=RecordingPublisher(), registry=_registry(StealingHandler("echo")))

  assert (await repo.get_job("job-1")).status == "running"


@pytest.mark.anyio
async def test_handler_sees_job_scoped_context() -> None:
  repo = InMemoryJobsRepo()
  repo.seed(make_job(user_id="user-9", adventure_id="adv-3"))
  seen: dict[str, object] = {}

  class ContextProbe(StubHandler):
    async def handle(self, job):
      context = get_context()
      seen.update(job_id=context.job_id, job_type=context.job_type, user_id=context.user_id, adventure_id=context.adventure_id)
      return {"ok": True}

  await _run("job-1", WORKER_SECRET, repo=repo, publisher=RecordingPublisher(), registry=_registry(ContextProbe("echo")))

  assert seen == {"job_id": "job-1", "job_type": "echo", "user_id": "user-9", "adventure_id": "adv-3"}
  assert get_context() is None
