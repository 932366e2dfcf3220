import pytest

from vidmark.core.errors import InvalidParameters, JobConflict, NotFound
from vidmark.models.job import JobStatus
from vidmark.services.job_store import MAX_LIST_LIMIT, clamp_limit

SOURCE_URL = "https://store/videos/a.mp4"
OPTIONS = {"watermark_selector": "kling", "position": "top-left", "opacity": 0.5, "scale": 0.2}


def _assert_result_invariants(job):
    assert (job.result_url is not None) == (job.status == JobStatus.COMPLETED.value)
    if job.status == JobStatus.FAILED.value:
        assert job.error_message


def test_create_starts_uploaded(store):
    job = store.get_by_id(store.create(SOURCE_URL))
    assert job.status == "uploaded"
    assert job.result_url is None
    assert job.error_message is None


def test_create_requires_source(store):
    with pytest.raises(InvalidParameters):
        store.create("")


def test_get_missing_job(store):
    with pytest.raises(NotFound):
        store.get_by_id(9999)


def test_lifecycle_keeps_result_and_error_consistent(store):
    job_id = store.create(SOURCE_URL)

    queued = store.queue(job_id, OPTIONS)
    assert queued.status == "queued"
    assert queued.position == "top-left"
    _assert_result_invariants(queued)

    processing = store.claim(job_id)
    _assert_result_invariants(processing)

    completed = store.complete(job_id, "https://store/videos/watermarked/x_1.mp4")
    assert completed.result_url == "https://store/videos/watermarked/x_1.mp4"
    _assert_result_invariants(completed)


def test_completed_requires_result_url(store):
    job_id = store.create(SOURCE_URL)
    store.claim(job_id)
    with pytest.raises(InvalidParameters):
        store.update_status(job_id, JobStatus.COMPLETED)
    assert store.get_by_id(job_id).status == "processing"


def test_failed_requires_error_message(store):
    job_id = store.create(SOURCE_URL)
    store.claim(job_id)
    with pytest.raises(InvalidParameters):
        store.fail(job_id, "")


def test_unknown_fields_rejected(store):
    job_id = store.create(SOURCE_URL)
    with pytest.raises(InvalidParameters):
        store.queue(job_id, {"source_url": "https://elsewhere/b.mp4"})


def test_claim_conflicts_when_already_processing(store):
    job_id = store.create(SOURCE_URL)
    store.claim(job_id)
    with pytest.raises(JobConflict):
        store.claim(job_id)


def test_queue_conflicts_after_failure(store):
    job_id = store.create(SOURCE_URL)
    store.claim(job_id)
    store.fail(job_id, "ffmpeg failed with code 1")
    with pytest.raises(JobConflict):
        store.queue(job_id, OPTIONS)


def test_transition_on_missing_job(store):
    with pytest.raises(NotFound):
        store.claim(4242)


def test_reset_clears_error(store):
    job_id = store.create(SOURCE_URL)
    store.claim(job_id)
    store.fail(job_id, "Failed to fetch")

    job = store.reset(job_id)
    assert job.status == "pending"
    assert job.error_message is None
    assert job.result_url is None


def test_reset_completed_job_clears_result(store):
    job_id = store.create(SOURCE_URL)
    store.claim(job_id)
    store.complete(job_id, "https://store/out.mp4")

    job = store.reset(job_id)
    assert job.status == "pending"
    _assert_result_invariants(job)


def test_reset_job_can_run_again(store):
    job_id = store.create(SOURCE_URL)
    store.claim(job_id)
    store.reset(job_id)
    assert store.claim(job_id).status == "processing"


def test_list_recent_newest_first(store):
    ids = [store.create(f"https://store/videos/{n}.mp4") for n in range(3)]
    listed = [job.id for job in store.list_recent(10)]
    assert listed == list(reversed(ids))


def test_list_recent_caps_limit(store):
    for n in range(MAX_LIST_LIMIT + 5):
        store.create(f"https://store/videos/{n}.mp4")
    assert len(store.list_recent(500)) == MAX_LIST_LIMIT


@pytest.mark.parametrize(("requested", "expected"), [(None, 20), (0, 1), (-5, 1), (50, 50), (500, 100)])
def test_clamp_limit(requested, expected):
    assert clamp_limit(requested) == expected
