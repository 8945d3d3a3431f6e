from job_store import JobStore, OutputJob, Status


def _store(n=3):
    store = JobStore()
    store.replace(OutputJob(i, source_image_id=0, prompt_id=-1) for i in range(n))
    return store


def test_new_jobs_are_pending_in_creation_order():
    store = _store()
    assert [j.id for j in store.with_status(Status.PENDING)] == [0, 1, 2]
    assert store.get(1).to_dict() == {
        "id": 1,
        "source_image_id": 0,
        "prompt_id": -1,
        "status": "pending",
        "result": None,
        "error": None,
    }


def test_replace_discards_previous_jobs():
    store = _store()
    store.replace([OutputJob(10, source_image_id=5, prompt_id=6)])
    assert [j.id for j in store.all()] == [10]
    assert store.get(0) is None


def test_settle_only_applies_to_generating_jobs():
    store = _store()
    assert store.settle(0, result="url") is False
    assert store.get(0).status == Status.PENDING

    store.mark_generating(0)
    assert store.settle(0, result="url") is True
    assert store.get(0).status == Status.COMPLETE
    assert store.get(0).result == "url"

    store.mark_generating(1)
    assert store.settle(1, error="network down") is True
    job = store.get(1)
    assert (job.status, job.result, job.error) == (Status.ERROR, None, "network down")

    assert store.settle(42, result="url") is False


def test_fail_unfinished_leaves_finished_jobs_alone():
    store = _store()
    store.mark_generating(0)
    store.settle(0, result="url")
    store.mark_generating(1)

    assert store.fail_unfinished("stopped") == [1, 2]
    assert store.get(0).status == Status.COMPLETE
    assert [(j.status, j.error) for j in store.all()[1:]] == [(Status.ERROR, "stopped")] * 2
    assert store.settle(1, result="late") is False


def test_reset_only_from_terminal_status():
    store = _store()
    assert store.reset(0) is False
    store.mark_generating(0)
    assert store.reset(0) is False

    store.settle(0, error="nope")
    assert store.reset(0) is True
    job = store.get(0)
    assert (job.status, job.result, job.error) == (Status.PENDING, None, None)

    store.mark_generating(0)
    store.settle(0, result="url")
    assert store.reset(0) is True
    assert store.get(0).result is None
