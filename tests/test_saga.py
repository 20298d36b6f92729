import pytest

from journal_service.saga import EntrySaga, SagaError, SagaState


@pytest.mark.asyncio
async def test_happy_path_walks_all_states():
    saga = EntrySaga("create")
    async with saga:
        saga.advance(SagaState.BLOB_WRITTEN)
        saga.advance(SagaState.COMMITTED)
        saga.advance(SagaState.METADATA_WRITTEN)
    saga.advance(SagaState.VERSION_RECORDED)

    assert saga.history == [
        SagaState.INIT,
        SagaState.BLOB_WRITTEN,
        SagaState.COMMITTED,
        SagaState.METADATA_WRITTEN,
        SagaState.VERSION_RECORDED,
    ]
    assert not saga.failed


def test_steps_cannot_be_skipped():
    saga = EntrySaga("create")
    with pytest.raises(SagaError):
        saga.advance(SagaState.COMMITTED)


@pytest.mark.asyncio
async def test_failure_runs_compensations_newest_first():
    calls = []

    async def first():
        calls.append("first")

    async def second():
        calls.append("second")

    saga = EntrySaga("create")
    with pytest.raises(ValueError):
        async with saga:
            saga.advance(SagaState.BLOB_WRITTEN)
            saga.on_failure("first", first)
            saga.advance(SagaState.COMMITTED)
            saga.on_failure("second", second)
            raise ValueError("metadata insert failed")

    assert saga.failed
    assert saga.history[-2:] == [SagaState.COMMITTED, SagaState.FAILED]
    assert calls == ["second", "first"]


@pytest.mark.asyncio
async def test_compensation_failure_does_not_mask_original_error():
    async def broken():
        raise RuntimeError("delete failed")

    saga = EntrySaga("create")
    with pytest.raises(KeyError):
        async with saga:
            saga.advance(SagaState.BLOB_WRITTEN)
            saga.on_failure("delete blob", broken)
            raise KeyError("commit failed")
    assert saga.failed


@pytest.mark.asyncio
async def test_failure_before_any_step_has_nothing_to_compensate():
    saga = EntrySaga("create")
    with pytest.raises(OSError):
        async with saga:
            raise OSError("put failed")
    assert saga.history == [SagaState.INIT, SagaState.FAILED]


@pytest.mark.asyncio
async def test_written_metadata_is_never_compensated():
    calls = []

    async def undo():
        calls.append("undo")

    saga = EntrySaga("create")
    saga.advance(SagaState.BLOB_WRITTEN)
    saga.on_failure("undo", undo)
    saga.advance(SagaState.COMMITTED)
    saga.advance(SagaState.METADATA_WRITTEN)
    await saga.fail(RuntimeError("version row"))

    assert saga.state is SagaState.METADATA_WRITTEN
    assert calls == []
