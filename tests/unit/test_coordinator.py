"""Tests for UploadOrchestrator."""
import asyncio
import hashlib

import pytest

from b2py.core.api import B2APIError, RetryConfig
from b2py.core.api.retry import ExponentialBackoffStrategy
from b2py.core.exceptions import AuthError, FinishError, PartUploadError, UploadCanceledError, UploadError
from b2py.core.upload import UploadOrchestrator
from b2py.core.upload.models import PartResult, ResumeState, SessionStatus, UploadPlan

KB = 1024


def resume_state_for(session_id, name, data, part_size, completed):
    return ResumeState(
        session_id=session_id,
        destination_name=name,
        file_size=len(data),
        part_size=part_size,
        completed_parts=[
            PartResult(n, hashlib.sha1(data[(n - 1) * part_size:n * part_size]).hexdigest(), part_size)
            for n in completed
        ],
    )


class TestUploadOrchestrator:
    """Test suite for UploadOrchestrator."""

    @pytest.fixture
    def orchestrator(self, fake_backend, credentials, b2_config, settings):
        return UploadOrchestrator(
            fake_backend, credentials, b2_config,
            settings=settings,
            retry_strategy=ExponentialBackoffStrategy(RetryConfig(base_delay=0.0)),
        )

    @pytest.mark.asyncio
    async def test_large_upload(self, fake_backend, orchestrator, make_file, plan):
        """Test parts cover the file and finish gets hashes in ascending order."""
        path, data = make_file(62 * KB)

        result = await orchestrator.upload(path, 'courses/1/lecture.mp4', plan=plan)

        assert result.total_parts == 13
        assert result.file_size == 62 * KB
        assert result.url == 'https://media.s3.us-east-005.backblazeb2.com/courses/1/lecture.mp4'
        assert fake_backend.objects['courses/1/lecture.mp4'] == data

        session_id, hashes = fake_backend.finish_calls[0]
        expected = [hashlib.sha1(data[i:i + 5 * KB]).hexdigest() for i in range(0, 62 * KB, 5 * KB)]
        assert hashes == expected
        assert result.file_id == f"file-{session_id}"
        assert orchestrator.session.status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_announces_file_size_at_start(self, fake_backend, orchestrator, make_file, plan):
        path, _ = make_file(60 * KB)

        await orchestrator.upload(path, 'lecture.mp4', plan=plan)

        session = next(iter(fake_backend.sessions.values()))
        assert session['size_hint'] == 60 * KB
        assert session['content_type'] == 'video/mp4'

    @pytest.mark.asyncio
    async def test_empty_file(self, fake_backend, orchestrator, make_file):
        path, _ = make_file(0)

        result = await orchestrator.upload(path, 'empty.mp4')

        assert result.file_id == 'empty-file'
        assert fake_backend.start_calls == 0
        assert fake_backend.authorize_calls == 0

    @pytest.mark.asyncio
    async def test_small_file_uses_single_request(self, fake_backend, orchestrator, make_file):
        path, data = make_file(20 * KB)

        result = await orchestrator.upload(path, 'clip.mp4')

        assert result.total_parts == 1
        assert fake_backend.start_calls == 0
        assert fake_backend.objects['clip.mp4'] == data

    @pytest.mark.asyncio
    async def test_resume_uploads_only_missing_parts(self, fake_backend, orchestrator, make_file, plan):
        """Test resuming 10 of 25 confirmed parts uploads exactly parts 11 to 25."""
        path, data = make_file(125 * KB)
        session_id = fake_backend.seed_session('lecture.mp4', data, 5 * KB, completed=range(1, 11))
        state = resume_state_for(session_id, 'lecture.mp4', data, 5 * KB, range(1, 11))

        result = await orchestrator.upload(path, 'lecture.mp4', resume_state=state, plan=plan)

        assert sorted(fake_backend.uploaded_parts) == list(range(11, 26))
        assert fake_backend.start_calls == 0
        assert result.total_parts == 25
        assert fake_backend.objects['lecture.mp4'] == data

    @pytest.mark.asyncio
    async def test_resume_of_complete_session_only_finishes(self, fake_backend, orchestrator, make_file, plan):
        path, data = make_file(60 * KB)
        session_id = fake_backend.seed_session('lecture.mp4', data, 5 * KB, completed=range(1, 13))
        state = resume_state_for(session_id, 'lecture.mp4', data, 5 * KB, range(1, 13))

        await orchestrator.upload(path, 'lecture.mp4', resume_state=state, plan=plan)

        assert fake_backend.uploaded_parts == []
        assert len(fake_backend.finish_calls) == 1
        assert fake_backend.objects['lecture.mp4'] == data

    @pytest.mark.asyncio
    async def test_resume_progress_starts_from_confirmed_parts(self, fake_backend, orchestrator, make_file, plan):
        path, data = make_file(125 * KB)
        session_id = fake_backend.seed_session('lecture.mp4', data, 5 * KB, completed=range(1, 11))
        state = resume_state_for(session_id, 'lecture.mp4', data, 5 * KB, range(1, 11))
        snapshots = []

        await orchestrator.upload(path, 'lecture.mp4', resume_state=state, plan=plan, observer=snapshots.append)

        percents = [s.percent for s in snapshots]
        assert percents[0] == 40
        assert percents == sorted(percents)
        assert percents.count(100) == 1

    @pytest.mark.asyncio
    async def test_resume_rejects_other_destination(self, fake_backend, orchestrator, make_file, plan):
        path, data = make_file(60 * KB)
        session_id = fake_backend.seed_session('lecture.mp4', data, 5 * KB, completed=[1, 2])
        state = resume_state_for(session_id, 'lecture.mp4', data, 5 * KB, [1, 2])

        with pytest.raises(UploadError, match="lecture.mp4"):
            await orchestrator.upload(path, 'renamed.mp4', resume_state=state, plan=plan)

        assert fake_backend.uploaded_parts == []
        assert fake_backend.finish_calls == []

    @pytest.mark.asyncio
    async def test_resume_adopts_session_part_size(self, fake_backend, orchestrator, make_file, plan):
        path, data = make_file(60 * KB)
        session_id = fake_backend.seed_session('lecture.mp4', data, 10 * KB, completed=[1, 2])
        state = resume_state_for(session_id, 'lecture.mp4', data, 10 * KB, [1, 2])

        result = await orchestrator.upload(path, 'lecture.mp4', resume_state=state, plan=plan)

        assert result.total_parts == 6
        assert sorted(fake_backend.uploaded_parts) == [3, 4, 5, 6]
        assert fake_backend.objects['lecture.mp4'] == data

    @pytest.mark.asyncio
    async def test_resume_rejects_changed_file(self, orchestrator, make_file, plan):
        path, data = make_file(60 * KB)
        state = ResumeState('session-x', 'lecture.mp4', 70 * KB, 5 * KB)

        with pytest.raises(UploadError, match="changed"):
            await orchestrator.upload(path, 'lecture.mp4', resume_state=state, plan=plan)

    @pytest.mark.asyncio
    async def test_verify_resume_queries_backend(self, fake_backend, orchestrator, make_file, plan):
        """Test parts the backend holds but the caller lost are not re-sent."""
        path, data = make_file(60 * KB)
        session_id = fake_backend.seed_session('lecture.mp4', data, 5 * KB, completed=range(1, 9))
        fake_backend.page_size = 3
        state = resume_state_for(session_id, 'lecture.mp4', data, 5 * KB, [1, 2])

        await orchestrator.upload(path, 'lecture.mp4', resume_state=state, plan=plan, verify_resume=True)

        assert fake_backend.list_parts_calls == 3
        assert sorted(fake_backend.uploaded_parts) == [9, 10, 11, 12]

    @pytest.mark.asyncio
    async def test_failed_part_carries_resume_state(self, fake_backend, orchestrator, make_file):
        """Test a part that keeps timing out stops the upload and keeps the confirmed parts."""
        path, _ = make_file(60 * KB)
        fake_backend.part_timeouts[3] = 100
        plan = UploadPlan(part_size=5 * KB, concurrency=1, per_part_timeout=0.05, max_retries=3)

        with pytest.raises(PartUploadError) as exc_info:
            await orchestrator.upload(path, 'lecture.mp4', plan=plan)

        error = exc_info.value
        assert error.part_number == 3
        assert isinstance(error.last_error, asyncio.TimeoutError)
        assert error.resume_state.completed_numbers == [1, 2]
        assert len(fake_backend.part_targets[3]) == 6
        assert 4 not in fake_backend.part_targets
        assert fake_backend.finish_calls == []
        assert orchestrator.session.status == SessionStatus.FAILED

    @pytest.mark.asyncio
    async def test_failed_parts_retried_before_next_batch(self, fake_backend, orchestrator, make_file):
        """Test a batch's stragglers are retried before the following batch starts."""
        path, data = make_file(60 * KB)
        fake_backend.part_failures[1] = 3
        plan = UploadPlan(part_size=5 * KB, concurrency=2, per_part_timeout=2.0, max_retries=3)

        await orchestrator.upload(path, 'lecture.mp4', plan=plan)

        order = fake_backend.uploaded_parts
        assert order.index(1) < order.index(3)
        assert sorted(order) == list(range(1, 13))
        assert fake_backend.objects['lecture.mp4'] == data

    @pytest.mark.asyncio
    async def test_batch_error_keeps_confirmed_parts(self, fake_backend, credentials, orchestrator, make_file, plan):
        """Test parts that succeeded alongside a fatal error still land in the resume state."""
        path, _ = make_file(60 * KB)
        await credentials.authorize()
        fake_backend.auth_error = B2APIError(401, 'unauthorized')
        fake_backend.part_errors[2] = B2APIError(401, 'expired_auth_token')

        with pytest.raises(AuthError):
            await orchestrator.upload(path, 'lecture.mp4', plan=plan)

        assert orchestrator.resume_state().completed_numbers == [1, 3, 4]
        assert orchestrator.session.status == SessionStatus.FAILED

    @pytest.mark.asyncio
    async def test_straggler_succeeds_on_sequential_retry(self, fake_backend, orchestrator, make_file, plan):
        path, data = make_file(60 * KB)
        fake_backend.part_failures[4] = 4

        result = await orchestrator.upload(path, 'lecture.mp4', plan=plan)

        assert result.total_parts == 12
        assert len(fake_backend.part_targets[4]) == 5
        assert fake_backend.objects['lecture.mp4'] == data

    @pytest.mark.asyncio
    async def test_finish_failure_carries_resume_state(self, fake_backend, orchestrator, make_file, plan):
        path, _ = make_file(60 * KB)
        fake_backend.finish_failures = 1

        with pytest.raises(FinishError) as exc_info:
            await orchestrator.upload(path, 'lecture.mp4', plan=plan)

        assert exc_info.value.resume_state.completed_numbers == list(range(1, 13))

    @pytest.mark.asyncio
    async def test_cancel_while_parts_in_flight(self, fake_backend, orchestrator, make_file, plan):
        """Test cancel stops the transfer and nothing is finished."""
        path, _ = make_file(100 * KB)

        async def cancel_on_second_part(number):
            if number == 2:
                await orchestrator.cancel()

        fake_backend.part_hook = cancel_on_second_part

        with pytest.raises(UploadCanceledError) as exc_info:
            await orchestrator.upload(path, 'lecture.mp4', plan=plan)

        session_id = orchestrator.session.session_id
        assert fake_backend.finish_calls == []
        assert fake_backend.cancel_calls == [session_id]
        assert fake_backend.sessions[session_id]['status'] == 'canceled'
        assert orchestrator.session.status == SessionStatus.CANCELED
        assert max(fake_backend.uploaded_parts) <= 4
        assert exc_info.value.resume_state.session_id == session_id

    @pytest.mark.asyncio
    async def test_cancel_while_session_starting(self, fake_backend, orchestrator, make_file, plan):
        """Test a cancel that lands before the session exists still cancels it on the backend."""
        path, _ = make_file(60 * KB)
        fake_backend.auth_delay = 0.05

        task = asyncio.ensure_future(orchestrator.upload(path, 'lecture.mp4', plan=plan))
        await asyncio.sleep(0.01)
        canceled = await orchestrator.cancel()

        with pytest.raises(UploadCanceledError):
            await task

        session_id = orchestrator.session.session_id
        assert canceled is False
        assert fake_backend.cancel_calls == [session_id]
        assert fake_backend.sessions[session_id]['status'] == 'canceled'
        assert orchestrator.session.status == SessionStatus.CANCELED
        assert fake_backend.uploaded_parts == []

    @pytest.mark.asyncio
    async def test_cancel_without_session(self, fake_backend, orchestrator):
        assert await orchestrator.cancel() is False
        assert fake_backend.cancel_calls == []

    @pytest.mark.asyncio
    async def test_concurrent_uploads_share_one_authorization(
        self, fake_backend, credentials, b2_config, settings, make_file, plan
    ):
        fake_backend.auth_delay = 0.01
        first, first_data = make_file(60 * KB, 'a.mp4')
        second, second_data = make_file(55 * KB, 'b.mp4')
        orchestrators = [UploadOrchestrator(fake_backend, credentials, b2_config, settings=settings)
                         for _ in range(2)]

        await asyncio.gather(
            orchestrators[0].upload(first, 'a.mp4', plan=plan),
            orchestrators[1].upload(second, 'b.mp4', plan=plan),
        )

        assert fake_backend.authorize_calls == 1
        assert fake_backend.objects['a.mp4'] == first_data
        assert fake_backend.objects['b.mp4'] == second_data

    @pytest.mark.asyncio
    async def test_progress_reaches_100_once(self, orchestrator, make_file, plan):
        path, _ = make_file(60 * KB)
        snapshots = []

        await orchestrator.upload(path, 'lecture.mp4', plan=plan, observer=snapshots.append)

        percents = [s.percent for s in snapshots]
        assert percents == sorted(percents)
        assert percents.count(100) == 1
        assert snapshots[-1].completed_parts == 12
