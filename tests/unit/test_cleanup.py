"""Tests for the unfinished-session cleanup."""
import pytest

from b2py.core.cleanup import CleanupManager
from b2py.core.upload.models import SessionStatus


class TestCleanupManager:
    """Test suite for CleanupManager."""

    @pytest.fixture
    def manager(self, fake_backend, credentials, b2_config):
        return CleanupManager(fake_backend, credentials, b2_config, batch_delay=0)

    @pytest.fixture
    def aged_sessions(self, fake_backend):
        """Seven sessions two days old and two started an hour ago."""
        old = [fake_backend.seed_session(f"old-{i}.mp4", age_hours=48 + i, size_hint=1000)
               for i in range(7)]
        recent = [fake_backend.seed_session(f"new-{i}.mp4", age_hours=1) for i in range(2)]
        return old, recent

    @pytest.mark.asyncio
    async def test_list_unfinished_oldest_first(self, manager, aged_sessions):
        old, recent = aged_sessions

        sessions = await manager.list_unfinished()

        assert len(sessions) == 9
        assert sessions[0].session_id == old[-1]
        assert all(s.status == SessionStatus.IN_PROGRESS for s in sessions)
        assert sessions[0].age_hours > 50

    @pytest.mark.asyncio
    async def test_list_follows_pagination(self, fake_backend, manager, aged_sessions):
        fake_backend.page_size = 2

        sessions = await manager.list_unfinished()

        assert len(sessions) == 9
        assert len({s.session_id for s in sessions}) == 9

    @pytest.mark.asyncio
    async def test_dry_run_changes_nothing(self, fake_backend, manager, aged_sessions):
        report = await manager.cleanup_older_than(24, dry_run=True)

        assert len(report.candidates) == 7
        assert report.total_size == 7000
        assert report.dry_run
        assert report.succeeded == []
        assert fake_backend.cancel_calls == []
        assert len(fake_backend.unfinished_ids()) == 9

    @pytest.mark.asyncio
    async def test_cancels_only_old_sessions(self, fake_backend, manager, aged_sessions):
        old, recent = aged_sessions

        report = await manager.cleanup_older_than(24)

        assert sorted(report.succeeded) == sorted(old)
        assert report.failed == {}
        assert sorted(fake_backend.unfinished_ids()) == sorted(recent)
        assert all(s.status == SessionStatus.CANCELED for s in report.candidates)

    @pytest.mark.asyncio
    async def test_partial_failure_is_reported(self, fake_backend, manager, aged_sessions):
        """Test failed cancels are listed and do not stop the rest."""
        old, _ = aged_sessions
        fake_backend.cancel_failures.update(old[:2])

        report = await manager.cleanup_older_than(24)

        assert len(report.succeeded) == 5
        assert set(report.failed) == set(old[:2])
        assert 'internal_error' in report.failed[old[0]]

    @pytest.mark.asyncio
    async def test_confirm_declined(self, fake_backend, manager, aged_sessions):
        seen = []

        def decline(candidates):
            seen.extend(candidates)
            return False

        report = await manager.cleanup_older_than(24, force=False, confirm=decline)

        assert report.aborted
        assert len(seen) == 7
        assert fake_backend.cancel_calls == []

    @pytest.mark.asyncio
    async def test_force_skips_confirm(self, fake_backend, manager, aged_sessions):
        def fail_if_called(candidates):
            raise AssertionError("confirm should not be called")

        report = await manager.cleanup_older_than(24, force=True, confirm=fail_if_called)

        assert len(report.succeeded) == 7

    @pytest.mark.asyncio
    async def test_nothing_to_clean(self, fake_backend, manager):
        fake_backend.seed_session('fresh.mp4', age_hours=0.5)

        report = await manager.cleanup_older_than(24)

        assert report.candidates == []
        assert fake_backend.cancel_calls == []

    @pytest.mark.asyncio
    async def test_cancel_session(self, fake_backend, manager):
        session_id = fake_backend.seed_session('lecture.mp4')

        await manager.cancel_session(session_id)

        assert fake_backend.sessions[session_id]['status'] == 'canceled'
