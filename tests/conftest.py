"""Pytest fixtures for b2py tests."""
import asyncio
import hashlib
import os
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import pytest

from b2py.core.api import B2APIError, B2Config, Credential, CredentialCache, RetryConfig, UploadTarget
from b2py.core.api.retry import ExponentialBackoffStrategy
from b2py.core.upload.models import UploadPlan, UploadSettings

KB = 1024


class FakeB2Backend:
    """
    In-memory stand-in for the B2 native API.

    Failure injection counters are consumed one per call, so a value of 2
    means "fail the next two calls, then behave".
    """

    def __init__(self):
        self.authorize_calls = 0
        self.auth_failures = 0
        self.auth_error: Optional[B2APIError] = None
        self.auth_delay = 0.0

        self.upload_url_calls = 0
        self.part_url_calls = 0
        self.start_calls = 0
        self.start_failures = 0
        self.finish_failures = 0
        self.upload_file_failures = 0
        self.list_parts_calls = 0
        self.page_size = 100

        self.part_failures: Dict[int, int] = {}
        self.part_timeouts: Dict[int, int] = {}
        self.part_errors: Dict[int, B2APIError] = {}
        self.echo_override: Dict[int, str] = {}
        self.hang_seconds = 5.0
        self.part_hook: Optional[Callable[[int], Awaitable[None]]] = None

        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.objects: Dict[str, bytes] = {}
        self.part_targets: Dict[int, List[str]] = {}
        self.uploaded_parts: List[int] = []
        self.finish_calls: List[tuple] = []
        self.cancel_calls: List[str] = []
        self.cancel_failures: set = set()
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    # --- helpers for tests ---------------------------------------------

    def seed_session(
        self,
        name: str,
        data: bytes = b'',
        part_size: int = 0,
        completed=(),
        age_hours: float = 0.0,
        size_hint: Optional[int] = None
    ) -> str:
        """Create an unfinished session, optionally holding confirmed parts."""
        session_id = self._next_id('session')
        parts = {}
        for number in completed:
            chunk = data[(number - 1) * part_size:number * part_size]
            parts[number] = {'hash': hashlib.sha1(chunk).hexdigest(), 'data': chunk}
        self.sessions[session_id] = {
            'name': name,
            'parts': parts,
            'status': 'unfinished',
            'started_at': int((time.time() - age_hours * 3600) * 1000),
            'size_hint': size_hint,
        }
        return session_id

    def unfinished_ids(self) -> List[str]:
        return [sid for sid, s in self.sessions.items() if s['status'] == 'unfinished']

    # --- StorageBackend ------------------------------------------------

    async def authorize(self) -> Credential:
        self.authorize_calls += 1
        if self.auth_delay:
            await asyncio.sleep(self.auth_delay)
        if self.auth_error is not None:
            raise self.auth_error
        if self.auth_failures > 0:
            self.auth_failures -= 1
            raise B2APIError(503, 'service_unavailable')
        return Credential(
            account_id='account',
            auth_token=f"token-{self.authorize_calls}",
            api_url='https://api.example.test',
        )

    async def get_upload_url(self, credential, bucket_id):
        self.upload_url_calls += 1
        return UploadTarget(f"https://pod.example.test/file/{self.upload_url_calls}", 'upload-token')

    async def start_large_file(self, credential, bucket_id, file_name, content_type, file_info=None):
        self.start_calls += 1
        if self.start_failures > 0:
            self.start_failures -= 1
            raise B2APIError(503, 'service_unavailable')
        session_id = self._next_id('session')
        self.sessions[session_id] = {
            'name': file_name,
            'parts': {},
            'status': 'unfinished',
            'started_at': int(time.time() * 1000),
            'size_hint': int(file_info['large_file_size']) if file_info else None,
            'content_type': content_type,
        }
        return session_id

    async def get_upload_part_url(self, credential, session_id):
        self.part_url_calls += 1
        return UploadTarget(f"https://pod.example.test/part/{session_id}/{self.part_url_calls}", 'part-token')

    async def upload_part(self, target, part_number, data, content_hash):
        self.part_targets.setdefault(part_number, []).append(target.upload_url)
        session_id = target.upload_url.split('/')[-2]
        session = self.sessions[session_id]

        if self.part_timeouts.get(part_number, 0) > 0:
            self.part_timeouts[part_number] -= 1
            await asyncio.sleep(self.hang_seconds)
        if self.part_failures.get(part_number, 0) > 0:
            self.part_failures[part_number] -= 1
            raise B2APIError(503, 'service_unavailable')
        if part_number in self.part_errors:
            raise self.part_errors.pop(part_number)
        if session['status'] != 'unfinished':
            raise B2APIError(400, 'bad_request', 'session is not active')

        computed = hashlib.sha1(data).hexdigest()
        if computed != content_hash:
            raise B2APIError(400, 'bad_request', 'sha1 did not match data received')
        session['parts'][part_number] = {'hash': computed, 'data': bytes(data)}
        self.uploaded_parts.append(part_number)

        if self.part_hook is not None:
            await self.part_hook(part_number)
        return self.echo_override.get(part_number, computed)

    async def upload_file(self, target, file_name, data, content_hash, content_type):
        if self.upload_file_failures > 0:
            self.upload_file_failures -= 1
            raise B2APIError(503, 'service_unavailable')
        if hashlib.sha1(data).hexdigest() != content_hash:
            raise B2APIError(400, 'bad_request', 'sha1 did not match data received')
        self.objects[file_name] = bytes(data)
        return {'file_id': self._next_id('file'), 'file_name': file_name,
                'content_hash': content_hash, 'size': len(data)}

    async def finish_large_file(self, credential, session_id, part_hashes):
        self.finish_calls.append((session_id, list(part_hashes)))
        if self.finish_failures > 0:
            self.finish_failures -= 1
            raise B2APIError(503, 'service_unavailable')
        session = self.sessions[session_id]
        stored = session['parts']
        if sorted(stored) != list(range(1, len(part_hashes) + 1)):
            raise B2APIError(400, 'bad_request', 'part numbers are not contiguous')
        if [stored[n]['hash'] for n in sorted(stored)] != list(part_hashes):
            raise B2APIError(400, 'bad_request', 'part sha1 mismatch')
        session['status'] = 'finished'
        self.objects[session['name']] = b''.join(stored[n]['data'] for n in sorted(stored))
        return {'file_id': f"file-{session_id}", 'file_name': session['name']}

    async def cancel_large_file(self, credential, session_id):
        self.cancel_calls.append(session_id)
        if session_id in self.cancel_failures:
            raise B2APIError(500, 'internal_error')
        if session_id in self.sessions:
            self.sessions[session_id]['status'] = 'canceled'

    async def list_unfinished_large_files(self, credential, bucket_id, start_file_id=None):
        ids = self.unfinished_ids()
        start = ids.index(start_file_id) if start_file_id in ids else 0
        page_ids = ids[start:start + self.page_size]
        next_id = ids[start + self.page_size] if start + self.page_size < len(ids) else None
        page = [{
            'session_id': sid,
            'destination_name': self.sessions[sid]['name'],
            'started_at': self.sessions[sid]['started_at'],
            'size_hint': self.sessions[sid]['size_hint'],
            'content_type': self.sessions[sid].get('content_type'),
        } for sid in page_ids]
        return page, next_id

    async def list_parts(self, credential, session_id, start_part_number=None):
        self.list_parts_calls += 1
        stored = self.sessions[session_id]['parts']
        numbers = [n for n in sorted(stored) if n >= (start_part_number or 1)]
        page = numbers[:self.page_size]
        next_number = numbers[self.page_size] if len(numbers) > self.page_size else None
        return [
            {'part_number': n, 'content_hash': stored[n]['hash'], 'size': len(stored[n]['data'])}
            for n in page
        ], next_number


@pytest.fixture
def fake_backend():
    """In-memory B2 backend with failure injection."""
    return FakeB2Backend()


@pytest.fixture
def credentials(fake_backend):
    """Credential cache over the fake backend, without backoff delays."""
    return CredentialCache(
        fake_backend.authorize,
        retry_strategy=ExponentialBackoffStrategy(RetryConfig(base_delay=0.0)),
        max_retries=3,
    )


@pytest.fixture
def b2_config():
    return B2Config(
        key_id='key-id',
        application_key='app-key',
        bucket_id='bucket-1',
        bucket_name='media',
        region='us-east-005',
    )


@pytest.fixture
def settings():
    """Upload settings scaled down to kilobytes with no retry delays."""
    return UploadSettings(
        large_file_threshold=50 * KB,
        min_part_size=5 * KB,
        max_part_size=1024 * KB,
        max_small_file_size=1024 * KB,
        default_concurrency=4,
        max_retries=3,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        progress_interval=0,
    )


@pytest.fixture
def plan():
    """Five-kilobyte parts, four at a time."""
    return UploadPlan(part_size=5 * KB, concurrency=4, per_part_timeout=2.0, max_retries=3)


@pytest.fixture
def make_file(tmp_path):
    """Factory writing a file of random bytes; returns (path, data)."""
    def _make(size: int, name: str = 'lecture.mp4'):
        data = os.urandom(size)
        path = tmp_path / name
        path.write_bytes(data)
        return path, data
    return _make
