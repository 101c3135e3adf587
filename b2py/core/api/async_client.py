"""
Async B2 API client.

Speaks the Backblaze B2 native API (v2) over aiohttp. The client is
stateless with respect to authorization: every control-plane call takes
the Credential to use, so the credential cache stays the single owner of
that shared state.
"""
import base64
import logging
from typing import Dict, Optional, Any, List, Tuple
from urllib.parse import quote

import aiohttp

from .config import APIConfig
from .errors import B2APIError
from .models import Credential, UploadTarget
from ..logging import get_logger


class AsyncAPIClient:
    """
    Asynchronous B2 API client.

    Features:
    - Full async/await support
    - Connection pooling over one shared ClientSession
    - Typed errors (B2APIError) for non-2xx responses

    Example:
        >>> config = APIConfig.from_env()
        >>> async with AsyncAPIClient(config) as client:
        ...     credential = await client.authorize()
    """

    LIST_PAGE_SIZE = 100

    def __init__(self, config: Optional[APIConfig] = None):
        """
        Initialize async API client.

        Args:
            config: API configuration (uses defaults if not provided)
        """
        self._config = config or APIConfig.default()
        self._session: Optional[aiohttp.ClientSession] = None
        self._connector: Optional[aiohttp.TCPConnector] = None
        self._logger = get_logger('b2py.api')

    @property
    def config(self) -> APIConfig:
        """Get current configuration."""
        return self._config

    async def __aenter__(self) -> 'AsyncAPIClient':
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure session is created and open."""
        if self._session is None or self._session.closed:
            self._connector = aiohttp.TCPConnector(
                **self._config.get_connector_kwargs()
            )
            self._session = aiohttp.ClientSession(
                connector=self._connector,
                **self._config.get_session_kwargs()
            )
        return self._session

    async def close(self):
        """Close client and release resources."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

        if self._connector and not self._connector.closed:
            await self._connector.close()
        self._connector = None

    # --- Authorization -------------------------------------------------

    async def authorize(self) -> Credential:
        """
        Exchange the application key for a session credential.

        Returns:
            Fresh Credential (never cached here)

        Raises:
            B2APIError: If the backend rejects the key
        """
        b2 = self._config.b2
        basic = base64.b64encode(f"{b2.key_id}:{b2.application_key}".encode()).decode()
        session = await self._ensure_session()

        self._logger.debug(f"Authorizing account {b2.key_id[:6]}...")
        async with session.get(
            self._config.auth_url,
            headers={'Authorization': f"Basic {basic}"}
        ) as response:
            data = await self._read_json(response)

        return Credential(
            account_id=data['accountId'],
            auth_token=data['authorizationToken'],
            api_url=data['apiUrl'],
            download_url=data.get('downloadUrl', ''),
            s3_api_url=data.get('s3ApiUrl', ''),
        )

    # --- Control plane -------------------------------------------------

    async def get_upload_url(self, credential: Credential, bucket_id: str) -> UploadTarget:
        """Get a single-use URL for a whole-file upload."""
        data = await self._call(credential, 'b2_get_upload_url', {'bucketId': bucket_id})
        return UploadTarget(data['uploadUrl'], data['authorizationToken'])

    async def start_large_file(
        self,
        credential: Credential,
        bucket_id: str,
        file_name: str,
        content_type: str,
        file_info: Optional[Dict[str, str]] = None
    ) -> str:
        """
        Start a large-file session.

        Returns:
            Session id (B2 fileId)
        """
        payload = {
            'bucketId': bucket_id,
            'fileName': file_name,
            'contentType': content_type,
        }
        if file_info:
            payload['fileInfo'] = file_info
        data = await self._call(credential, 'b2_start_large_file', payload)
        return data['fileId']

    async def get_upload_part_url(self, credential: Credential, session_id: str) -> UploadTarget:
        """Get a single-use URL for uploading one part of a session."""
        data = await self._call(credential, 'b2_get_upload_part_url', {'fileId': session_id})
        return UploadTarget(data['uploadUrl'], data['authorizationToken'])

    async def finish_large_file(
        self,
        credential: Credential,
        session_id: str,
        part_hashes: List[str]
    ) -> Dict[str, Any]:
        """
        Assemble the uploaded parts into the final file.

        Args:
            part_hashes: SHA-1 hex digests in ascending part-number order
        """
        data = await self._call(credential, 'b2_finish_large_file', {
            'fileId': session_id,
            'partSha1Array': part_hashes,
        })
        return {'file_id': data['fileId'], 'file_name': data['fileName']}

    async def cancel_large_file(self, credential: Credential, session_id: str) -> None:
        """Cancel a session and discard its parts."""
        await self._call(credential, 'b2_cancel_large_file', {'fileId': session_id})

    async def list_unfinished_large_files(
        self,
        credential: Credential,
        bucket_id: str,
        start_file_id: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        List one page of unfinished sessions.

        Returns:
            (sessions, next_start_file_id)
        """
        payload = {'bucketId': bucket_id, 'maxFileCount': self.LIST_PAGE_SIZE}
        if start_file_id:
            payload['startFileId'] = start_file_id
        data = await self._call(credential, 'b2_list_unfinished_large_files', payload)

        sessions = []
        for item in data.get('files', []):
            info = item.get('fileInfo') or {}
            size_hint = info.get('large_file_size')
            sessions.append({
                'session_id': item['fileId'],
                'destination_name': item.get('fileName', ''),
                'started_at': item.get('uploadTimestamp', 0),
                'size_hint': int(size_hint) if size_hint else None,
                'content_type': item.get('contentType'),
            })
        return sessions, data.get('nextFileId')

    async def list_parts(
        self,
        credential: Credential,
        session_id: str,
        start_part_number: Optional[int] = None
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """
        List one page of parts the backend has confirmed for a session.

        Returns:
            (parts, next_start_part_number)
        """
        payload = {'fileId': session_id, 'maxPartCount': self.LIST_PAGE_SIZE}
        if start_part_number:
            payload['startPartNumber'] = start_part_number
        data = await self._call(credential, 'b2_list_parts', payload)

        parts = [
            {
                'part_number': item['partNumber'],
                'content_hash': item['contentSha1'],
                'size': item['contentLength'],
            }
            for item in data.get('parts', [])
        ]
        return parts, data.get('nextPartNumber')

    # --- Data plane ----------------------------------------------------

    async def upload_part(
        self,
        target: UploadTarget,
        part_number: int,
        data: bytes,
        content_hash: str
    ) -> str:
        """
        Upload one part.

        Returns:
            SHA-1 the backend computed over the received bytes
        """
        headers = {
            'Authorization': target.auth_token,
            'X-Bz-Part-Number': str(part_number),
            'Content-Length': str(len(data)),
            'X-Bz-Content-Sha1': content_hash,
        }
        result = await self._post_data(target.upload_url, headers, data)
        return result.get('contentSha1', content_hash)

    async def upload_file(
        self,
        target: UploadTarget,
        file_name: str,
        data: bytes,
        content_hash: str,
        content_type: str
    ) -> Dict[str, Any]:
        """Upload a whole file in a single request."""
        headers = {
            'Authorization': target.auth_token,
            'X-Bz-File-Name': quote(file_name, safe='/'),
            'Content-Type': content_type,
            'Content-Length': str(len(data)),
            'X-Bz-Content-Sha1': content_hash,
        }
        result = await self._post_data(target.upload_url, headers, data)
        return {
            'file_id': result['fileId'],
            'file_name': result['fileName'],
            'content_hash': result.get('contentSha1', content_hash),
            'size': result.get('contentLength', len(data)),
        }

    # --- Internals -----------------------------------------------------

    async def _call(self, credential: Credential, operation: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON control-plane request."""
        session = await self._ensure_session()
        url = f"{credential.api_url}/b2api/{self._config.api_version}/{operation}"

        self._logger.debug(f"{operation} -> {url}")
        async with session.post(
            url,
            json=payload,
            headers={'Authorization': credential.auth_token}
        ) as response:
            return await self._read_json(response)

    async def _post_data(self, url: str, headers: Dict[str, str], data: bytes) -> Dict[str, Any]:
        """POST a request body; the caller enforces the hard timeout."""
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=None, connect=self._config.timeout.connect)
        async with session.post(url, data=data, headers=headers, timeout=timeout) as response:
            return await self._read_json(response)

    async def _read_json(self, response: aiohttp.ClientResponse) -> Dict[str, Any]:
        """Decode a response, raising B2APIError for failures."""
        if response.status >= 400:
            try:
                body = await response.json(content_type=None)
            except (aiohttp.ContentTypeError, ValueError):
                body = {}
            body = body or {}
            error = B2APIError(response.status, body.get('code', ''), body.get('message'))
            level = logging.WARNING if error.is_transient else logging.ERROR
            self._logger.log(level, f"B2 request failed: {error}")
            raise error
        return await response.json(content_type=None)
