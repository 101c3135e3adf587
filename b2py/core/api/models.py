"""Value objects returned by the B2 API layer."""
import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Credential:
    """
    Session credential obtained from b2_authorize_account.

    Attributes:
        account_id: Account identifier
        auth_token: Token sent on every control-plane call
        api_url: Base URL for API calls
        download_url: Base URL for downloads
        s3_api_url: S3-compatible endpoint (informational)
        obtained_at: Monotonic timestamp of authorization
    """
    account_id: str
    auth_token: str
    api_url: str
    download_url: str = ''
    s3_api_url: str = ''
    obtained_at: float = field(default_factory=time.monotonic)

    def age(self) -> float:
        """Seconds since the credential was obtained."""
        return time.monotonic() - self.obtained_at


@dataclass(frozen=True)
class UploadTarget:
    """
    Single-use upload URL with its own token.

    B2 may invalidate a target at any time, so a fresh one is fetched
    for every upload attempt.
    """
    upload_url: str
    auth_token: str
