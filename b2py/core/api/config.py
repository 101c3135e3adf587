"""
API configuration module.

Provides configuration for the B2 API client: account credentials,
bucket addressing, timeouts and retry behavior.
"""
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
import os


@dataclass
class B2Config:
    """
    Account and bucket settings.

    The key id and application key are long-lived credentials issued
    outside of this library; they are only exchanged for a session token.
    """
    key_id: str = ''
    application_key: str = ''
    bucket_id: str = ''
    bucket_name: str = ''
    region: str = 'us-east-005'

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> 'B2Config':
        """
        Build configuration from environment variables.

        Reads B2_KEY_ID, B2_APPLICATION_KEY, B2_BUCKET_ID,
        B2_BUCKET_NAME and B2_REGION.
        """
        env = os.environ if environ is None else environ
        return cls(
            key_id=env.get('B2_KEY_ID', ''),
            application_key=env.get('B2_APPLICATION_KEY', ''),
            bucket_id=env.get('B2_BUCKET_ID', ''),
            bucket_name=env.get('B2_BUCKET_NAME', ''),
            region=env.get('B2_REGION', 'us-east-005'),
        )

    def missing(self) -> list:
        """Names of required settings that are empty."""
        required = {
            'B2_KEY_ID': self.key_id,
            'B2_APPLICATION_KEY': self.application_key,
            'B2_BUCKET_ID': self.bucket_id,
        }
        return [name for name, value in required.items() if not value]

    def public_url(self, file_name: str) -> str:
        """Deterministic S3-style public URL for an object in the bucket."""
        return f"https://{self.bucket_name}.s3.{self.region}.backblazeb2.com/{file_name}"


@dataclass
class TimeoutConfig:
    """
    Timeout configuration.

    Applies to control-plane calls; part uploads use the per-part
    timeout computed by the planner.
    """
    total: float = 300.0  # Total request timeout
    connect: float = 30.0  # Connection timeout
    sock_read: float = 60.0  # Socket read timeout

    def to_aiohttp_timeout(self):
        """Convert to aiohttp ClientTimeout."""
        import aiohttp
        return aiohttp.ClientTimeout(
            total=self.total,
            connect=self.connect,
            sock_read=self.sock_read
        )


@dataclass
class RetryConfig:
    """
    Retry configuration.

    Controls exponential backoff for authorization and part uploads.
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay after the given 1-based failed attempt."""
        if attempt < 1:
            return 0.0
        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        return min(delay, self.max_delay)


@dataclass
class APIConfig:
    """
    Complete API configuration.

    Centralizes all configuration options for the B2 API client.
    """
    # Account authorization endpoint
    auth_url: str = 'https://api.backblazeb2.com/b2api/v2/b2_authorize_account'
    api_version: str = 'v2'

    user_agent: str = 'b2py/1.0.0 (large-file-upload)'

    b2: B2Config = field(default_factory=B2Config)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)

    # Credential lifetime before a proactive re-authorization (B2 tokens last 24h)
    credential_max_age: Optional[float] = 23 * 3600

    # Connection pool settings
    limit_per_host: int = 20
    limit: int = 100

    extra_headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def default(cls) -> 'APIConfig':
        """Create default configuration."""
        return cls()

    @classmethod
    def from_env(cls, **kwargs) -> 'APIConfig':
        """Create configuration with account settings read from the environment."""
        return cls(b2=B2Config.from_env(), **kwargs)

    def get_connector_kwargs(self) -> Dict[str, Any]:
        """Get kwargs for aiohttp TCPConnector."""
        return {
            'limit': self.limit,
            'limit_per_host': self.limit_per_host,
        }

    def get_session_kwargs(self) -> Dict[str, Any]:
        """Get kwargs for aiohttp ClientSession."""
        headers = {
            'User-Agent': self.user_agent,
            **self.extra_headers
        }

        return {
            'headers': headers,
            'timeout': self.timeout.to_aiohttp_timeout(),
        }
