"""
BookStack REST API client for the BookStack to Wiki.js sync.

This module provides a read-only client wrapper for the BookStack REST API,
handling authentication, retries, rate limiting, pagination requests and
streamed downloads of gallery images and attachments.
"""

import logging
import time
from typing import Any, BinaryIO, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from models import Asset, AssetKind
from ports import SourceContentPort

logger = logging.getLogger('bookstack_wikijs_sync.fetchers.bookstack_client')


class BookStackApiError(Exception):
    """Raised for failed BookStack API requests."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class SourceAuthenticationError(BookStackApiError):
    """BookStack rejected the API token. Fatal for a sync run."""
    pass


class UnexpectedResponseError(BookStackApiError):
    """The source answered with a body of the wrong shape."""
    pass


class BookStackClient(SourceContentPort):
    """BookStack REST API client with retry logic and rate limiting."""

    DEFAULT_TIMEOUT = 30
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_RETRY_BACKOFF = 0.5
    DEFAULT_RATE_LIMIT = 0.0
    DOWNLOAD_CHUNK_SIZE = 8192

    def __init__(
        self,
        base_url: str,
        token_id: str,
        token_secret: str,
        verify_ssl: bool = True,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_factor: float = DEFAULT_RETRY_BACKOFF,
        rate_limit: float = DEFAULT_RATE_LIMIT
    ):
        """
        Initialize BookStack client.

        Args:
            base_url: BookStack instance base URL
            token_id: API token ID
            token_secret: API token secret
            verify_ssl: Whether to verify SSL certificates
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries for failed requests
            retry_backoff_factor: Backoff factor for retries
            rate_limit: Minimum seconds between requests (0 = no limit)
        """
        self.base_url = base_url.rstrip('/')
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.rate_limit = rate_limit
        self._last_request_time = 0.0

        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'Token {token_id}:{token_secret}',
            'Accept': 'application/json'
        })

        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=retry_backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=['GET'],
            raise_on_status=False
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount('http://', adapter)
        self.session.mount('https://', adapter)

        logger.debug(f"Initialized BookStack client for {self.base_url}")

    def _handle_rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        if self.rate_limit <= 0:
            return

        time_since_last = time.time() - self._last_request_time
        if time_since_last < self.rate_limit:
            sleep_time = self.rate_limit - time_since_last
            logger.debug(f"Rate limiting: sleeping {sleep_time:.2f}s")
            time.sleep(sleep_time)

        self._last_request_time = time.time()

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None, stream: bool = False) -> requests.Response:
        """
        Issue a GET request and translate auth and HTTP failures.

        Raises:
            SourceAuthenticationError: For 401/403 responses
            BookStackApiError: For other HTTP or transport failures
        """
        self._handle_rate_limit()
        logger.debug(f"GET {url} params={params}")

        try:
            response = self.session.get(
                url,
                params=params,
                stream=stream,
                verify=self.verify_ssl,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise BookStackApiError(f"Request failed: GET {url} - {e}") from e

        if response.status_code in (401, 403):
            response.close()
            raise SourceAuthenticationError(
                f"BookStack rejected the API token ({response.status_code}) for {url}",
                status_code=response.status_code
            )

        if response.status_code >= 400:
            body = '' if stream else response.text[:200]
            response.close()
            raise BookStackApiError(
                f"GET {url} failed with {response.status_code}: {body}",
                status_code=response.status_code
            )

        return response

    def _get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = self._get(f"{self.base_url}/api{endpoint}", params=params)
        try:
            return response.json()
        except ValueError as e:
            raise UnexpectedResponseError(f"Invalid JSON from {endpoint}: {e}") from e

    def list_items(self, endpoint: str, page: int, count: int) -> List[Dict[str, Any]]:
        """Fetch one page of a BookStack list endpoint."""
        body = self._get_json(f"/{endpoint.strip('/')}", params={'page': page, 'count': count})
        data = body.get('data') if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise UnexpectedResponseError(f"Unexpected response from /{endpoint}: {body!r}"[:300])
        return data

    def get_page(self, page_id: int) -> Dict[str, Any]:
        """Get page by ID, including markdown/html body."""
        body = self._get_json(f'/pages/{page_id}')
        if not isinstance(body, dict):
            raise UnexpectedResponseError(f"Unexpected response from /pages/{page_id}: {body!r}"[:300])
        return body

    def get_user(self, user_id: int) -> Dict[str, Any]:
        """Get user by ID."""
        return self._get_json(f'/users/{user_id}')

    def download_url(self, asset: Asset) -> str:
        """Build the download URL for an asset."""
        if asset.kind == AssetKind.IMAGE:
            path = asset.download_path
            if path.startswith('http://') or path.startswith('https://'):
                return path
            return f"{self.base_url}/{path.lstrip('/')}"
        return f"{self.base_url}/attachments/{asset.id}"

    def download_asset(self, asset: Asset, destination: BinaryIO) -> int:
        """Stream an image or attachment into ``destination``."""
        url = self.download_url(asset)
        response = self._get(url, stream=True)
        written = 0
        try:
            for chunk in response.iter_content(chunk_size=self.DOWNLOAD_CHUNK_SIZE):
                if chunk:
                    destination.write(chunk)
                    written += len(chunk)
        except requests.RequestException as e:
            raise BookStackApiError(f"Download interrupted: {url} - {e}") from e
        finally:
            response.close()

        logger.debug(f"Downloaded {written} bytes from {url}")
        return written

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'BookStackClient':
        """
        Create client from configuration dictionary.

        Args:
            config: Configuration dict with 'bookstack' and 'advanced' sections

        Returns:
            Configured BookStackClient instance
        """
        bookstack_config = config.get('bookstack', {})
        advanced_config = config.get('advanced', {})

        return cls(
            base_url=bookstack_config.get('base_url'),
            token_id=bookstack_config.get('token_id'),
            token_secret=bookstack_config.get('token_secret'),
            verify_ssl=advanced_config.get('verify_ssl', True),
            timeout=advanced_config.get('request_timeout', cls.DEFAULT_TIMEOUT),
            max_retries=advanced_config.get('max_retries', cls.DEFAULT_MAX_RETRIES),
            retry_backoff_factor=advanced_config.get('retry_backoff_factor', cls.DEFAULT_RETRY_BACKOFF),
            rate_limit=advanced_config.get('rate_limit', cls.DEFAULT_RATE_LIMIT)
        )


__all__ = [
    'BookStackClient',
    'BookStackApiError',
    'SourceAuthenticationError',
    'UnexpectedResponseError'
]
