"""
Wiki.js API client for the BookStack to Wiki.js sync.

Provides GraphQL operations for finding, creating and updating Wiki.js pages,
listing users, and the multipart upload endpoint for binary assets.
"""

import json
import logging
import mimetypes
import time
from typing import Any, Dict, List, Optional

import requests
from gql import gql, Client
from gql.transport.requests import RequestsHTTPTransport
from gql.transport.exceptions import (
    TransportServerError,
    TransportQueryError,
    TransportProtocolError
)

from ports import TargetWikiPort


logger = logging.getLogger('bookstack_wikijs_sync.importers.wikijs_client')


# Constants
DEFAULT_LOCALE = "en"
DEFAULT_EDITOR = "markdown"
DEFAULT_TIMEOUT = 30
DEFAULT_UPLOAD_TIMEOUT = 60
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF = 2.0

FIND_PAGE_QUERY = """
    query FindPage($path: String!, $locale: String!) {
        pages {
            singleByPath(path: $path, locale: $locale) {
                id
                path
                title
            }
        }
    }
"""

LIST_USERS_QUERY = """
    query ListUsers {
        users {
            list {
                id
                email
                name
            }
        }
    }
"""

CHECK_CONNECTION_QUERY = """
    query CheckConnection {
        pages {
            list(limit: 1) {
                id
            }
        }
    }
"""

CREATE_PAGE_MUTATION = """
    mutation CreatePage($content: String!, $description: String!, $editor: String!, $isPublished: Boolean!,
                       $isPrivate: Boolean!, $locale: String!, $path: String!, $tags: [String]!,
                       $title: String!{identity_params}) {{
        pages {{
            create(content: $content, description: $description, editor: $editor, isPublished: $isPublished,
                   isPrivate: $isPrivate, locale: $locale, path: $path, tags: $tags,
                   title: $title{identity_args}) {{
                responseResult {{
                    succeeded
                    errorCode
                    slug
                    message
                }}
                page {{
                    id
                    path
                }}
            }}
        }}
    }}
"""

UPDATE_PAGE_MUTATION = """
    mutation UpdatePage($id: Int!, $content: String, $editor: String, $isPublished: Boolean,
                       $title: String{identity_params}) {{
        pages {{
            update(id: $id, content: $content, editor: $editor, isPublished: $isPublished,
                   title: $title{identity_args}) {{
                responseResult {{
                    succeeded
                    errorCode
                    slug
                    message
                }}
            }}
        }}
    }}
"""


def _identity_fragments(identities: Dict[str, Optional[int]]):
    """Build GraphQL parameter/argument fragments for the identities that are set."""
    names = [name for name, value in identities.items() if value is not None]
    params = ''.join(f", ${name}: Int" for name in names)
    args = ''.join(f", {name}: ${name}" for name in names)
    return params, args, {name: identities[name] for name in names}


class WikiJsApiError(Exception):
    """Custom exception for Wiki.js API errors."""

    def __init__(self, error_code: str, slug: str, message: str):
        """
        Initialize API error.

        Args:
            error_code: Wiki.js error code
            slug: Error slug identifier
            message: Human-readable error message
        """
        self.error_code = error_code
        self.slug = slug
        self.message = message
        super().__init__(f"[{error_code}] {slug}: {message}")

    def __str__(self) -> str:
        """String representation of error."""
        return f"WikiJsApiError(code={self.error_code}, slug={self.slug}, message={self.message})"


class WikiJsConnectionError(Exception):
    """Exception for connection/transport failures."""
    pass


class WikiJsUploadError(Exception):
    """Raised when the upload endpoint rejects an asset."""
    pass


class WikiJsClient(TargetWikiPort):
    """Client for Wiki.js GraphQL API operations and asset uploads."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        verify_ssl: bool = True,
        timeout: int = DEFAULT_TIMEOUT,
        upload_timeout: int = DEFAULT_UPLOAD_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_factor: float = DEFAULT_RETRY_BACKOFF,
        rate_limit: float = 0.0,
        default_locale: str = DEFAULT_LOCALE,
        default_editor: str = DEFAULT_EDITOR,
        upload_folder: str = ""
    ):
        """
        Initialize Wiki.js API client.

        Args:
            base_url: Wiki.js instance URL (e.g., https://wiki.example.com)
            api_key: JWT API key from Wiki.js admin panel (API Access section)
            verify_ssl: Enable SSL certificate verification (default: True)
            timeout: HTTP request timeout in seconds (default: 30)
            upload_timeout: Timeout for multipart uploads in seconds (default: 60)
            max_retries: Maximum number of retries for failed requests (default: 3)
            retry_backoff_factor: Backoff factor for retries (default: 2.0)
            rate_limit: Minimum seconds between requests (default: 0.0, disabled)
            default_locale: Default locale for pages (default: "en")
            default_editor: Editor recorded on created pages (default: "markdown")
            upload_folder: Folder prefix used when an upload response carries no path
        """
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self.max_retries = max_retries
        self.retry_backoff_factor = retry_backoff_factor
        self.rate_limit = rate_limit
        self.default_locale = default_locale
        self.default_editor = default_editor
        self.upload_folder = upload_folder.rstrip('/')
        self._last_request_time = 0.0

        # Note: retries parameter expects an integer, not a Retry object
        self.transport = RequestsHTTPTransport(
            url=f"{self.base_url}/graphql",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json"
            },
            verify=verify_ssl,
            timeout=timeout,
            retries=max_retries
        )

        self.client = Client(
            transport=self.transport,
            fetch_schema_from_transport=False  # Avoid startup latency
        )

        self.upload_session = requests.Session()
        self.upload_session.headers.update({"Authorization": f"Bearer {api_key}"})

        logger.info(f"Initialized Wiki.js client for {self.base_url} "
                    f"(retries={max_retries}, rate_limit={rate_limit}s, "
                    f"default_editor={default_editor})")

    # ========================================================================
    # Queries
    # ========================================================================

    def _execute(self, document: str, variables: Optional[Dict[str, Any]], operation: str) -> Dict[str, Any]:
        """Run a GraphQL document, translating transport failures."""
        self._apply_rate_limit()

        try:
            return self.client.execute(gql(document), variable_values=variables or {})
        except TransportQueryError as e:
            self._handle_graphql_error(e)
        except (TransportServerError, TransportProtocolError, requests.RequestException) as e:
            raise WikiJsConnectionError(f"Connection error during {operation}: {e}") from e

    def check_connection(self) -> None:
        """
        Verify the GraphQL endpoint answers with the configured key.

        Raises:
            WikiJsConnectionError: If the endpoint is unreachable or rejects the key
        """
        try:
            self._execute(CHECK_CONNECTION_QUERY, None, 'check_connection')
        except WikiJsApiError as e:
            raise WikiJsConnectionError(f"Wiki.js rejected the connection check: {e}") from e
        logger.debug("Wiki.js connection check succeeded")

    def find_page(self, path: str, locale: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Get a page by its path.

        Args:
            path: Page path (e.g., "docs/getting-started")
            locale: Locale filter (optional)

        Returns:
            Page dictionary with id, path, title or None if not found
        """
        variables = {
            "path": path,
            "locale": locale or self.default_locale
        }

        try:
            result = self._execute(FIND_PAGE_QUERY, variables, 'find_page')
        except WikiJsApiError as e:
            # singleByPath returns an error for not found pages
            error_str = str(e).lower()
            if "not found" in error_str or "does not exist" in error_str:
                return None
            raise

        page = (result.get('pages') or {}).get('singleByPath')
        return page if page else None

    def list_users(self) -> List[Dict[str, Any]]:
        """List all Wiki.js users (id, email, name)."""
        result = self._execute(LIST_USERS_QUERY, None, 'list_users')
        return (result.get('users') or {}).get('list') or []

    # ========================================================================
    # Mutations
    # ========================================================================

    def create_page(
        self,
        path: str,
        title: str,
        content: str,
        is_published: bool,
        author_id: Optional[int] = None,
        creator_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Create a new page.

        Args:
            path: Page path
            title: Page title
            content: Page content in markdown
            is_published: Whether page is published
            author_id: Wiki.js user recorded as author (optional)
            creator_id: Wiki.js user recorded as creator (optional)

        Returns:
            Created page dictionary with id and path
        """
        params, args, identity_vars = _identity_fragments({'authorId': author_id, 'creatorId': creator_id})
        document = CREATE_PAGE_MUTATION.format(identity_params=params, identity_args=args)

        variables = {
            "path": path,
            "title": title,
            "content": content,
            "description": "",
            "editor": self.default_editor,
            "isPublished": is_published,
            "isPrivate": False,
            "locale": self.default_locale,
            "tags": []
        }
        variables.update(identity_vars)

        result = self._execute(document, variables, 'create_page')
        create_result = result['pages']['create']
        self._check_response_result(create_result, 'Unknown error creating page')

        return create_result['page']

    def update_page(
        self,
        page_id: int,
        title: str,
        content: str,
        is_published: bool,
        author_id: Optional[int] = None
    ) -> bool:
        """
        Update an existing page.

        Args:
            page_id: Wiki.js page ID
            title: Updated title
            content: Updated content
            is_published: Published status
            author_id: Wiki.js user recorded as author (optional)

        Returns:
            True if the update succeeded
        """
        params, args, identity_vars = _identity_fragments({'authorId': author_id})
        document = UPDATE_PAGE_MUTATION.format(identity_params=params, identity_args=args)

        variables = {
            "id": page_id,
            "title": title,
            "content": content,
            "editor": self.default_editor,
            "isPublished": is_published
        }
        variables.update(identity_vars)

        result = self._execute(document, variables, 'update_page')
        self._check_response_result(result['pages']['update'], 'Unknown error updating page')
        return True

    # ========================================================================
    # Asset Upload
    # ========================================================================

    def upload_asset(self, filename: str, data: bytes) -> str:
        """
        Upload a binary asset through the multipart ``/u`` endpoint.

        Args:
            filename: Original filename
            data: File content

        Returns:
            Target-relative locator of the uploaded asset

        Raises:
            WikiJsUploadError: If the endpoint reports a failure
            WikiJsConnectionError: For transport failures
        """
        mime_type, _ = mimetypes.guess_type(filename)
        files = {'mediaUpload': (filename, data, mime_type or 'application/octet-stream')}

        self._apply_rate_limit()

        try:
            response = self.upload_session.post(
                f"{self.base_url}/u",
                files=files,
                verify=self.verify_ssl,
                timeout=self.upload_timeout
            )
        except requests.RequestException as e:
            raise WikiJsConnectionError(f"Connection error during upload_asset: {e}") from e

        if response.status_code >= 400:
            raise WikiJsUploadError(
                f"Upload of '{filename}' failed with {response.status_code}: {response.text[:200]}"
            )

        return self._locator_from_response(response.text, filename)

    def _locator_from_response(self, body: str, filename: str) -> str:
        """Extract the asset locator from an upload response body."""
        text = (body or '').strip()
        try:
            payload = json.loads(text) if text else None
        except ValueError:
            payload = text

        if isinstance(payload, dict):
            if payload.get('error'):
                raise WikiJsUploadError(f"Upload failed: {payload['error']}")
            if payload.get('succeeded') is False:
                raise WikiJsUploadError(f"Upload failed: {payload.get('message', 'unknown error')}")
            locator = payload.get('path') or payload.get('url')
        elif isinstance(payload, str):
            locator = payload
        else:
            locator = None

        if not locator or locator.lower() == 'ok':
            locator = f"{self.upload_folder}/{filename}"
        if not locator.startswith('/') and '://' not in locator:
            locator = '/' + locator
        return locator

    # ========================================================================
    # Internal Helper Methods
    # ========================================================================

    def _apply_rate_limit(self):
        """Apply rate limiting between requests."""
        if self.rate_limit <= 0:
            return

        time_since_last = time.time() - self._last_request_time

        if time_since_last < self.rate_limit:
            sleep_duration = self.rate_limit - time_since_last
            logger.debug(f"Rate limiting: sleeping {sleep_duration:.2f}s")
            time.sleep(sleep_duration)

        self._last_request_time = time.time()

    @staticmethod
    def _check_response_result(mutation_result: Dict[str, Any], default_message: str) -> None:
        """Raise when a mutation's responseResult reports failure."""
        response_result = (mutation_result or {}).get('responseResult') or {}
        if not response_result.get('succeeded'):
            raise WikiJsApiError(
                error_code=response_result.get('errorCode') or 'UNKNOWN',
                slug=response_result.get('slug') or 'unknown_error',
                message=response_result.get('message') or default_message
            )

    def _handle_graphql_error(self, error: TransportQueryError):
        """Handle GraphQL errors and convert to meaningful exceptions."""
        errors = getattr(error, 'errors', None)
        if errors and isinstance(errors, list):
            for err in errors:
                message = err.get('message', str(error))
                extensions = err.get('extensions', {}) or {}
                code = extensions.get('code', 'GRAPHQL_ERROR')

                # Extract Wiki.js specific error info
                error_code = extensions.get('error', {}).get('code', code)
                slug = extensions.get('error', {}).get('slug', 'unknown_error')
                error_message = extensions.get('error', {}).get('message', message)

                logger.debug(f"Wiki.js GraphQL Error: {error_code} - {slug}: {error_message}")

                raise WikiJsApiError(str(error_code), slug, error_message)

        # Fallback for non-standard errors
        raise WikiJsApiError("GRAPHQL_ERROR", "unknown_error", str(error))

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'WikiJsClient':
        """
        Initialize Wiki.js client from configuration dictionary.

        Args:
            config: Configuration dictionary with wikijs and advanced settings

        Returns:
            WikiJsClient instance
        """
        wikijs_config = config.get('wikijs', {})
        advanced_config = config.get('advanced', {})

        return cls(
            base_url=wikijs_config.get('base_url'),
            api_key=wikijs_config.get('api_key'),
            verify_ssl=advanced_config.get('verify_ssl', True),
            timeout=advanced_config.get('request_timeout', DEFAULT_TIMEOUT),
            upload_timeout=advanced_config.get('upload_timeout', DEFAULT_UPLOAD_TIMEOUT),
            max_retries=advanced_config.get('max_retries', DEFAULT_MAX_RETRIES),
            retry_backoff_factor=advanced_config.get('retry_backoff_factor', DEFAULT_RETRY_BACKOFF),
            rate_limit=advanced_config.get('rate_limit', 0),
            default_locale=wikijs_config.get('default_locale', DEFAULT_LOCALE),
            default_editor=wikijs_config.get('default_editor', DEFAULT_EDITOR),
            upload_folder=wikijs_config.get('upload_folder', '')
        )


__all__ = [
    'WikiJsClient',
    'WikiJsApiError',
    'WikiJsConnectionError',
    'WikiJsUploadError'
]
