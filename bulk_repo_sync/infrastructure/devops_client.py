import base64
import aiohttp
import asyncio
import logging
import random
from typing import Dict, List, Optional
from urllib.parse import quote

from bulk_repo_sync.infrastructure.acl import DevOpsTranslator

logger = logging.getLogger(__name__)

API_VERSION = "7.0"
CONTINUATION_HEADER = "x-ms-continuationtoken"
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=60, connect=10)
MAX_RETRIES = 4
MAX_PAGES = 100
RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


class DevOpsRestClient:
    """
    Client for the DevOps REST listing endpoints.
    Every call fails soft: errors are logged and an empty list is returned.

    Use as an async context manager so the HTTP session is closed:

        async with DevOpsRestClient() as client:
            projects = await client.list_projects(url, token)
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session
        self._owns_session = session is None
        self.headers: Dict[str, str] = {
            "Accept": "application/json",
            "User-Agent": "bulk-repo-sync",
        }

    async def __aenter__(self) -> "DevOpsRestClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=REQUEST_TIMEOUT)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        return False

    async def list_projects(self, base_url: str, secret: str) -> List[str]:
        url = f"{base_url.rstrip('/')}/_apis/projects"
        return await self._list(url, secret, what="projects")

    async def list_repositories(self, base_url: str, project: str, secret: str) -> List[str]:
        url = f"{base_url.rstrip('/')}/{quote(project, safe='')}/_apis/git/repositories"
        return await self._list(url, secret, what=f"repositories of '{project}'")

    async def _list(self, url: str, secret: str, what: str) -> List[str]:
        names: List[str] = []
        continuation: Optional[str] = None

        for _ in range(MAX_PAGES):
            params = {"api-version": API_VERSION}
            if continuation:
                params["continuationToken"] = continuation

            page = await self._get_page(url, params, secret, what)
            if page is None:
                return []

            payload, continuation = page
            names.extend(DevOpsTranslator.to_names(payload))
            if not continuation:
                return names

        logger.warning(f"Stopped listing {what} after {MAX_PAGES} pages.")
        return names

    async def _get_page(self, url, params, secret, what):
        """
        Fetches one page.

        Returns:
            Tuple of (payload, continuation_token), or None when the listing failed.
        """
        if self._session is None:
            raise RuntimeError("DevOpsRestClient must be used inside 'async with'.")

        token = base64.b64encode(f":{secret or ''}".encode("utf-8")).decode("ascii")
        headers = {**self.headers, "Authorization": f"Basic {token}"}

        for attempt in range(MAX_RETRIES):
            try:
                async with self._session.get(
                    url, params=params, headers=headers, timeout=REQUEST_TIMEOUT
                ) as response:
                    if response.status in RETRYABLE_STATUSES and attempt + 1 < MAX_RETRIES:
                        retry_after = response.headers.get('Retry-After')
                        sleep_time = int(retry_after) if retry_after and retry_after.isdigit() else (2 ** attempt) + random.uniform(0, 1)
                        logger.warning(
                            f"Listing {what} returned {response.status}, "
                            f"retrying in {sleep_time:.1f}s (attempt {attempt + 1}/{MAX_RETRIES})..."
                        )
                        await asyncio.sleep(sleep_time)
                        continue

                    if response.status in (401, 403):
                        logger.error(f"Failed to retrieve {what}: access denied ({response.status}). Check the personal access token.")
                        return None

                    if response.status != 200:
                        logger.error(f"Failed to retrieve {what}: {response.status} {response.reason}")
                        return None

                    # An expired token is answered with a sign-in page instead of 401
                    if "json" not in (response.content_type or ""):
                        logger.error(f"Failed to retrieve {what}: unexpected response type '{response.content_type}'.")
                        return None

                    payload = await response.json()
                    if not isinstance(payload, dict):
                        logger.error(f"Failed to retrieve {what}: unexpected response body.")
                        return None
                    return payload, response.headers.get(CONTINUATION_HEADER)

            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                if attempt + 1 >= MAX_RETRIES:
                    logger.error(f"Failed to retrieve {what}: {e}")
                    return None
                sleep_time = (2 ** attempt) + random.uniform(0, 1)
                logger.warning(
                    f"Request for {what} failed (attempt {attempt + 1}/{MAX_RETRIES}): {e}. "
                    f"Retrying in {sleep_time:.1f}s..."
                )
                await asyncio.sleep(sleep_time)

        return None
