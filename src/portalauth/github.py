"""Download files, releases and archives from public GitHub repositories."""

from __future__ import annotations

import asyncio
import io
import logging
import os
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx

from .errors import GitHubFetchError

logger = logging.getLogger(__name__)


GITHUB_API_URL = "https://api.github.com"
GITHUB_RAW_CONTENT_URL = "https://raw.githubusercontent.com"

ContentFilter = Callable[[str, Path], bool]


def normalize_release_tag(tag: Optional[str]) -> Optional[str]:
    """Lower-case a release tag and prefix it with ``v`` when missing."""
    if tag is None:
        return None
    tag = tag.strip().lower()
    if tag and not tag.startswith("v"):
        tag = f"v{tag}"
    return tag or None


@dataclass
class GitHubRepoClient:
    """Fetches repository content over the GitHub REST API.

    A ``GITHUB_TOKEN`` environment variable, when set, is sent as the
    authorization header.
    """

    timeout: float = 30.0
    token: Optional[str] = None
    transport: Optional[httpx.AsyncBaseTransport] = None

    def __post_init__(self) -> None:
        if self.token is None:
            self.token = os.getenv("GITHUB_TOKEN") or None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_file_from_repository(self, repo_path: str, file_path: str, ref: str) -> bytes:
        url = f"{GITHUB_RAW_CONTENT_URL}/{repo_path}/{ref}/{file_path}"
        logger.debug(f"Fetching {url}")
        try:
            response = await self._get(url)
        except GitHubFetchError as exc:
            raise GitHubFetchError(f"Failed to fetch {file_path} from {repo_path}: {exc}") from exc
        return response.content

    async def fetch_release_data(self, repo_path: str, tag: Optional[str] = None) -> Dict[str, Any]:
        """Fetch a release by tag, defaulting to the latest release."""
        tag = normalize_release_tag(tag)
        endpoint = f"releases/tags/{tag}" if tag else "releases/latest"
        try:
            response = await self._get(f"{GITHUB_API_URL}/repos/{repo_path}/{endpoint}")
        except GitHubFetchError as exc:
            raise GitHubFetchError(
                f"Failed to fetch release data for {tag or 'latest'} release: {exc}"
            ) from exc
        return response.json()

    async def download_github_repo_zip(
        self,
        repo_path: str,
        is_release: bool = False,
        *,
        branch: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> bytes:
        if is_release:
            release = await self.fetch_release_data(repo_path, tag)
            zip_url = release["zipball_url"]
            logger.debug(f"Fetching release {release.get('name')}")
        else:
            ref = branch or tag
            zip_url = f"{GITHUB_API_URL}/repos/{repo_path}/zipball"
            if ref:
                zip_url = f"{zip_url}/{ref}"
            logger.debug(f"Fetching {repo_path} archive")
        try:
            response = await self._get(zip_url)
        except GitHubFetchError as exc:
            raise GitHubFetchError(f"Failed to download {repo_path} archive: {exc}") from exc
        logger.debug("Completed archive download")
        return response.content

    async def clone_github_repo(
        self,
        repo_path: str,
        dest: Path,
        *,
        is_release: bool = False,
        branch: Optional[str] = None,
        tag: Optional[str] = None,
        source_dir: Optional[str] = None,
    ) -> bool:
        zip_bytes = await self.download_github_repo_zip(
            repo_path, is_release, branch=branch, tag=tag
        )
        repo_name = repo_path.split("/")[-1]
        success = extract_zip_archive(zip_bytes, repo_name, Path(dest), source_dir=source_dir)
        if success:
            logger.info(f"Copied {repo_path} to {dest}")
        return success

    async def download_github_repo_contents(
        self,
        repo_path: str,
        content_path: str,
        dest: Path,
        ref: Optional[str] = None,
        filter: Optional[ContentFilter] = None,
    ) -> List[Path]:
        """Write the files under ``content_path`` into ``dest``.

        Directories are walked recursively. ``filter(content_path, download_path)``
        can veto individual entries. Returns the written paths.
        """
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        written: List[Path] = []

        async def download(entry: Dict[str, Any]) -> None:
            entry_path = entry["path"]
            relative = entry_path.replace(content_path, "", 1).lstrip("/")
            download_path = dest / relative if relative else dest
            if filter is not None and not filter(entry_path, download_path):
                return
            logger.debug(f"Downloading {entry_path} to {download_path}")
            if entry.get("type") == "dir":
                inner = await self._fetch_contents(repo_path, entry_path, ref)
                await asyncio.gather(*(download(item) for item in inner))
                return
            response = await self._get(entry["download_url"])
            download_path.parent.mkdir(parents=True, exist_ok=True)
            download_path.write_bytes(response.content)
            written.append(download_path)

        try:
            contents = await self._fetch_contents(repo_path, content_path, ref)
            await asyncio.gather(*(download(entry) for entry in contents))
        except GitHubFetchError as exc:
            raise GitHubFetchError(f"Failed to fetch contents: {exc}") from exc
        return written

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _fetch_contents(
        self, repo_path: str, content_path: str, ref: Optional[str]
    ) -> List[Dict[str, Any]]:
        params = {"ref": ref} if ref else None
        response = await self._get(
            f"{GITHUB_API_URL}/repos/{repo_path}/contents/{content_path}", params=params
        )
        data = response.json()
        return data if isinstance(data, list) else [data]

    async def _get(self, url: str, params: Optional[Dict[str, str]] = None) -> httpx.Response:
        headers = {"User-Agent": "portalauth"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport, follow_redirects=True
            ) as client:
                response = await client.get(url, params=params, headers=headers)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as exc:
            raise GitHubFetchError(
                f"GitHub returned {exc.response.status_code} for {url}",
                details={"status_code": exc.response.status_code, "url": url},
            ) from exc
        except httpx.HTTPError as exc:
            raise GitHubFetchError(f"Request to {url} failed: {exc}", details={"url": url}) from exc


# ---------------------------------------------------------------------------
# Archive extraction
# ---------------------------------------------------------------------------


def extract_zip_archive(
    zip_bytes: bytes,
    name: str,
    dest: Path,
    *,
    source_dir: Optional[str] = None,
) -> bool:
    """Extract a repository archive and copy its content into ``dest``.

    GitHub archives wrap everything in a single top-level directory; that
    directory (or ``source_dir`` inside it) is what lands in ``dest``.
    Returns False when the archive cannot be read or is empty.
    """
    dest = Path(dest)
    with tempfile.TemporaryDirectory(prefix=f"{name}-") as tmp:
        tmp_path = Path(tmp)
        try:
            with zipfile.ZipFile(io.BytesIO(zip_bytes)) as archive:
                archive.extractall(tmp_path)
        except zipfile.BadZipFile as exc:
            logger.error(f"Could not extract {name} archive: {exc}")
            return False

        roots = [p for p in tmp_path.iterdir() if p.is_dir()]
        if not roots:
            logger.error(f"Archive for {name} is empty")
            return False
        source = roots[0] / source_dir if source_dir else roots[0]
        if not source.exists():
            logger.error(f"{source_dir} not found in {name} archive")
            return False

        dest.mkdir(parents=True, exist_ok=True)
        shutil.copytree(source, dest, dirs_exist_ok=True)
    logger.debug(f"Extracted {name} into {dest}")
    return True


__all__ = [
    "GitHubRepoClient",
    "extract_zip_archive",
    "normalize_release_tag",
]
