"""Release and image tag lookup for choosing an update target."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from rollout_sidecar.logging import get_logger

log = get_logger("rollout_sidecar.releases")

PER_PAGE = 100
CHANNELS = ("release", "beta", "dev", "nightly")

# Tags published by the deployment tooling itself, not the application.
_TOOLING_PREFIXES = ("installer-", "updater-")


class RegistryError(Exception):
    """The release registry could not be queried."""


@dataclass
class Release:
    """An application release published on GitHub."""

    tag: str
    name: str = ""
    channel: str = "release"
    published_at: str = ""
    prerelease: bool = False
    html_url: str = ""
    body: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "tag": self.tag,
            "name": self.name,
            "channel": self.channel,
            "published_at": self.published_at,
            "prerelease": self.prerelease,
            "html_url": self.html_url,
            "body": self.body[:500],
        }


def is_app_release_tag(tag: str) -> bool:
    normalized = tag.strip().lower()
    return bool(normalized) and not normalized.startswith(_TOOLING_PREFIXES)


def classify_channel(tag: str, name: str = "", prerelease: bool = False) -> str:
    tag_l = tag.lower()
    name_l = name.lower()
    if "nightly" in tag_l or "nightly" in name_l:
        return "nightly"
    if "dev" in tag_l or "dev" in name_l:
        return "dev"
    if prerelease or "beta" in tag_l or "rc" in tag_l:
        return "beta"
    return "release"


class ReleaseClient:
    """Lists releases of one GitHub repository."""

    def __init__(
        self,
        repo: str,
        api_base: str = "https://api.github.com",
        token: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._repo = repo
        self._api_base = api_base.rstrip("/")
        self._token = token
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def list_releases(self, limit: int = 0) -> list[Release]:
        """Return app releases newest first; ``limit`` of 0 means all.

        Raises:
            RegistryError: On transport errors or a non-200 response.
        """
        url = f"{self._api_base}/repos/{self._repo}/releases"
        collected: list[Release] = []
        page = 1

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                while True:
                    resp = await client.get(
                        url,
                        params={"per_page": PER_PAGE, "page": page},
                        headers=self._headers(),
                    )
                    if resp.status_code != 200:
                        log.warning("releases_api_error", status=resp.status_code, page=page)
                        raise RegistryError(f"GitHub API returned {resp.status_code}")

                    items = resp.json()
                    if not isinstance(items, list) or not items:
                        break

                    for item in items:
                        release = self._parse(item)
                        if release is None:
                            continue
                        collected.append(release)
                        if limit > 0 and len(collected) >= limit:
                            return collected

                    if len(items) < PER_PAGE:
                        break
                    page += 1
        except httpx.HTTPError as exc:
            raise RegistryError(f"failed to fetch releases: {exc}") from exc

        return collected

    async def latest(self, channel: str) -> Release:
        """Return the newest release in ``channel``.

        Raises:
            RegistryError: If the lookup fails or the channel has no release.
        """
        for release in await self.list_releases(limit=50):
            if release.channel == channel:
                return release
        raise RegistryError(f"no releases found for channel {channel!r}")

    @staticmethod
    def _parse(item: Any) -> Release | None:
        if not isinstance(item, dict):
            return None
        tag = str(item.get("tag_name") or "")
        if not is_app_release_tag(tag):
            return None
        name = str(item.get("name") or "")
        prerelease = bool(item.get("prerelease", False))
        return Release(
            tag=tag,
            name=name,
            channel=classify_channel(tag, name, prerelease),
            published_at=str(item.get("published_at") or ""),
            prerelease=prerelease,
            html_url=str(item.get("html_url") or ""),
            body=str(item.get("body") or ""),
        )


# ---------------------------------------------------------------------------
# Container registry tags
# ---------------------------------------------------------------------------

# Base images, digest and commit tags, and tooling images share the repository.
_NON_APP_TAG_PREFIXES = ("php", "sha256-", "sha-", "installer-", "updater-")


@dataclass
class ImageTag:
    """An application image tag published to the container registry."""

    name: str
    channel: str = "release"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "channel": self.channel}


def is_app_image_tag(tag: str) -> bool:
    return bool(tag) and not tag.startswith(_NON_APP_TAG_PREFIXES)


def classify_tag(tag: str) -> str:
    lower = tag.lower()
    if "nightly" in lower:
        return "nightly"
    if "dev" in lower:
        return "dev"
    if "beta" in lower or "rc" in lower or "alpha" in lower:
        return "beta"
    return "release"


class TagClient:
    """Lists tags of one image through the OCI distribution API.

    ``image`` is a repository reference such as ``ghcr.io/owner/app``; the
    first path segment is the registry host.
    """

    def __init__(self, image: str, timeout: float = 10.0) -> None:
        self._image = image
        self._timeout = timeout

    def _tags_url(self) -> str:
        host, sep, path = self._image.partition("/")
        if not sep or not path:
            raise RegistryError(f"invalid image reference: {self._image}")
        return f"https://{host}/v2/{path}/tags/list"

    async def list_tags(self) -> list[ImageTag]:
        """Return the application tags in registry order.

        Raises:
            RegistryError: On a bad image reference, transport errors, a
                non-200 response or a malformed body.
        """
        url = self._tags_url()
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise RegistryError(f"registry tag fetch failed: {exc}") from exc

        if resp.status_code != 200:
            log.warning("registry_tags_error", image=self._image, status=resp.status_code)
            raise RegistryError(f"registry returned {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise RegistryError(f"malformed tag list: {exc}") from exc
        names = body.get("tags") if isinstance(body, dict) else None
        if not isinstance(names, list):
            return []

        return [
            ImageTag(name=name, channel=classify_tag(name))
            for name in names
            if isinstance(name, str) and is_app_image_tag(name)
        ]

    async def latest(self, channel: str) -> str:
        """Return the first tag in ``channel``.

        Raises:
            RegistryError: If the lookup fails or the channel has no tag.
        """
        for tag in await self.list_tags():
            if tag.channel == channel:
                return tag.name
        raise RegistryError(f"no tags found for channel {channel!r}")
