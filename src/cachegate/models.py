"""Canonical Pydantic models shared across all cachegate modules.

This is the single source of truth for data shapes in the project.  The
models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`CacheConfig`, :class:`ClassifierConfig`, :class:`RequestConfig`
    and :class:`GlobalConfig`.

**Runtime models** -- built per request or per lifecycle step and never
persisted as configuration:
    :class:`ResourceClass`, :class:`RequestDescriptor`, :class:`CachedEntry`,
    :class:`LifecycleState`, :class:`InstallTally` and
    :class:`MaintenanceReport`.
"""

from __future__ import annotations

import enum
import hashlib
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import parse_qs, urlsplit

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

STORED_AT_HEADER = "x-cachegate-stored-at"
"""Response header carrying the instant an entry was written to the store."""

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalise_origin(url: str) -> str:
    """Return the ``scheme://host[:port]`` origin of *url*.

    Scheme and host are lower-cased and the port is dropped when it is the
    scheme's default, so ``https://EXAMPLE.com:443/a`` and
    ``https://example.com`` share an origin.  Values without a host are
    returned unchanged.
    """
    parts = urlsplit(url)
    if not parts.netloc:
        return url
    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    try:
        port = parts.port
    except ValueError:
        return f"{scheme}://{parts.netloc.lower()}"
    if port is None or port == _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


# --- Configuration ---


class CacheConfig(BaseModel):
    """Bounds applied to every cache generation by the lifecycle manager."""

    max_age_seconds: int = Field(
        default=7 * 24 * 60 * 60, description="Entries older than this are expired"
    )
    max_entries: int = Field(
        default=100, description="Maximum entries kept per generation"
    )
    evict_on_quota_error: bool = Field(
        default=True,
        description="Purge the oldest entries and retry once when a write fails",
    )
    maintenance_interval_seconds: float = Field(
        default=60 * 60, description="Period of the background maintenance task"
    )
    size_limit_bytes: int = Field(
        default=2**30, description="On-disk size limit of a single generation"
    )


class ClassifierConfig(BaseModel):
    """Inputs to the resource classifier and the interception bypass rules."""

    origin: str = Field(
        default="http://localhost:8000",
        description="Origin (scheme://host[:port]) of the hosting application",
    )
    static_extensions: list[str] = Field(
        default_factory=lambda: [
            ".html", ".css", ".js", ".json", ".png",
            ".jpg", ".jpeg", ".gif", ".svg", ".webp",
        ]
    )
    external_hosts: list[str] = Field(
        default_factory=lambda: [
            "cdnjs.cloudflare.com",
            "fonts.googleapis.com",
            "fonts.gstatic.com",
            "unpkg.com",
            "jsdelivr.net",
        ],
        description="Cross-origin hosts served stale-while-revalidate",
    )
    bypass_schemes: list[str] = Field(
        default_factory=lambda: ["chrome-extension", "moz-extension", "safari-extension"]
    )
    blocked_hosts: list[str] = Field(
        default_factory=lambda: ["google-analytics.com", "googletagmanager.com"],
        description="Analytics hosts that are never intercepted",
    )

    @field_validator("origin")
    @classmethod
    def _normalise_origin(cls, value: str) -> str:
        return normalise_origin(value.rstrip("/"))


class RequestConfig(BaseModel):
    """Settings for outbound requests made by the network fetcher."""

    timeout: Optional[float] = Field(
        default=30.0, description="Request timeout in seconds (None waits forever)"
    )
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/cachegate/config.json``.

    Loaded and saved by :func:`~cachegate.config.load_global_config` and
    :func:`~cachegate.config.save_global_config`.  See
    :func:`~cachegate.config.resolve_config` for the precedence chain.
    """

    namespace: str = Field(
        default="cachegate", description="Prefix shared by every generation name"
    )
    version: str = Field(default="1.0.0", description="Version of the current generation")
    core_urls: list[str] = Field(
        default_factory=lambda: ["/", "/index.html", "/manifest.json"],
        description="Same-origin URLs cached on install (relative to origin)",
    )
    external_urls: list[str] = Field(
        default_factory=list,
        description="Cross-origin URLs cached on install without status checks",
    )
    cache: CacheConfig = Field(default_factory=CacheConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)

    @property
    def generation_name(self) -> str:
        """Name of the generation this configuration makes current."""
        return f"{self.namespace}-v{self.version}"


# --- Requests and entries ---


class ResourceClass(str, enum.Enum):
    """Category of a request, which selects the caching strategy."""

    APP = "app"
    DATA = "data"
    EXTERNAL = "external"
    OTHER = "other"


class RequestDescriptor(BaseModel):
    """Immutable description of one intercepted request.

    Header names are lower-cased on construction so lookups are
    case-insensitive.
    """

    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @field_validator("headers")
    @classmethod
    def _lower_header_names(cls, value: dict[str, str]) -> dict[str, str]:
        return {k.lower(): v for k, v in value.items()}

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme

    @property
    def host(self) -> str:
        return urlsplit(self.url).hostname or ""

    @property
    def origin(self) -> str:
        return normalise_origin(self.url)

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def query(self) -> dict[str, list[str]]:
        return parse_qs(urlsplit(self.url).query, keep_blank_values=True)

    @property
    def accepts_html(self) -> bool:
        return "text/html" in self.headers.get("accept", "")

    @property
    def cache_key(self) -> str:
        return make_cache_key(self.method, self.url)


def format_timestamp(ts: float) -> str:
    """Render POSIX time *ts* as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def make_cache_key(method: str, url: str) -> str:
    """Return the store key for *method* and *url*.

    A SHA-256 hex digest of ``METHOD|URL`` so identical requests always
    resolve to the same entry.
    """
    raw = f"{method.upper()}|{url}"
    return hashlib.sha256(raw.encode()).hexdigest()


class CachedEntry(BaseModel):
    """A response as held by the cache store.

    Entries are immutable: updating a key writes a whole new entry.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    method: str = "GET"
    url: str
    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    stored_at: float = Field(description="POSIX timestamp of the write")

    @classmethod
    def from_response(
        cls,
        descriptor: RequestDescriptor,
        response: httpx.Response,
        stored_at: float,
    ) -> CachedEntry:
        """Snapshot *response* for *descriptor*, stamping the write time."""
        headers = {k.lower(): v for k, v in response.headers.items()}
        # httpx has already decoded the body; the transfer encoding no longer applies.
        headers.pop("content-encoding", None)
        headers.pop("content-length", None)
        headers[STORED_AT_HEADER] = format_timestamp(stored_at)
        return cls(
            key=descriptor.cache_key,
            method=descriptor.method,
            url=descriptor.url,
            status_code=response.status_code,
            headers=headers,
            body=response.content,
            stored_at=stored_at,
        )

    def to_response(self) -> httpx.Response:
        """Rebuild an :class:`httpx.Response` carrying this entry's content."""
        return httpx.Response(
            status_code=self.status_code,
            headers=self.headers,
            content=self.body,
            request=httpx.Request(self.method, self.url),
        )


# --- Lifecycle ---


class LifecycleState(str, enum.Enum):
    """Phases a cache generation moves through."""

    IDLE = "idle"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVE = "active"


class InstallTally(BaseModel):
    """Outcome of populating a generation on install."""

    succeeded: int = 0
    failed: int = 0


class MaintenanceReport(BaseModel):
    """Outcome of one maintenance pass over the current generation."""

    expired: int = 0
    evicted: int = 0
    remaining: int = 0
