"""
GitHub adapters -- list fetchers and a profile processor over the REST API.

Contract:
    ``GitHubClient`` wraps a retrying ``requests`` session and turns
    ``x-ratelimit-*`` headers into RateLimitSnapshots.  A refused call
    (403/429 with no quota left) raises RateLimitedError; any other failed
    call raises FetchError.

    ``GitHubUserSearchFetcher`` lists users whose profile location matches
    any of a set of terms.  ``GitHubNetworkFetcher`` lists the accounts a
    user follows and/or is followed by.  ``GitHubProfileProcessor`` fetches
    one full profile and hands it to a ProfileSink.

Architecture: import_jobs/sources.  Implements the protocols in
    sources.base; no database access.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from import_kernel.domain.clock import Clock, SystemClock
from import_kernel.exceptions import FetchError, ItemError, RateLimitedError
from import_kernel.logging_config import get_logger

from import_jobs.domain.types import (
    BasicIdentity,
    ItemOutcome,
    ItemResult,
    ListPage,
    RateLimitSnapshot,
)
from import_jobs.sources.base import ProfileSink

logger = get_logger("sources.github")

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"

# The search API never returns more than this many results per query.
SEARCH_RESULT_CAP = 1000
NETWORK_PAGE_SIZE = 100
DEFAULT_RETRY_AFTER_SECONDS = 60

NETWORK_MODES = ("following", "followers", "both")

_PROFILE_FIELDS = (
    "login",
    "id",
    "avatar_url",
    "html_url",
    "name",
    "company",
    "bio",
    "blog",
    "location",
    "public_repos",
    "twitter_username",
)


def requests_retry_session(
    retries: int = 3,
    backoff_factor: float = 0.5,
    status_forcelist: Sequence[int] = (500, 502, 503, 504),
    session: requests.Session | None = None,
) -> requests.Session:
    """Session whose adapters retry connection errors and 5xx responses."""
    session = session or requests.Session()
    retry = Retry(
        total=retries,
        read=retries,
        connect=retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def parse_rate_limit(headers: Any) -> RateLimitSnapshot | None:
    """Snapshot from ``x-ratelimit-*`` headers; None if they are absent."""
    remaining = headers.get("x-ratelimit-remaining")
    reset = headers.get("x-ratelimit-reset")
    if remaining is None or reset is None:
        return None
    return RateLimitSnapshot(
        remaining=int(remaining),
        limit=int(headers.get("x-ratelimit-limit") or 0),
        reset_at=datetime.fromtimestamp(int(reset), tz=timezone.utc),
    )


def identity_from_user(user: dict[str, Any]) -> BasicIdentity:
    return BasicIdentity(
        key=user["login"],
        url=user.get("html_url"),
        data={"id": user.get("id"), "avatar_url": user.get("avatar_url")},
    )


class GitHubClient:
    """Minimal GitHub REST client.

    Every call returns its decoded JSON body together with the rate-limit
    snapshot reported by that response.
    """

    def __init__(
        self,
        token: str | None = None,
        base_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        session: requests.Session | None = None,
        clock: Clock | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._clock = clock or SystemClock()
        self._session = session or requests_retry_session()
        self._session.headers.update({
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        })
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    @property
    def authenticated(self) -> bool:
        return "Authorization" in self._session.headers

    def search_users(
        self, query: str, page: int = 1, per_page: int = 30,
    ) -> tuple[dict[str, Any], RateLimitSnapshot | None]:
        return self._get(
            "/search/users",
            params={"q": query, "page": page, "per_page": per_page},
        )

    def get_user(self, login: str) -> tuple[dict[str, Any], RateLimitSnapshot | None]:
        return self._get(f"/users/{login}")

    def get_social_accounts(self, login: str) -> list[dict[str, Any]]:
        """Social accounts of ``login``; empty if the endpoint fails."""
        try:
            accounts, _ = self._get(f"/users/{login}/social_accounts")
        except FetchError:
            logger.debug("github_social_accounts_unavailable", extra={"login": login})
            return []
        return [
            {"provider": a.get("provider"), "url": a.get("url")}
            for a in accounts or ()
        ]

    def list_network(
        self, username: str, relation: str,
    ) -> tuple[list[dict[str, Any]], RateLimitSnapshot | None]:
        """Every account ``username`` follows (``following``) or is followed
        by (``followers``), walking all pages."""
        if relation not in ("following", "followers"):
            raise ValueError(f"Unknown network relation: {relation!r}")

        users: list[dict[str, Any]] = []
        snapshot: RateLimitSnapshot | None = None
        page = 1
        while True:
            batch, snapshot = self._get(
                f"/users/{username}/{relation}",
                params={"per_page": NETWORK_PAGE_SIZE, "page": page},
            )
            users.extend(batch)
            if len(batch) < NETWORK_PAGE_SIZE:
                break
            page += 1
        return users, snapshot

    def rate_limit_status(self) -> RateLimitSnapshot:
        """Core quota as reported by ``/rate_limit`` (does not count against it)."""
        data, _ = self._get("/rate_limit")
        core = data["resources"]["core"]
        return RateLimitSnapshot(
            remaining=int(core["remaining"]),
            limit=int(core["limit"]),
            reset_at=datetime.fromtimestamp(int(core["reset"]), tz=timezone.utc),
        )

    def _get(
        self, path: str, params: dict[str, Any] | None = None,
    ) -> tuple[Any, RateLimitSnapshot | None]:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.get(url, params=params, timeout=self._timeout)
        except requests.RequestException as exc:
            raise FetchError("github", f"GET {path} failed: {exc}") from exc

        snapshot = parse_rate_limit(response.headers)

        if response.status_code in (403, 429):
            if snapshot is not None and snapshot.remaining == 0:
                raise RateLimitedError(snapshot.reset_at, remaining=0)
            if response.status_code == 429:
                retry_after = int(
                    response.headers.get("retry-after") or DEFAULT_RETRY_AFTER_SECONDS
                )
                raise RateLimitedError(
                    self._clock.now() + timedelta(seconds=retry_after),
                    remaining=snapshot.remaining if snapshot is not None else 0,
                )

        if not response.ok:
            raise FetchError(
                "github",
                f"GET {path} returned {response.status_code}: {_error_message(response)}",
            )

        logger.debug(
            "github_request",
            extra={
                "path": path,
                "status_code": response.status_code,
                "rate_limit_remaining": snapshot.remaining if snapshot else None,
            },
        )
        return response.json(), snapshot


def _error_message(response: requests.Response) -> str:
    try:
        return response.json().get("message", response.reason)
    except ValueError:
        return response.reason or ""


# =============================================================================
# List fetchers
# =============================================================================


def _location_clause(term: str) -> str:
    term = term.strip()
    if not term.startswith('"') and any(ch.isspace() for ch in term):
        return f'location:"{term}"'
    return f"location:{term}"


class GitHubUserSearchFetcher:
    """Users whose profile location matches any of ``location_terms``."""

    def __init__(
        self,
        client: GitHubClient,
        location_terms: Sequence[str],
        page_size: int = 30,
    ):
        terms = tuple(t for t in location_terms if t and t.strip())
        if not terms:
            raise ValueError("At least one location term is required")
        if not 1 <= page_size <= 100:
            raise ValueError(f"page_size must be between 1 and 100: {page_size}")
        self._client = client
        self._terms = terms
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def query(self) -> str:
        clauses = [_location_clause(t) for t in self._terms]
        if len(clauses) == 1:
            return f"{clauses[0]} type:user"
        return f"({' OR '.join(clauses)}) type:user"

    def fetch(self, page: int) -> ListPage:
        data, snapshot = self._client.search_users(
            self.query, page=page, per_page=self._page_size,
        )
        identities = tuple(identity_from_user(u) for u in data.get("items", ()))
        total = min(int(data.get("total_count", 0)), SEARCH_RESULT_CAP)
        return ListPage(identities=identities, total=total, rate_limit=snapshot)


class GitHubNetworkFetcher:
    """Accounts ``username`` follows, is followed by, or both.

    The whole network is listed once per instance (the API pages it at 100
    per call) and then served ``page_size`` at a time.  In ``both`` mode an
    account that appears in both lists is yielded once.
    """

    def __init__(
        self,
        client: GitHubClient,
        username: str,
        mode: str = "following",
        page_size: int = 30,
    ):
        if mode not in NETWORK_MODES:
            raise ValueError(
                f"Unknown network mode {mode!r}; expected one of {NETWORK_MODES}"
            )
        if page_size <= 0:
            raise ValueError(f"page_size must be positive: {page_size}")
        self._client = client
        self._username = username
        self._mode = mode
        self._page_size = page_size
        self._identities: tuple[BasicIdentity, ...] | None = None

    @property
    def page_size(self) -> int:
        return self._page_size

    def fetch(self, page: int) -> ListPage:
        snapshot = None
        if self._identities is None:
            self._identities, snapshot = self._load()

        start = (page - 1) * self._page_size
        return ListPage(
            identities=self._identities[start:start + self._page_size],
            total=len(self._identities),
            rate_limit=snapshot,
        )

    def _load(self) -> tuple[tuple[BasicIdentity, ...], RateLimitSnapshot | None]:
        relations = ("following", "followers") if self._mode == "both" else (self._mode,)
        seen: set[str] = set()
        identities: list[BasicIdentity] = []
        snapshot: RateLimitSnapshot | None = None
        for relation in relations:
            users, snapshot = self._client.list_network(self._username, relation)
            for user in users:
                key = user["login"].lower()
                if key in seen:
                    continue
                seen.add(key)
                identities.append(identity_from_user(user))

        logger.info(
            "github_network_listed",
            extra={
                "username": self._username,
                "mode": self._mode,
                "total_items": len(identities),
            },
        )
        return tuple(identities), snapshot


# =============================================================================
# Item processor + sink
# =============================================================================


def normalize_profile(user: dict[str, Any]) -> dict[str, Any]:
    return {name: user.get(name) for name in _PROFILE_FIELDS}


class GitHubProfileProcessor:
    """Fetches a full profile (and optionally social accounts) per identity."""

    def __init__(
        self,
        client: GitHubClient,
        sink: ProfileSink,
        include_social_accounts: bool = True,
    ):
        self._client = client
        self._sink = sink
        self._include_social_accounts = include_social_accounts

    def process(self, identity: BasicIdentity) -> ItemResult:
        try:
            user, snapshot = self._client.get_user(identity.key)
        except FetchError as exc:
            raise ItemError(identity.key, exc.message) from exc

        profile = normalize_profile(user)
        if self._include_social_accounts:
            profile["social_accounts"] = self._client.get_social_accounts(identity.key)

        result = self._sink(profile)
        if result.rate_limit is None and snapshot is not None:
            result = replace(result, rate_limit=snapshot)
        return result


class CollectingProfileSink:
    """In-memory sink keyed by login; repeat logins are skipped."""

    def __init__(self) -> None:
        self.profiles: dict[str, dict[str, Any]] = {}

    def __call__(self, profile: dict[str, Any]) -> ItemResult:
        login = profile["login"]
        label = profile.get("name") or login
        key = login.lower()
        if key in self.profiles:
            return ItemResult(outcome=ItemOutcome.SKIPPED, label=label)
        self.profiles[key] = profile
        return ItemResult(outcome=ItemOutcome.IMPORTED, label=label)

    def __len__(self) -> int:
        return len(self.profiles)
