"""
Tests for import_jobs.sources.github.

Validates header parsing, rate-limit and failure translation in
GitHubClient, query building and paging in the fetchers, the profile
processor, and CollectingProfileSink.  HTTP is replaced by a scripted
session object; no network access.
"""

from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest
import requests

from import_kernel.domain.clock import DeterministicClock
from import_kernel.exceptions import FetchError, ItemError, RateLimitedError

from import_jobs.domain.types import BasicIdentity, ItemOutcome, ItemResult, RateLimitSnapshot
from import_jobs.sources.github import (
    SEARCH_RESULT_CAP,
    CollectingProfileSink,
    GitHubClient,
    GitHubNetworkFetcher,
    GitHubProfileProcessor,
    GitHubUserSearchFetcher,
    parse_rate_limit,
    requests_retry_session,
)

NOW = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)
RESET_EPOCH = int((NOW + timedelta(hours=1)).timestamp())
RESET_AT = NOW + timedelta(hours=1)


# =============================================================================
# Fakes
# =============================================================================


class FakeResponse:

    def __init__(self, status_code=200, body=None, headers=None, reason="OK"):
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        self.reason = reason

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body


def quota(remaining, limit=5000, reset=RESET_EPOCH):
    return {
        "x-ratelimit-remaining": str(remaining),
        "x-ratelimit-limit": str(limit),
        "x-ratelimit-reset": str(reset),
    }


class ScriptedSession:
    """Returns queued responses per path suffix; records every request."""

    def __init__(self):
        self.headers: dict[str, str] = {}
        self.routes: dict[str, list[FakeResponse]] = {}
        self.requests: list[tuple[str, dict | None]] = []

    def add(self, path: str, *responses: FakeResponse) -> None:
        self.routes.setdefault(path, []).extend(responses)

    def get(self, url, params=None, timeout=None):
        path = url.replace("https://api.github.com", "")
        self.requests.append((path, params))
        queue = self.routes.get(path)
        if not queue:
            raise AssertionError(f"Unexpected request: {path}")
        return queue.pop(0) if len(queue) > 1 else queue[0]


def user(login, **extra):
    return {
        "login": login,
        "id": abs(hash(login)) % 100000,
        "avatar_url": f"https://avatars.example/{login}",
        "html_url": f"https://github.com/{login}",
        **extra,
    }


@pytest.fixture
def session():
    return ScriptedSession()


@pytest.fixture
def client(session):
    return GitHubClient(token="t0ken", session=session, clock=DeterministicClock(NOW))


# =============================================================================
# Client
# =============================================================================


class TestParseRateLimit:

    def test_parses_headers(self):
        assert parse_rate_limit(quota(42)) == RateLimitSnapshot(42, 5000, RESET_AT)

    def test_missing_headers(self):
        assert parse_rate_limit({}) is None


class TestGitHubClient:

    def test_sets_auth_and_api_headers(self, client, session):
        assert session.headers["Authorization"] == "Bearer t0ken"
        assert session.headers["Accept"] == "application/vnd.github+json"
        assert client.authenticated

    def test_anonymous_client(self):
        client = GitHubClient(session=ScriptedSession())
        assert not client.authenticated

    def test_get_user_returns_body_and_snapshot(self, client, session):
        session.add("/users/octocat", FakeResponse(body=user("octocat"), headers=quota(99)))

        body, snapshot = client.get_user("octocat")

        assert body["login"] == "octocat"
        assert snapshot.remaining == 99

    def test_exhausted_quota_raises_rate_limited(self, client, session):
        session.add("/users/octocat", FakeResponse(403, {"message": "API rate limit exceeded"}, quota(0)))

        with pytest.raises(RateLimitedError) as exc_info:
            client.get_user("octocat")

        assert exc_info.value.reset_at == RESET_AT
        assert exc_info.value.remaining == 0

    def test_secondary_limit_uses_retry_after(self, client, session):
        session.add(
            "/users/octocat",
            FakeResponse(429, {"message": "slow down"}, {**quota(100), "retry-after": "30"}),
        )

        with pytest.raises(RateLimitedError) as exc_info:
            client.get_user("octocat")

        assert exc_info.value.reset_at == NOW + timedelta(seconds=30)

    def test_forbidden_with_quota_left_is_fetch_error(self, client, session):
        session.add("/users/octocat", FakeResponse(403, {"message": "Forbidden"}, quota(10), "Forbidden"))

        with pytest.raises(FetchError, match="403"):
            client.get_user("octocat")

    def test_not_found_is_fetch_error(self, client, session):
        session.add("/users/ghost", FakeResponse(404, {"message": "Not Found"}, quota(10), "Not Found"))

        with pytest.raises(FetchError, match="Not Found"):
            client.get_user("ghost")

    def test_transport_error_is_fetch_error(self, client, session):
        session.get = mock.Mock(side_effect=requests.ConnectionError("refused"))

        with pytest.raises(FetchError, match="refused"):
            client.get_user("octocat")

    def test_social_accounts_swallow_failures(self, client, session):
        session.add("/users/octocat/social_accounts", FakeResponse(404, None, quota(10), "Not Found"))

        assert client.get_social_accounts("octocat") == []

    def test_social_accounts(self, client, session):
        session.add(
            "/users/octocat/social_accounts",
            FakeResponse(body=[{"provider": "mastodon", "url": "https://hachyderm.io/@o"}]),
        )

        assert client.get_social_accounts("octocat") == [
            {"provider": "mastodon", "url": "https://hachyderm.io/@o"},
        ]

    def test_list_network_walks_pages(self, client, session):
        first = [user(f"f{i}") for i in range(100)]
        second = [user("last")]
        session.add("/users/octocat/followers", FakeResponse(body=first, headers=quota(50)))
        session.routes["/users/octocat/followers"].append(FakeResponse(body=second, headers=quota(49)))

        users, snapshot = client.list_network("octocat", "followers")

        assert len(users) == 101
        assert snapshot.remaining == 49
        assert [p["page"] for _, p in session.requests] == [1, 2]
        assert all(p["per_page"] == 100 for _, p in session.requests)

    def test_list_network_rejects_unknown_relation(self, client):
        with pytest.raises(ValueError):
            client.list_network("octocat", "stars")

    def test_rate_limit_status(self, client, session):
        session.add("/rate_limit", FakeResponse(body={
            "resources": {"core": {"remaining": 4000, "limit": 5000, "reset": RESET_EPOCH}},
        }))

        assert client.rate_limit_status() == RateLimitSnapshot(4000, 5000, RESET_AT)


def test_retry_session_mounts_adapters():
    session = requests_retry_session(retries=2)
    adapter = session.get_adapter("https://api.github.com")
    assert adapter.max_retries.total == 2
    assert 429 not in adapter.max_retries.status_forcelist


def test_retry_session_reuses_given_session():
    base = requests.Session()
    session = requests_retry_session(
        retries=1, backoff_factor=0.1, status_forcelist=(502,), session=base,
    )
    retry = session.get_adapter("http://localhost").max_retries
    assert session is base
    assert retry.backoff_factor == 0.1
    assert list(retry.status_forcelist) == [502]


# =============================================================================
# Fetchers
# =============================================================================


class TestUserSearchFetcher:

    def test_query_joins_terms(self, client):
        fetcher = GitHubUserSearchFetcher(client, ["Newfoundland", '"NL"', "St. John's"])
        assert fetcher.query == (
            '(location:Newfoundland OR location:"NL" OR location:"St. John\'s") type:user'
        )

    def test_single_term_query(self, client):
        assert GitHubUserSearchFetcher(client, ["Labrador"]).query == "location:Labrador type:user"

    def test_requires_terms(self, client):
        with pytest.raises(ValueError):
            GitHubUserSearchFetcher(client, ["", "  "])

    def test_fetch_builds_page(self, client, session):
        session.add("/search/users", FakeResponse(
            body={"total_count": 42, "items": [user("amy"), user("bob")]},
            headers=quota(29, limit=30),
        ))
        fetcher = GitHubUserSearchFetcher(client, ["Labrador"], page_size=2)

        page = fetcher.fetch(3)

        assert [i.key for i in page.identities] == ["amy", "bob"]
        assert page.identities[0].url == "https://github.com/amy"
        assert page.total == 42
        assert page.rate_limit.remaining == 29
        assert session.requests[0][1] == {
            "q": "location:Labrador type:user", "page": 3, "per_page": 2,
        }

    def test_total_capped_at_search_limit(self, client, session):
        session.add("/search/users", FakeResponse(body={"total_count": 5000, "items": []}))

        page = GitHubUserSearchFetcher(client, ["Canada"]).fetch(1)

        assert page.total == SEARCH_RESULT_CAP


class TestNetworkFetcher:

    def test_both_mode_dedupes_by_login(self, client, session):
        session.add("/users/octocat/following", FakeResponse(body=[user("amy"), user("Bob")], headers=quota(80)))
        session.add("/users/octocat/followers", FakeResponse(body=[user("bob"), user("cat")], headers=quota(79)))
        fetcher = GitHubNetworkFetcher(client, "octocat", mode="both", page_size=2)

        first = fetcher.fetch(1)
        second = fetcher.fetch(2)

        assert [i.key for i in first.identities] == ["amy", "Bob"]
        assert [i.key for i in second.identities] == ["cat"]
        assert first.total == second.total == 3
        assert first.rate_limit.remaining == 79
        assert second.rate_limit is None
        assert len(session.requests) == 2

    def test_beyond_last_page_is_empty(self, client, session):
        session.add("/users/octocat/following", FakeResponse(body=[user("amy")]))
        fetcher = GitHubNetworkFetcher(client, "octocat")

        assert fetcher.fetch(2).identities == ()

    def test_rejects_unknown_mode(self, client):
        with pytest.raises(ValueError):
            GitHubNetworkFetcher(client, "octocat", mode="stargazers")


# =============================================================================
# Processor + sink
# =============================================================================


class TestProfileProcessor:

    def test_fetches_profile_and_socials(self, client, session):
        session.add("/users/amy", FakeResponse(
            body=user("amy", name="Amy", location="St. John's, NL", secret="x"),
            headers=quota(70),
        ))
        session.add("/users/amy/social_accounts", FakeResponse(body=[]))
        sink = CollectingProfileSink()
        processor = GitHubProfileProcessor(client, sink)

        result = processor.process(BasicIdentity(key="amy"))

        assert result.outcome == ItemOutcome.IMPORTED
        assert result.label == "Amy"
        assert result.rate_limit.remaining == 70
        profile = sink.profiles["amy"]
        assert profile["location"] == "St. John's, NL"
        assert profile["social_accounts"] == []
        assert "secret" not in profile

    def test_skips_social_accounts_when_disabled(self, client, session):
        session.add("/users/amy", FakeResponse(body=user("amy"), headers=quota(70)))
        processor = GitHubProfileProcessor(client, CollectingProfileSink(), include_social_accounts=False)

        processor.process(BasicIdentity(key="amy"))

        assert [path for path, _ in session.requests] == ["/users/amy"]

    def test_fetch_failure_becomes_item_error(self, client, session):
        session.add("/users/ghost", FakeResponse(404, {"message": "Not Found"}, quota(10), "Not Found"))
        processor = GitHubProfileProcessor(client, CollectingProfileSink())

        with pytest.raises(ItemError) as exc_info:
            processor.process(BasicIdentity(key="ghost"))

        assert exc_info.value.identity_key == "ghost"

    def test_rate_limit_propagates(self, client, session):
        session.add("/users/amy", FakeResponse(403, {}, quota(0)))
        processor = GitHubProfileProcessor(client, CollectingProfileSink())

        with pytest.raises(RateLimitedError):
            processor.process(BasicIdentity(key="amy"))

    def test_sink_snapshot_wins(self, client, session):
        session.add("/users/amy", FakeResponse(body=user("amy"), headers=quota(70)))
        own = RateLimitSnapshot(1, 1, RESET_AT)
        processor = GitHubProfileProcessor(
            client,
            lambda profile: ItemResult(ItemOutcome.MERGED, profile["login"], rate_limit=own),
            include_social_accounts=False,
        )

        assert processor.process(BasicIdentity(key="amy")).rate_limit == own


class TestCollectingProfileSink:

    def test_duplicate_login_is_skipped(self):
        sink = CollectingProfileSink()

        first = sink({"login": "Amy", "name": None})
        second = sink({"login": "amy", "name": "Amy"})

        assert first.outcome == ItemOutcome.IMPORTED
        assert first.label == "Amy"
        assert second.outcome == ItemOutcome.SKIPPED
        assert len(sink) == 1
