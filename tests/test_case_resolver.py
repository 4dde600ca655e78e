"""Tests for case resolution and the session case cache."""

import asyncio

import pytest

from testrail_sync.errors import ResolutionError, TestRailAPIError, TestRailConnectionError
from testrail_sync.models.remote import RemoteCase
from testrail_sync.sync.case_resolver import CaseResolver, build_case_payload
from testrail_sync.sync.session import CaseMapping

from conftest import make_result


@pytest.fixture
def resolver(fake_client) -> CaseResolver:
    return CaseResolver(fake_client, default_section_id=7, page_limit=1000)


class TestBuildCasePayload:

    def test_payload_fields(self):
        result = make_result("ext-1", "Checkout works", metadata={"framework": "pytest"})
        data = build_case_payload(result).to_api()
        assert data == {
            "title": "Checkout works",
            "type_id": 6,
            "priority_id": 2,
            "refs": "ext-1",
            "custom_steps": "Automated test: ext-1",
            "custom_expected": "Test should pass without errors",
            "custom_automation_type": "Automated",
            "custom_test_framework": "pytest",
        }

    def test_framework_defaults_to_unknown(self):
        data = build_case_payload(make_result()).to_api()
        assert data["custom_test_framework"] == "unknown"


class TestCaseResolver:

    @pytest.mark.asyncio
    async def test_matches_existing_title_case_insensitively(self, resolver, fake_client):
        fake_client.cases.append(RemoteCase(id=31, title="LOGIN WORKS"))
        cache = CaseMapping()

        case_id = await resolver.resolve(1, make_result("t1", "login works"), cache)

        assert case_id == 31
        assert cache.get("t1") == 31
        assert fake_client.calls["add_case"] == 0
        assert cache.created == set()

    @pytest.mark.asyncio
    async def test_creates_missing_case_in_default_section(self, resolver, fake_client):
        cache = CaseMapping()

        case_id = await resolver.resolve(1, make_result("t1", "Login works"), cache)

        assert fake_client.calls["add_case"] == 1
        assert fake_client.cases[0].section_id == 7
        assert fake_client.cases[0].refs == "t1"
        assert cache.get("t1") == case_id
        assert cache.created == {"t1"}

    @pytest.mark.asyncio
    async def test_section_override(self, resolver, fake_client):
        await resolver.resolve(1, make_result(), CaseMapping(), section_id=12)
        assert fake_client.cases[0].section_id == 12

    @pytest.mark.asyncio
    async def test_second_resolution_served_from_cache(self, resolver, fake_client):
        cache = CaseMapping()
        result = make_result("t1", "Login works")

        first = await resolver.resolve(1, result, cache)
        second = await resolver.resolve(1, result, cache)

        assert first == second
        assert fake_client.calls["get_cases"] == 1
        assert fake_client.calls["add_case"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_same_id_creates_once(self, resolver, fake_client):
        fake_client.delay = 0.01
        cache = CaseMapping()
        result = make_result("t1", "Login works")

        ids = await asyncio.gather(*(resolver.resolve(1, result, cache) for _ in range(5)))

        assert len(set(ids)) == 1
        assert fake_client.calls["add_case"] == 1

    @pytest.mark.asyncio
    async def test_no_create_when_disabled(self, resolver, fake_client):
        with pytest.raises(ResolutionError, match="no case with a matching title"):
            await resolver.resolve(1, make_result(), CaseMapping(), create_if_missing=False)
        assert fake_client.calls["add_case"] == 0

    @pytest.mark.asyncio
    async def test_listing_failure_is_resolution_error(self, resolver, fake_client):
        fake_client.fail_on["get_cases"] = TestRailAPIError("boom", status_code=500)
        cache = CaseMapping()

        with pytest.raises(ResolutionError) as exc_info:
            await resolver.resolve(1, make_result("t1"), cache)

        assert exc_info.value.external_test_id == "t1"
        assert "t1" not in cache

    @pytest.mark.asyncio
    async def test_creation_failure_is_resolution_error(self, resolver, fake_client):
        fake_client.fail_on["add_case"] = TestRailAPIError("Field :title is required", 400)
        with pytest.raises(ResolutionError, match="case creation failed"):
            await resolver.resolve(1, make_result(), CaseMapping())

    @pytest.mark.asyncio
    async def test_connection_error_propagates(self, resolver, fake_client):
        fake_client.fail_on["get_cases"] = TestRailConnectionError("unreachable")
        with pytest.raises(TestRailConnectionError):
            await resolver.resolve(1, make_result(), CaseMapping())


class TestResolveAll:

    @pytest.mark.asyncio
    async def test_collects_failures_and_continues(self, resolver, fake_client):
        fake_client.cases.append(RemoteCase(id=5, title="Known"))
        results = [make_result("a", "Known"), make_result("b", "Unknown")]

        resolved, failures = await resolver.resolve_all(
            1, results, CaseMapping(), create_if_missing=False,
        )

        assert resolved == {"a": 5}
        assert len(failures) == 1
        assert failures[0].external_test_id == "b"

    @pytest.mark.asyncio
    async def test_shared_title_merges_identity(self, resolver, fake_client):
        cache = CaseMapping()
        await resolver.resolve(1, make_result("a", "Same title"), cache)
        await resolver.resolve(1, make_result("b", "same title"), cache)

        assert cache.get("a") == cache.get("b")
        assert fake_client.calls["add_case"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_shared_title_creates_once(self, resolver, fake_client):
        fake_client.delay = 0.01
        cache = CaseMapping()

        resolved, failures = await resolver.resolve_all(
            1, [make_result("a", "Same title"), make_result("b", "same title")], cache,
        )

        assert failures == []
        assert resolved["a"] == resolved["b"]
        assert fake_client.calls["add_case"] == 1
        assert cache.created == {"a"}

    @pytest.mark.asyncio
    async def test_parallelism_is_bounded(self, fake_client):
        fake_client.delay = 0.01
        resolver = CaseResolver(fake_client, max_parallel=2)
        results = [make_result(f"t{i}", f"Case {i}") for i in range(6)]

        resolved, _ = await resolver.resolve_all(1, results, CaseMapping())

        assert len(resolved) == 6
        assert fake_client.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_connection_error_cancels_pending_resolutions(self, resolver, fake_client):
        fake_client.delay = 0.01
        fake_client.fail_once["get_cases"] = TestRailConnectionError("unreachable")
        results = [make_result(f"t{i}", f"Case {i}") for i in range(4)]

        with pytest.raises(TestRailConnectionError):
            await resolver.resolve_all(1, results, CaseMapping())
        await asyncio.sleep(0.05)

        assert fake_client.calls["add_case"] == 0
        assert fake_client.in_flight == 0
