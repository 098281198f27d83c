from __future__ import annotations
import pytest

from rpcop_core.classify import Code
from rpcop_core.errors import RpcError
from rpcop_core.executor import PagedQueryExecutor
from rpcop_core.paging import field_descriptor
from rpcop_core.settings import IDEMPOTENT, NON_IDEMPOTENT, default_service_settings
from rpcop_core.core import RetryEngine


class FakeGroupService:
    """ListGroups-style paging: page_token in, next_page_token out, "" means done."""

    def __init__(self, groups, flaky_pages=()):
        self.groups = list(groups)
        self.flaky = set(flaky_pages)
        self.requests = []

    async def list_groups(self, request):
        self.requests.append(dict(request))
        token = request.get("page_token") or "0"
        if token in self.flaky:
            self.flaky.discard(token)
            raise RpcError(Code.UNAVAILABLE, "backend restarting")
        start = int(token)
        size = request.get("page_size") or 2
        page = self.groups[start:start + size]
        nxt = start + size
        return {
            "group": page,
            "next_page_token": str(nxt) if nxt < len(self.groups) else "",
        }


LIST_GROUPS = field_descriptor(items_field="group")


@pytest.mark.asyncio
async def test_token_paging_walks_every_page():
    service = FakeGroupService([f"g{i}" for i in range(5)])
    results = await PagedQueryExecutor.open(
        {"name": "projects/p"}, LIST_GROUPS, service.list_groups
    )
    assert [g async for g in results] == ["g0", "g1", "g2", "g3", "g4"]
    assert [r.get("page_token", "") for r in service.requests] == ["", "2", "4"]
    assert all(r["name"] == "projects/p" for r in service.requests)
    # once exhausted the marker is the final next_page_token
    assert results.cursor_after == ""


@pytest.mark.asyncio
async def test_cursor_before_any_item_is_request_token():
    service = FakeGroupService([f"g{i}" for i in range(5)])
    results = await PagedQueryExecutor.open(
        {"name": "projects/p", "page_token": "2"}, LIST_GROUPS, service.list_groups
    )
    assert results.cursor_after == "2"
    assert await results.next() == "g2"
    assert results.cursor_after == "2"


@pytest.mark.asyncio
async def test_request_is_never_mutated():
    service = FakeGroupService(["a", "b", "c"])
    request = {"name": "projects/p"}
    results = await PagedQueryExecutor.open(request, LIST_GROUPS, service.list_groups, page_size=1)
    assert [g async for g in results] == ["a", "b", "c"]
    assert request == {"name": "projects/p"}
    assert [r["page_size"] for r in service.requests] == [1, 1, 1]


@pytest.mark.asyncio
async def test_settings_driven_listing_retries_idempotent_method():
    settings = default_service_settings(
        {"list_groups": IDEMPOTENT, "create_group": NON_IDEMPOTENT},
        descriptors={"list_groups": LIST_GROUPS},
    ).apply_to_all(initial_delay=0.001, max_delay=0.001)
    method = settings.method("list_groups")
    service = FakeGroupService([f"g{i}" for i in range(4)], flaky_pages={"2"})

    call = RetryEngine(method.policy).wrap(service.list_groups)
    results = await PagedQueryExecutor.open({"name": "projects/p"}, method.descriptor, call)
    assert [g async for g in results] == ["g0", "g1", "g2", "g3"]
    assert len(service.requests) == 3
