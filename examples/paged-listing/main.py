import asyncio
import logging
import random

from rpcop_core import PagedQueryExecutor, RetryEngine, RpcError, Code, field_descriptor
from rpcop_core.settings import IDEMPOTENT, NON_IDEMPOTENT, default_service_settings

logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

GROUPS = [{"name": f"projects/demo/groups/{i}", "display_name": f"group-{i}"} for i in range(23)]


async def list_groups(request):
    """In-memory stand-in for a ListGroups RPC that is unavailable now and then."""
    if random.random() < 0.3:
        raise RpcError(Code.UNAVAILABLE, "backend restarting")
    start = int(request.get("page_token") or 0)
    size = request.get("page_size") or 10
    nxt = start + size
    return {
        "group": GROUPS[start:nxt],
        "next_page_token": str(nxt) if nxt < len(GROUPS) else "",
    }


async def main():
    settings = default_service_settings(
        {"list_groups": IDEMPOTENT, "create_group": NON_IDEMPOTENT},
        descriptors={"list_groups": field_descriptor(items_field="group")},
    ).apply_to_all(initial_delay=0.05, max_delay=0.2, total_timeout=5.0)

    method = settings.method("list_groups")
    call = RetryEngine(method.policy).wrap(list_groups)

    results = await PagedQueryExecutor.open(
        {"name": "projects/demo"}, method.descriptor, call, page_size=5
    )
    async for group in results:
        print(group["display_name"], "resume at:", repr(results.cursor_after))
    print(f"{results.num_results} groups over {results.page_number} pages")


if __name__ == "__main__":
    asyncio.run(main())
