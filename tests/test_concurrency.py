import asyncio
import threading

import aiohttp


async def hit(url, count):
    async with aiohttp.ClientSession() as session:

        async def one():
            async with session.get(url) as resp:
                return resp.status, await resp.text()

        return await asyncio.gather(*(one() for _ in range(count)))


def test_budget_of_one_admits_a_single_concurrent_request(htmock, htmock_reporter):
    htmock.mock("/race", "winner").once()

    results = asyncio.run(hit(htmock.url() + "/race", 20))

    assert results.count((200, "winner")) == 1
    assert results.count((404, "/race not found")) == 19
    htmock.assert_call_count(htmock_reporter, "GET", "/race", 1)
    assert htmock.registry.unmatched() == {"GET /race": 19}


def test_callback_sequence_is_consumed_once_per_call(htmock):
    seen = []
    lock = threading.Lock()

    def make(status):
        def callback(request):
            with lock:
                seen.append(status)
            return status
        return callback

    statuses = [410 + i for i in range(10)]
    htmock.mock("/seq", "ok", *(make(s) for s in statuses))

    results = asyncio.run(hit(htmock.url() + "/seq", 15))

    assert sorted(status for status, _ in results if status != 404) == statuses
    assert sorted(seen) == statuses
    assert sum(1 for status, _ in results if status == 404) == 5


def test_times_budget_under_load(htmock, htmock_reporter):
    entry = htmock.mock("/burst", "ok").times(7)
    fallback = htmock.mock("/burst", "late", lambda r: 429)

    results = asyncio.run(hit(htmock.url() + "/burst", 12))

    assert results.count((200, "ok")) == 7
    assert results.count((429, "late")) == 1
    assert results.count((404, "/burst not found")) == 4
    entry.assert_call_count(htmock_reporter, 7)
    fallback.assert_call_count(htmock_reporter, 1)
