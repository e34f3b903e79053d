import pytest

from cloudledger.shared.adapters.pagination import Page, fetch_all
from cloudledger.shared.core.exceptions import ExternalAPIError, PaginationError, is_transient


class LoopingSource:
    name = "looping"
    short_page_is_last = False

    async def list_page(self, scope, cursor, page_size):
        return Page(items=[{"id": cursor or "first"}], next_cursor="same")


class EndlessSource:
    name = "endless"
    short_page_is_last = False

    async def list_page(self, scope, cursor, page_size):
        n = int(cursor or 0)
        return Page(items=[{"id": n}], next_cursor=str(n + 1))


class ShortPageSource:
    name = "short"
    short_page_is_last = True

    def __init__(self):
        self.calls = 0

    async def list_page(self, scope, cursor, page_size):
        self.calls += 1
        return Page(items=[{"id": 1}], next_cursor="more")


async def test_fetch_all_concatenates_pages_in_order(fake_source):
    source = fake_source([[{"id": 1}, {"id": 2}], [{"id": 3}], [{"id": 4}]])
    heartbeats = []

    items = await fetch_all(source, None, page_size=2, heartbeat=lambda: heartbeats.append(1))

    assert [item["id"] for item in items] == [1, 2, 3, 4]
    assert [cursor for _, cursor, _ in source.calls] == [None, "1", "2"]
    assert len(heartbeats) == 3


async def test_fetch_all_empty_collection_returns_empty_list(fake_source):
    assert await fetch_all(fake_source([]), None, page_size=10) == []


async def test_fetch_all_passes_scope(fake_source):
    source = fake_source({"proj-a": [[{"id": "a"}]], "proj-b": [[{"id": "b"}]]})
    assert await fetch_all(source, "proj-b", page_size=10) == [{"id": "b"}]


async def test_fetch_all_stops_on_empty_page_even_with_cursor():
    class EmptyWithCursor:
        name = "empty"
        short_page_is_last = False

        async def list_page(self, scope, cursor, page_size):
            return Page(items=[], next_cursor="next")

    assert await fetch_all(EmptyWithCursor(), None, page_size=10) == []


async def test_fetch_all_short_page_ends_when_source_opts_in():
    source = ShortPageSource()
    items = await fetch_all(source, None, page_size=10)
    assert items == [{"id": 1}]
    assert source.calls == 1


async def test_repeated_cursor_raises_non_retryable():
    with pytest.raises(PaginationError, match="repeated page cursor") as exc_info:
        await fetch_all(LoopingSource(), None, page_size=1)
    assert not is_transient(exc_info.value)


async def test_page_cap_raises_instead_of_truncating():
    with pytest.raises(PaginationError, match="exceeded 5 pages") as exc_info:
        await fetch_all(EndlessSource(), None, page_size=1, max_pages=5)
    assert not is_transient(exc_info.value)
    assert exc_info.value.details["pages"] == 5


async def test_source_errors_propagate_without_partial_results():
    class FailingSecondPage:
        name = "failing"
        short_page_is_last = False

        async def list_page(self, scope, cursor, page_size):
            if cursor is None:
                return Page(items=[{"id": 1}], next_cursor="2")
            raise ExternalAPIError("503")

    with pytest.raises(ExternalAPIError, match="503"):
        await fetch_all(FailingSecondPage(), None, page_size=1)


@pytest.mark.parametrize("page_size,max_pages", [(0, None), (10, 0)])
async def test_invalid_arguments(fake_source, page_size, max_pages):
    with pytest.raises(ValueError):
        await fetch_all(fake_source([]), None, page_size=page_size, max_pages=max_pages)
