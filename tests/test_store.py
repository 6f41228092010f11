import asyncio

import pytest

from livegrid.epg.errors import FatalLoadFailure, LoadFailure
from livegrid.epg.models import Program
from livegrid.epg.store import ChannelStore, group_by_channel
from livegrid.epg.timeline import GuideWindow

from fakes import FakeServer, at, hourly_schedule, make_channel, make_program


def _setup(n_channels: int = 3, batch_size: int = 2):
    channels = [make_channel(i) for i in range(1, n_channels + 1)]
    server = FakeServer(channels, hourly_schedule(channels, at(17), 12))
    store = ChannelStore(server, batch_size=batch_size)
    window = GuideWindow(start=at(17), hours_displayed=6)
    return server, store, window


def test_group_by_channel_sorts_by_start() -> None:
    late = make_program("b", "ch1", at(19))
    early = make_program("a", "ch1", at(18))
    other = make_program("c", "ch2", at(18))

    grouped = group_by_channel([late, other, early])

    assert [p.id for p in grouped["ch1"]] == ["a", "b"]
    assert [p.id for p in grouped["ch2"]] == ["c"]


def test_batches_advance_until_a_short_batch() -> None:
    server, store, window = _setup()

    first = asyncio.run(store.load_channel_batch(window))
    assert [ch.id for ch in first] == ["ch1", "ch2"]
    assert store.next_index == 2
    assert store.more_available is True
    assert len(store.programs_for("ch1")) == 6

    second = asyncio.run(store.load_channel_batch(window))
    assert [ch.id for ch in second] == ["ch3"]
    assert store.more_available is False

    assert asyncio.run(store.load_channel_batch(window)) == []
    assert server.count("get_channels") == 2
    assert store.loading is False


def test_programs_are_requested_for_the_window() -> None:
    server, store, window = _setup()

    asyncio.run(store.load_channel_batch(window))

    name, ids, start, end = next(call for call in server.calls if call[0] == "get_programs")
    assert ids == ("ch1", "ch2")
    assert (start, end) == (window.start, window.end)


def test_second_load_while_loading_is_a_no_op() -> None:
    server, store, window = _setup()

    async def main():
        server.gate = asyncio.Event()
        first = asyncio.create_task(store.load_channel_batch(window))
        await asyncio.sleep(0)
        assert store.loading is True
        second = await store.load_channel_batch(window)
        server.gate.set()
        return await first, second

    first, second = asyncio.run(main())

    assert len(first) == 2
    assert second == []
    assert server.count("get_channels") == 1


def test_response_after_reset_is_discarded() -> None:
    server, store, window = _setup()

    async def main():
        server.gate = asyncio.Event()
        task = asyncio.create_task(store.load_channel_batch(window))
        await asyncio.sleep(0)
        store.reset()
        server.gate.set()
        return await task

    assert asyncio.run(main()) == []
    assert store.channels == []
    assert store.next_index == 0
    assert store.loading is False
    assert store.generation == 1


def test_first_batch_failure_is_fatal() -> None:
    server, store, window = _setup()
    server.fail = {"get_channels"}

    with pytest.raises(FatalLoadFailure):
        asyncio.run(store.load_channel_batch(window))

    assert store.more_available is False
    assert store.loading is False


def test_later_batch_failure_is_not_fatal() -> None:
    server, store, window = _setup()
    asyncio.run(store.load_channel_batch(window))
    server.fail = {"get_programs"}

    with pytest.raises(LoadFailure) as info:
        asyncio.run(store.load_channel_batch(window))

    assert not isinstance(info.value, FatalLoadFailure)
    assert store.more_available is False
    assert [ch.id for ch in store.channels] == ["ch1", "ch2"]


def test_favorites_only_is_passed_to_the_server() -> None:
    channels = [make_channel(1), make_channel(2, favorite=True)]
    server = FakeServer(channels)
    store = ChannelStore(server, favorites_only=True)

    loaded = asyncio.run(store.load_channel_batch(GuideWindow(start=at(17))))

    assert [ch.id for ch in loaded] == ["ch2"]
    assert server.calls[0] == ("get_channels", 0, 50, True)


def test_extend_programs_skips_programs_already_held() -> None:
    server, store, window = _setup(n_channels=2)
    # Spans the old right edge, so both fetches return it.
    spanning = make_program("long", "ch1", at(22, 30), 90)
    server.programs.append(spanning)
    asyncio.run(store.load_channel_batch(window))
    before = len(store.programs_for("ch1"))

    old_end, new_end = window.extend(3)
    added = asyncio.run(store.extend_programs(old_end, new_end))

    ids = [p.id for p in store.programs_for("ch1")]
    assert len(ids) == len(set(ids))
    assert "long" not in [p.id for p in added["ch1"]]
    assert len(store.programs_for("ch1")) == before + len(added["ch1"])
    assert all(isinstance(p, Program) for p in added["ch2"])


def test_extend_programs_failure_raises_load_failure() -> None:
    server, store, window = _setup(n_channels=2)
    asyncio.run(store.load_channel_batch(window))
    server.fail = {"get_programs"}

    with pytest.raises(LoadFailure):
        asyncio.run(store.extend_programs(window.end, window.end))

    assert store.loading is False


def test_set_favorite_and_lookup() -> None:
    server, store, window = _setup()
    asyncio.run(store.load_channel_batch(window))

    store.set_favorite("ch2", True)

    assert store.channel("ch2").favorite is True
    assert store.channel("missing") is None
