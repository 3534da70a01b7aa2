import pytest

from deadwatch.ingestion.cycle import IngestionCycle
from deadwatch.stats.aggregator import StatAggregator

from fakes import (
    FakeClock,
    FakeCursorStore,
    FakeKillRecords,
    FakeNotifier,
    FakePlayerStore,
    FakeTransport,
    make_server,
)


@pytest.fixture
def server():
    return make_server()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def cursor_store():
    return FakeCursorStore()


@pytest.fixture
def player_store():
    return FakePlayerStore()


@pytest.fixture
def kill_records():
    return FakeKillRecords()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def cycle(transport, cursor_store, player_store, kill_records, notifier, clock):
    return IngestionCycle(
        transport=transport,
        cursor_store=cursor_store,
        aggregator=StatAggregator(player_store),
        kill_records=kill_records,
        notifier=notifier,
        clock=clock,
    )
