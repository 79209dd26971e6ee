"""Shared pytest fixtures for auction tests."""

import asyncio

import pytest

from auction_manager import AuctionManager
from broadcaster import Broadcaster
from config import AuctionSettings, BidIncrement


class RecordingBroadcaster(Broadcaster):
    """Keeps every emitted event in order."""

    def __init__(self):
        self.events = []

    def emit(self, event, payload=None):
        self.events.append((event, payload))

    def names(self):
        return [name for name, _ in self.events]

    def payloads(self, event):
        return [payload for name, payload in self.events if name == event]


ROSTER_ROWS = [
    {"Sl.No": "1", "Name": "Virat Kohli", "Role": "Batter"},
    {"Sl.No": "2", "Name": "Rohit Sharma", "Role": "Captain"},
    {"Sl.No": "3", "Name": "Jasprit Bumrah", "Role": "Bowler"},
    {"Sl.No": "4", "Name": "Ravindra Jadeja", "Role": "All-Rounder"},
    {"Sl.No": "5", "Name": "Rishabh Pant", "Role": "Wicket Keeper"},
    {"Sl.No": "6", "Name": "Shubman Gill", "Role": "Batsman"},
    {"Sl.No": "7", "Name": "MS Dhoni", "Role": "Captain / WK"},
    {"Sl.No": "8", "Name": "Mohammed Shami", "Role": "Bowler"},
    {"Sl.No": "9", "Name": "Hardik Pandya", "Role": "Allrounder"},
    {"Sl.No": "10", "Name": "Suryakumar Yadav", "Role": "Batter"},
]


@pytest.fixture
def run():
    """Run a coroutine to completion on a fresh event loop."""
    loop = asyncio.new_event_loop()
    yield loop.run_until_complete
    loop.close()


@pytest.fixture
def settings() -> AuctionSettings:
    return AuctionSettings(
        team_count=4,
        starting_budget=1000,
        max_players_per_team=5,
        base_price=10,
        bidding_increments=[BidIncrement(50, 5), BidIncrement(100, 10)],
    )


@pytest.fixture
def recorder() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def roster_rows():
    return [dict(row) for row in ROSTER_ROWS]


@pytest.fixture
def manager(run, settings, recorder, roster_rows) -> AuctionManager:
    """Manager with the sample roster loaded and the event log emptied."""
    mgr = AuctionManager(settings, recorder)
    run(mgr.upload_players(roster_rows, "players.csv"))
    recorder.events.clear()
    return mgr


def player_named(mgr: AuctionManager, name: str):
    player = mgr.store.find_player_by_name(name)
    assert player is not None, name
    return player


def sell_to(run, mgr: AuctionManager, name: str, team_id: int, bids: int = 1):
    """Open a lot, bid `bids` times for one team and sell."""
    player = player_named(mgr, name)
    run(mgr.start_bidding(player.id))
    for _ in range(bids):
        run(mgr.place_bid(team_id))
    run(mgr.sell_player())
    return player
