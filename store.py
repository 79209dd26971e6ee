# store.py
"""
Store Module - in-memory auction state
Holds the roster, teams, the live lot, per-player bid history and the
sale action log. Nothing here is persisted; a restart starts empty.
"""

import logging
import time
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Deque, Dict, List, Optional

from config import (
    ACTION_PLAYER_SOLD,
    MAX_ACTION_HISTORY,
    PLAYER_AVAILABLE,
    STATUS_STOPPED,
    AuctionSettings,
)

logger = logging.getLogger("AuctionBot.Store")


@dataclass
class Player:
    id: str
    name: str
    role: str = ""
    category: str = "other"
    sl_no: Optional[str] = None
    status: str = PLAYER_AVAILABLE
    current_bid: int = 0
    final_bid: int = 0
    team: Optional[int] = None
    bidding_team: Optional[int] = None
    retention_amount: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Team:
    id: int
    name: str
    budget: int
    players: List[str] = field(default_factory=list)
    captain: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CurrentBid:
    """The live lot. bidding_team is None until the first bid lands."""

    player_id: str
    current_amount: int
    bidding_team: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BidHistoryEntry:
    team_id: int
    amount: int
    team_name: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ActionLogEntry:
    type: str
    player_id: str
    player_name: str
    team_id: int
    team_name: str
    amount: int
    previous_player_state: dict
    previous_team_budget: int
    previous_team_players: List[str]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return asdict(self)


class AuctionStore:
    """Process-local state for one auction"""

    def __init__(self, settings: AuctionSettings):
        self.settings = settings
        self.players: List[Player] = []
        self.teams: List[Team] = []
        self.current_bid: Optional[CurrentBid] = None
        self.auction_status: str = STATUS_STOPPED
        self.file_uploaded = False
        self.file_name: Optional[str] = None
        self.stats: dict = {}
        self.action_log: Deque[ActionLogEntry] = deque(maxlen=MAX_ACTION_HISTORY)
        self._bid_history: Dict[str, List[BidHistoryEntry]] = {}

    # ==================== RESET ====================

    def reset(self):
        """Drop roster, teams, lot, histories and the action log."""
        self.players = []
        self.teams = []
        self.current_bid = None
        self.auction_status = STATUS_STOPPED
        self.file_uploaded = False
        self.file_name = None
        self.stats = {}
        self.action_log.clear()
        self._bid_history = {}

    # ==================== LOOKUPS ====================

    def get_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def find_player_by_name(self, name: str) -> Optional[Player]:
        """Exact (case-insensitive) match first, then a unique substring match."""
        query = name.strip().lower()
        if not query:
            return None
        for player in self.players:
            if player.name.lower() == query:
                return player
        matches = [p for p in self.players if query in p.name.lower()]
        if len(matches) == 1:
            return matches[0]
        return None

    def get_team(self, team_id: int) -> Optional[Team]:
        for team in self.teams:
            if team.id == team_id:
                return team
        return None

    def team_name(self, team_id: Optional[int]) -> Optional[str]:
        team = self.get_team(team_id) if team_id is not None else None
        return team.name if team else None

    def players_with_status(self, *statuses: str) -> List[Player]:
        return [p for p in self.players if p.status in statuses]

    def team_players(self, team_id: int, *statuses: str) -> List[Player]:
        return [p for p in self.players if p.team == team_id and p.status in statuses]

    # ==================== PER-PLAYER BID HISTORY ====================

    def push_bid_history(self, player_id: str, entry: BidHistoryEntry):
        self._bid_history.setdefault(player_id, []).append(entry)
        logger.debug(f"Bid history push for {player_id}: {entry}")

    def pop_bid_history(self, player_id: str) -> Optional[BidHistoryEntry]:
        history = self._bid_history.get(player_id)
        if history:
            return history.pop()
        return None

    def get_bid_history(self, player_id: str) -> List[BidHistoryEntry]:
        return list(self._bid_history.get(player_id, []))

    def clear_bid_history(self, player_id: str):
        self._bid_history[player_id] = []

    def clear_all_bid_history(self):
        self._bid_history = {}

    # ==================== ACTION LOG ====================

    def add_action(self, entry: ActionLogEntry):
        # deque(maxlen) drops the oldest entry once full
        self.action_log.append(entry)
        logger.info(f"Action recorded: {entry.type} {entry.player_name}")

    def find_last_sale(self) -> Optional[ActionLogEntry]:
        for entry in reversed(self.action_log):
            if entry.type == ACTION_PLAYER_SOLD:
                return entry
        return None

    def remove_action(self, action_id: str) -> Optional[ActionLogEntry]:
        for entry in self.action_log:
            if entry.id == action_id:
                self.action_log.remove(entry)
                return entry
        return None

    def remove_team_actions(self, team_id: int) -> int:
        """Drop every logged action for a team. Returns how many were dropped."""
        kept = [e for e in self.action_log if e.team_id != team_id]
        dropped = len(self.action_log) - len(kept)
        self.action_log.clear()
        self.action_log.extend(kept)
        return dropped

    def clear_action_log(self):
        self.action_log.clear()

    # ==================== SNAPSHOT ====================

    def snapshot(self) -> dict:
        return {
            "players": [p.to_dict() for p in self.players],
            "teams": [t.to_dict() for t in self.teams],
            "current_bid": self.current_bid.to_dict() if self.current_bid else None,
            "auction_status": self.auction_status,
            "file_uploaded": self.file_uploaded,
            "file_name": self.file_name,
            "settings": self.settings.to_dict(),
        }
