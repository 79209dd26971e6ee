# auction_manager.py
"""
Auction Manager Module
Runs the live auction: lots, bids, sales, undo, fast track and resets.
Every state change goes through one asyncio lock and is broadcast afterwards.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

# Get logger from main bot module
logger = logging.getLogger("AuctionBot.Manager")

from config import (
    ACTION_PLAYER_SOLD,
    CATEGORIES,
    CATEGORY_CAPTAIN,
    CATEGORY_OTHER,
    MAX_PLAYERS_PER_TEAM,
    MAX_TEAMS,
    MESSAGES,
    MIN_BASE_PRICE,
    MIN_PLAYERS_PER_TEAM,
    MIN_STARTING_BUDGET,
    MIN_TEAMS,
    PLAYER_ASSIGNED,
    PLAYER_AVAILABLE,
    PLAYER_RETAINED,
    PLAYER_SOLD,
    PLAYER_UNSOLD,
    STATUS_FAST_TRACK,
    STATUS_FINISHED,
    STATUS_RUNNING,
    STATUS_STOPPED,
    AuctionSettings,
    BidIncrement,
    get_bid_increment,
)
from broadcaster import (
    EVENT_AUCTION_CLEARED,
    EVENT_AUCTION_DATA,
    EVENT_AUCTION_FINISHED,
    EVENT_AUCTION_RESET,
    EVENT_AUCTION_STATUS_CHANGED,
    EVENT_BID_UNDONE,
    EVENT_BIDDING_CANCELLED,
    EVENT_CURRENT_BID_UPDATED,
    EVENT_FAST_TRACK_ENDED,
    EVENT_FAST_TRACK_STARTED,
    EVENT_FILE_UPLOADED,
    EVENT_PLAYER_RETAINED,
    EVENT_PLAYER_RETENTION_REMOVED,
    EVENT_PLAYER_SOLD,
    EVENT_PLAYER_UNSOLD,
    EVENT_PLAYERS_UPDATED,
    EVENT_SALE_UNDONE,
    EVENT_SETTINGS_UPDATED,
    EVENT_STATS_UPDATED,
    EVENT_TEAMS_UPDATED,
    Broadcaster,
    LogBroadcaster,
)
from store import (
    ActionLogEntry,
    AuctionStore,
    BidHistoryEntry,
    CurrentBid,
    Player,
    Team,
)
from utils import (
    NAME_COLUMNS,
    ROLE_COLUMNS,
    SERIAL_COLUMNS,
    pick_column,
    calculate_stats,
    determine_category,
    serialize_stats,
)


# ==================== ERRORS ====================


class AuctionError(Exception):
    """Base class for auction errors. The message is safe to show to users."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(AuctionError):
    status_code = 404


class InvalidState(AuctionError):
    """Operation not legal for the current auction, player or lot status."""


class InsufficientBudget(AuctionError):
    pass


class TeamFull(AuctionError):
    pass


class ValidationError(AuctionError):
    """Malformed settings or roster input."""


class InternalAuctionError(AuctionError):
    status_code = 500


@dataclass
class ActionResult:
    """Result of a committed auction operation"""

    message: str
    data: dict = field(default_factory=dict)


class AuctionManager:
    """
    Main auction management class. One instance owns one AuctionStore; every
    mutating coroutine holds the auction lock from validation to commit.
    """

    def __init__(
        self,
        settings: Optional[AuctionSettings] = None,
        broadcaster: Optional[Broadcaster] = None,
    ):
        self.store = AuctionStore((settings or AuctionSettings()).copy())
        self.broadcaster = broadcaster or LogBroadcaster()
        self._lock = asyncio.Lock()

    @property
    def settings(self) -> AuctionSettings:
        return self.store.settings

    @asynccontextmanager
    async def _transaction(self, action: str):
        """Hold the auction lock for one operation.

        AuctionError passes through untouched; anything else is logged and
        surfaced as InternalAuctionError.
        """
        async with self._lock:
            try:
                yield self.store
            except AuctionError as e:
                logger.info(f"Rejected {action}: {e.message}")
                raise
            except Exception as e:
                logger.error(f"Error {action}: {e}", exc_info=True)
                raise InternalAuctionError(f"Error {action}: {e}") from e

    # ==================== INTERNAL HELPERS ====================

    def _emit(self, event: str, payload=None):
        try:
            self.broadcaster.emit(event, payload)
        except Exception as e:
            logger.error(f"Broadcast of {event} failed: {e}")

    def _emit_players(self):
        self._emit(EVENT_PLAYERS_UPDATED, [p.to_dict() for p in self.store.players])

    def _emit_teams(self):
        self._emit(EVENT_TEAMS_UPDATED, [t.to_dict() for t in self.store.teams])

    def _refresh_stats(self):
        self.store.stats = calculate_stats(self.store.players)
        self._emit(EVENT_STATS_UPDATED, serialize_stats(self.store.stats))

    def _lot_payload(self) -> Optional[dict]:
        current = self.store.current_bid
        if current is None:
            return None
        player = self.store.get_player(current.player_id)
        return {
            "player_id": current.player_id,
            "player": player.to_dict() if player else None,
            "amount": current.current_amount,
            "team_id": current.bidding_team,
            "team": self.store.team_name(current.bidding_team),
        }

    def _emit_lot(self):
        self._emit(EVENT_CURRENT_BID_UPDATED, self._lot_payload())

    def _close_lot(self):
        """Drop the live lot and its bid history."""
        current = self.store.current_bid
        if current is not None:
            self.store.clear_bid_history(current.player_id)
        self.store.current_bid = None

    def _clear_stray_bids(self):
        for player in self.store.players:
            if player.status == PLAYER_AVAILABLE:
                player.current_bid = 0
                player.bidding_team = None

    def _require_roster(self):
        if not self.store.file_uploaded or not self.store.players:
            raise InvalidState("Please upload a player file first")

    def _require_lot(self, message: str = MESSAGES["no_active_bid"]) -> CurrentBid:
        if self.store.current_bid is None:
            raise InvalidState(message)
        return self.store.current_bid

    def _require_player(self, player_id: str) -> Player:
        player = self.store.get_player(player_id)
        if player is None:
            raise NotFound("Player not found")
        return player

    def _require_team(self, team_id):
        try:
            team = self.store.get_team(int(team_id))
        except (TypeError, ValueError):
            team = None
        if team is None:
            raise NotFound("Team not found")
        return team

    def _squad_count(self, team_id: int) -> int:
        return len(self.store.team_players(team_id, PLAYER_SOLD, PLAYER_ASSIGNED))

    # ==================== SETTINGS & ROSTER ====================

    async def update_settings(
        self,
        team_count: int,
        starting_budget: int,
        max_players_per_team: int,
        base_price: int,
        bidding_increments: Iterable,
        enable_retention: bool = False,
        retentions_per_team: int = 0,
    ) -> ActionResult:
        """
        Validate and replace the auction settings.
        A new team count applies from the next upload; a new starting budget
        from the next upload or reset.
        """
        async with self._transaction("saving settings") as store:
            if not team_count or not MIN_TEAMS <= team_count <= MAX_TEAMS:
                raise ValidationError(
                    f"Team count must be between {MIN_TEAMS} and {MAX_TEAMS}"
                )
            if not starting_budget or starting_budget < MIN_STARTING_BUDGET:
                raise ValidationError(
                    f"Starting budget must be at least ₹{MIN_STARTING_BUDGET}"
                )
            if (
                not max_players_per_team
                or not MIN_PLAYERS_PER_TEAM <= max_players_per_team <= MAX_PLAYERS_PER_TEAM
            ):
                raise ValidationError(
                    f"Max players per team must be between {MIN_PLAYERS_PER_TEAM} and {MAX_PLAYERS_PER_TEAM}"
                )
            if not base_price or base_price < MIN_BASE_PRICE:
                raise ValidationError(f"Base price must be at least ₹{MIN_BASE_PRICE}")

            rules = []
            for rule in bidding_increments or []:
                if isinstance(rule, BidIncrement):
                    rules.append(BidIncrement(rule.threshold, int(rule.increment)))
                elif isinstance(rule, dict):
                    rules.append(BidIncrement(rule["threshold"], int(rule["increment"])))
                else:
                    threshold, increment = rule
                    rules.append(BidIncrement(threshold, int(increment)))
            if not rules:
                raise ValidationError("Bidding increments are required")
            if any(r.increment <= 0 for r in rules):
                raise ValidationError("Bidding increments must be positive")
            rules.sort(key=lambda r: r.threshold)

            store.settings = AuctionSettings(
                team_count=int(team_count),
                starting_budget=int(starting_budget),
                max_players_per_team=int(max_players_per_team),
                base_price=int(base_price),
                bidding_increments=rules,
                enable_retention=bool(enable_retention),
                retentions_per_team=int(retentions_per_team or 0),
            )
            logger.info(f"Settings saved: {store.settings.to_dict()}")
            self._emit(EVENT_SETTINGS_UPDATED, store.settings.to_dict())
            return ActionResult(
                "Settings saved successfully", {"settings": store.settings.to_dict()}
            )

    async def upload_players(
        self, rows: List[Dict[str, str]], file_name: str = ""
    ) -> ActionResult:
        """
        Replace the roster with parsed file rows and recreate the teams.
        All previous players, teams, lots, histories and sales are dropped.
        """
        async with self._transaction("processing file") as store:
            if not rows:
                raise ValidationError("No data found in file")

            columns = {c.lower() for c in rows[0].keys()}
            if not any(c.lower() in columns for c in NAME_COLUMNS):
                raise ValidationError(
                    'No "Name" column found. Please ensure your file has a "Name" column'
                )

            players = []
            for row in rows:
                name = pick_column(row, NAME_COLUMNS)
                if not name:
                    continue
                role = pick_column(row, ROLE_COLUMNS)
                players.append(
                    Player(
                        id=str(uuid.uuid4()),
                        name=name,
                        role=role,
                        category=determine_category(role),
                        sl_no=pick_column(row, SERIAL_COLUMNS) or None,
                    )
                )

            if not players:
                raise ValidationError("No valid players found in file")

            # Captains are listed ahead of everyone else
            players.sort(key=lambda p: 0 if p.category == CATEGORY_CAPTAIN else 1)

            store.reset()
            store.players = players
            store.teams = self._build_teams(store.settings)
            store.file_uploaded = True
            store.file_name = file_name or None
            store.stats = calculate_stats(players)

            captain_count = sum(1 for p in players if p.category == CATEGORY_CAPTAIN)
            logger.info(
                f"Loaded {len(players)} players ({captain_count} captains) from {file_name or 'upload'}"
            )

            self._emit(
                EVENT_FILE_UPLOADED,
                {
                    "file_name": file_name,
                    "player_count": len(players),
                    "captain_count": captain_count,
                },
            )
            self._emit_players()
            self._emit_teams()
            self._emit(EVENT_AUCTION_STATUS_CHANGED, store.auction_status)
            self._emit_lot()
            self._emit(EVENT_STATS_UPDATED, serialize_stats(store.stats))
            return ActionResult(
                f"Successfully processed {len(players)} players",
                {
                    "player_count": len(players),
                    "captain_count": captain_count,
                    "team_count": len(store.teams),
                },
            )

    @staticmethod
    def _build_teams(settings: AuctionSettings):
        return [
            Team(id=i, name=f"Team {i}", budget=settings.starting_budget)
            for i in range(1, settings.team_count + 1)
        ]

    async def clear_auction(self) -> ActionResult:
        """Drop every player, team, lot, bid history and sale."""
        async with self._transaction("clearing auction") as store:
            store.reset()
            logger.info("Auction data cleared")
            self._emit(EVENT_AUCTION_CLEARED)
            self._emit_players()
            self._emit_teams()
            self._emit_lot()
            self._emit(EVENT_AUCTION_STATUS_CHANGED, store.auction_status)
            self._emit(EVENT_STATS_UPDATED, serialize_stats(calculate_stats([])))
            return ActionResult("Auction data cleared successfully")

    # ==================== AUCTION CONTROL ====================

    async def start_auction(self) -> ActionResult:
        async with self._transaction("starting auction") as store:
            if store.auction_status == STATUS_FINISHED:
                raise InvalidState("Auction is finished. Reset the auction to run it again")
            self._require_roster()

            available = [
                p
                for p in store.players
                if p.status == PLAYER_AVAILABLE and p.category != CATEGORY_CAPTAIN
            ]
            if not available:
                raise InvalidState("No players available for auction")

            store.auction_status = STATUS_RUNNING
            logger.info(f"Auction started with {len(available)} players available")
            self._emit(EVENT_AUCTION_STATUS_CHANGED, STATUS_RUNNING)
            return ActionResult(
                MESSAGES["auction_start"], {"available_players": len(available)}
            )

    async def stop_auction(self) -> ActionResult:
        async with self._transaction("stopping auction") as store:
            self._close_lot()
            self._clear_stray_bids()
            store.auction_status = STATUS_STOPPED
            logger.info("Auction stopped")
            self._emit(EVENT_AUCTION_STATUS_CHANGED, STATUS_STOPPED)
            self._emit_lot()
            self._emit_players()
            return ActionResult(MESSAGES["auction_stop"])

    async def finish_auction(self) -> ActionResult:
        async with self._transaction("finishing auction") as store:
            self._close_lot()
            self._clear_stray_bids()
            store.auction_status = STATUS_FINISHED
            logger.info("Auction finished")
            self._emit(EVENT_AUCTION_STATUS_CHANGED, STATUS_FINISHED)
            self._emit_lot()
            self._emit_players()
            self._emit(EVENT_AUCTION_FINISHED)
            return ActionResult(MESSAGES["auction_finish"])

    async def reset_auction(self) -> ActionResult:
        """
        Put every non-captain back on the block, restore budgets and drop
        the sale log and all bid histories. Captains stay with their teams.
        """
        async with self._transaction("resetting auction") as store:
            self._require_roster()

            for player in store.players:
                if player.category == CATEGORY_CAPTAIN:
                    player.final_bid = 0
                    player.current_bid = 0
                    player.bidding_team = None
                else:
                    player.status = PLAYER_AVAILABLE
                    player.team = None
                    player.final_bid = 0
                    player.current_bid = 0
                    player.bidding_team = None
                    player.retention_amount = 0

            for team in store.teams:
                team.budget = store.settings.starting_budget
                team.players = [team.captain] if team.captain else []

            store.current_bid = None
            store.clear_action_log()
            store.clear_all_bid_history()
            store.auction_status = STATUS_STOPPED

            logger.info("Auction reset")
            self._emit_players()
            self._emit_teams()
            self._emit_lot()
            self._emit(EVENT_AUCTION_STATUS_CHANGED, STATUS_STOPPED)
            self._refresh_stats()
            self._emit(EVENT_AUCTION_RESET)
            return ActionResult(MESSAGES["auction_reset"])

    # ==================== LOT LIFECYCLE ====================

    async def start_bidding(self, player_id: str) -> ActionResult:
        """Open a lot for a player at the base price with no bidder."""
        async with self._transaction("starting bidding") as store:
            if store.auction_status == STATUS_FINISHED:
                raise InvalidState("Auction is finished")

            player = self._require_player(player_id)
            if player.category == CATEGORY_CAPTAIN:
                raise InvalidState("Captains cannot be bid on")
            if player.status == PLAYER_RETAINED:
                raise InvalidState("Retained players cannot be bid on")
            if player.status != PLAYER_AVAILABLE:
                raise InvalidState("Player not available for bidding")
            if store.current_bid is not None:
                raise InvalidState("Another player is currently being bid on")

            base_price = store.settings.base_price
            store.current_bid = CurrentBid(player_id=player.id, current_amount=base_price)
            player.current_bid = base_price
            player.bidding_team = None
            store.clear_bid_history(player.id)

            logger.info(f"Bidding started for {player.name} at base price {base_price}")
            self._emit_lot()
            self._emit_players()
            return ActionResult(
                "Bidding started for player",
                {"player": player.to_dict(), "base_price": base_price},
            )

    async def place_bid(self, team_id: int) -> ActionResult:
        """
        Bid for the live lot. The first bid claims the base price; later
        bids add the increment for the current amount.
        """
        async with self._transaction("placing bid") as store:
            current = self._require_lot()
            try:
                team = store.get_team(int(team_id))
            except (TypeError, ValueError):
                team = None
            if team is None:
                raise InvalidState(MESSAGES["invalid_team"])

            first_bid = current.bidding_team is None
            if first_bid:
                new_amount = store.settings.base_price
            else:
                increment = get_bid_increment(
                    current.current_amount, store.settings.bidding_increments
                )
                new_amount = current.current_amount + increment

            if team.budget < new_amount:
                raise InsufficientBudget(MESSAGES["no_funds"])

            if not first_bid:
                store.push_bid_history(
                    current.player_id,
                    BidHistoryEntry(
                        team_id=current.bidding_team,
                        amount=current.current_amount,
                        team_name=store.team_name(current.bidding_team),
                    ),
                )

            current.current_amount = new_amount
            current.bidding_team = team.id
            player = store.get_player(current.player_id)
            player.current_bid = new_amount
            player.bidding_team = team.id

            logger.info(f"Bid placed: {team.name} {new_amount} for {player.name}")
            self._emit_lot()
            self._emit_players()
            return ActionResult(
                "Bid placed successfully",
                {
                    "current_bid": current.to_dict(),
                    "team": team.name,
                    "amount": new_amount,
                    "is_first_bid": first_bid,
                },
            )

    async def sell_player(self) -> ActionResult:
        async with self._transaction("selling player") as store:
            current = self._require_lot("No active bid to complete")
            if current.bidding_team is None:
                raise InvalidState("No active bid to complete")

            player = store.get_player(current.player_id)
            team = store.get_team(current.bidding_team)
            max_players = store.settings.max_players_per_team
            if self._squad_count(team.id) >= max_players:
                raise TeamFull(
                    f"Team {team.name} has reached maximum player limit ({max_players})"
                )
            amount = current.current_amount
            if team.budget < amount:
                raise InsufficientBudget(MESSAGES["no_funds"])

            store.add_action(
                ActionLogEntry(
                    type=ACTION_PLAYER_SOLD,
                    player_id=player.id,
                    player_name=player.name,
                    team_id=team.id,
                    team_name=team.name,
                    amount=amount,
                    previous_player_state={
                        "status": player.status,
                        "team": player.team,
                        "final_bid": player.final_bid,
                        "current_bid": player.current_bid,
                        "bidding_team": player.bidding_team,
                    },
                    previous_team_budget=team.budget,
                    previous_team_players=list(team.players),
                )
            )

            player.status = PLAYER_SOLD
            player.final_bid = amount
            player.team = team.id
            player.current_bid = 0
            player.bidding_team = None
            team.budget -= amount
            team.players.append(player.id)
            self._close_lot()

            logger.info(f"Player sold: {player.name} to {team.name} for {amount}")
            self._emit_lot()
            self._emit_players()
            self._emit_teams()
            self._refresh_stats()
            self._emit(
                EVENT_PLAYER_SOLD,
                {"player": player.to_dict(), "team": team.to_dict(), "final_bid": amount},
            )
            return ActionResult(
                "Player sold successfully",
                {"player": player.to_dict(), "team": team.to_dict()},
            )

    async def mark_unsold(self) -> ActionResult:
        async with self._transaction("marking player as unsold") as store:
            current = self._require_lot()
            player = store.get_player(current.player_id)
            player.status = PLAYER_UNSOLD
            player.current_bid = 0
            player.bidding_team = None
            self._close_lot()

            logger.info(f"Player marked as unsold: {player.name}")
            self._emit_lot()
            self._emit_players()
            self._refresh_stats()
            self._emit(EVENT_PLAYER_UNSOLD, {"player": player.to_dict()})
            return ActionResult("Player marked as unsold", {"player": player.to_dict()})

    async def cancel_bidding(self) -> ActionResult:
        """Abort the lot; the player stays eligible for a later lot."""
        async with self._transaction("cancelling bidding") as store:
            current = self._require_lot("No active bidding to cancel")
            player = self._require_player(current.player_id)
            player.status = PLAYER_AVAILABLE
            player.current_bid = 0
            player.bidding_team = None
            self._close_lot()

            logger.info(f"Bidding cancelled for {player.name}")
            self._emit_lot()
            self._emit_players()
            self._refresh_stats()
            self._emit(
                EVENT_BIDDING_CANCELLED,
                {"player": player.to_dict(), "message": f"Bidding cancelled for {player.name}"},
            )
            return ActionResult(
                f"Bidding cancelled for {player.name}. Player is now available for bidding again.",
                {"player": player.to_dict()},
            )

    async def undo_current_bid(self) -> ActionResult:
        """
        Step the live lot back one bid. With no history left the lot returns
        to the base price with no bidder; calling again is a no-op.
        """
        async with self._transaction("undoing bid") as store:
            current = self._require_lot("No active bid to undo")
            player = store.get_player(current.player_id)

            previous = store.pop_bid_history(current.player_id)
            if previous is not None:
                current.current_amount = previous.amount
                current.bidding_team = previous.team_id
                message = (
                    f"Bid reverted to {previous.team_name or store.team_name(previous.team_id)}"
                    f" at ₹{previous.amount}"
                )
            else:
                current.current_amount = store.settings.base_price
                current.bidding_team = None
                message = "Bid reverted to base price"

            player.current_bid = current.current_amount
            player.bidding_team = current.bidding_team

            logger.info(f"Undo bid for {player.name}: {message}")
            self._emit_lot()
            self._emit_players()
            self._emit(
                EVENT_BID_UNDONE,
                {
                    "player": player.name,
                    "reverted_to_team": store.team_name(current.bidding_team),
                    "reverted_to_amount": current.current_amount,
                    "message": message,
                },
            )
            return ActionResult(message, {"current_bid": current.to_dict()})

    async def undo_last_sale(self) -> ActionResult:
        """
        Reverse the most recent sale in the log, whichever lot it was.
        The refund and squad removal apply to the team as it is now, so
        later squad changes such as a retention survive.
        """
        async with self._transaction("undoing sale") as store:
            entry = store.find_last_sale()
            if entry is None:
                raise InvalidState(MESSAGES["no_sale"])

            player = self._require_player(entry.player_id)
            team = store.get_team(entry.team_id)
            if team is None or player.status != PLAYER_SOLD or player.team != team.id:
                raise InvalidState(
                    f"{entry.player_name} is no longer sold to {entry.team_name}"
                )

            previous = entry.previous_player_state
            player.status = previous["status"]
            player.team = previous["team"]
            player.final_bid = previous["final_bid"]
            player.current_bid = 0
            player.bidding_team = None
            team.budget += entry.amount
            team.players = [pid for pid in team.players if pid != player.id]
            store.remove_action(entry.id)

            logger.info(
                f"Sale undone: {entry.player_name} returned from {entry.team_name}, {entry.amount} refunded"
            )
            self._emit_players()
            self._emit_teams()
            self._refresh_stats()
            self._emit(
                EVENT_SALE_UNDONE,
                {"player": entry.player_name, "team": entry.team_name, "amount": entry.amount},
            )
            return ActionResult(
                f"Sale undone: {entry.player_name} returned from {entry.team_name}",
                {"player": player.to_dict(), "team": team.to_dict()},
            )

    # ==================== FAST TRACK ====================

    async def start_fast_track(self) -> ActionResult:
        """Re-open every unsold player for a second round."""
        async with self._transaction("starting fast track") as store:
            unsold = store.players_with_status(PLAYER_UNSOLD)
            if not unsold:
                raise InvalidState("No unsold players available for fast track auction")

            for player in unsold:
                player.status = PLAYER_AVAILABLE
                player.current_bid = 0
                player.final_bid = 0
                player.team = None
                player.bidding_team = None

            store.auction_status = STATUS_FAST_TRACK
            logger.info(f"Fast track started with {len(unsold)} players")
            self._emit_players()
            self._refresh_stats()
            self._emit(EVENT_AUCTION_STATUS_CHANGED, STATUS_FAST_TRACK)
            self._emit(
                EVENT_FAST_TRACK_STARTED, {"players": [p.to_dict() for p in unsold]}
            )
            return ActionResult(
                f"Fast track auction started with {len(unsold)} players",
                {"player_count": len(unsold)},
            )

    async def end_fast_track(self) -> ActionResult:
        async with self._transaction("ending fast track") as store:
            if store.auction_status != STATUS_FAST_TRACK:
                raise InvalidState("Fast track auction is not active")

            self._close_lot()
            self._clear_stray_bids()
            remaining = [
                p
                for p in store.players
                if p.status == PLAYER_AVAILABLE and p.category != CATEGORY_CAPTAIN
            ]
            next_status = STATUS_STOPPED if remaining else STATUS_FINISHED
            store.auction_status = next_status

            logger.info(f"Fast track ended, auction now {next_status}")
            self._emit_lot()
            self._emit_players()
            self._emit(EVENT_AUCTION_STATUS_CHANGED, next_status)
            self._emit(EVENT_FAST_TRACK_ENDED, {"next_status": next_status})
            return ActionResult(
                f"Fast track auction ended. Auction is now {next_status}",
                {"status": next_status, "remaining_players": len(remaining)},
            )

    # ==================== TEAMS ====================

    async def update_team_name(self, team_id: int, name: str) -> ActionResult:
        async with self._transaction("updating team") as store:
            if not name or not name.strip():
                raise ValidationError("Team name is required")
            team = self._require_team(team_id)
            old_name = team.name
            team.name = name.strip()
            logger.info(f"Team {team.id} renamed: {old_name} -> {team.name}")
            self._emit_teams()
            return ActionResult("Team updated successfully", {"team": team.to_dict()})

    async def update_team_names(self, names: Dict[int, str]) -> ActionResult:
        """Rename several teams at once. Unknown ids are skipped."""
        async with self._transaction("updating teams") as store:
            for team_id, name in names.items():
                if not name or not str(name).strip():
                    raise ValidationError("Each team must have an id and name")
            for team_id, name in names.items():
                team = store.get_team(int(team_id))
                if team is not None:
                    team.name = str(name).strip()
                    logger.info(f"Updated team {team.id}: {team.name}")
            self._emit_teams()
            return ActionResult(
                "Teams updated successfully",
                {"teams": [t.to_dict() for t in store.teams]},
            )

    async def reset_team(self, team_id: int) -> ActionResult:
        """Release every non-captain in the squad and restore the budget."""
        async with self._transaction("resetting team") as store:
            team = self._require_team(team_id)

            for player in store.players:
                if player.team == team.id and player.category != CATEGORY_CAPTAIN:
                    player.status = PLAYER_AVAILABLE
                    player.team = None
                    player.final_bid = 0
                    player.current_bid = 0
                    player.bidding_team = None
                    player.retention_amount = 0

            team.budget = store.settings.starting_budget
            team.players = [team.captain] if team.captain else []
            dropped = store.remove_team_actions(team.id)

            logger.info(f"Team reset: {team.name} ({dropped} sales dropped from undo log)")
            self._emit_teams()
            self._emit_players()
            self._refresh_stats()
            return ActionResult("Team reset successfully", {"team": team.to_dict()})

    def _team_members(self, team_id: int) -> List[Player]:
        return self.store.team_players(team_id, PLAYER_SOLD, PLAYER_ASSIGNED)

    @staticmethod
    def _category_counts(members: List[Player]) -> Dict[str, int]:
        counts = {c: 0 for c in CATEGORIES}
        for p in members:
            counts[p.category if p.category in counts else CATEGORY_OTHER] += 1
        return counts

    def get_team_stats(self, team_id: int) -> dict:
        team = self._require_team(team_id)
        members = self._team_members(team.id)
        bought = [p for p in members if p.category != CATEGORY_CAPTAIN]
        total_spent = sum(p.final_bid for p in bought)

        most_expensive = None
        cheapest = None
        for p in bought:
            if most_expensive is None or p.final_bid > most_expensive.final_bid:
                most_expensive = p
            if cheapest is None or p.final_bid < cheapest.final_bid:
                cheapest = p

        return {
            "team": team.to_dict(),
            "players": [p.to_dict() for p in members],
            "stats": {
                "total_players": len(members),
                "bought_players": len(bought),
                "total_spent": total_spent,
                "average_spent": round(total_spent / len(bought)) if bought else 0,
                "budget_remaining": team.budget,
                "budget_used": total_spent,
                "budget_percentage": (
                    round(total_spent / (total_spent + team.budget) * 100)
                    if team.budget > 0
                    else 0
                ),
                "players_by_category": self._category_counts(members),
                "most_expensive_player": most_expensive.to_dict() if most_expensive else None,
                "cheapest_player": cheapest.to_dict() if cheapest else None,
            },
        }

    def get_team_budget(self, team_id: int) -> dict:
        team = self._require_team(team_id)
        bought = [
            p
            for p in self.store.team_players(team.id, PLAYER_SOLD)
            if p.category != CATEGORY_CAPTAIN
        ]
        max_players = self.settings.max_players_per_team
        return {
            "team_id": team.id,
            "team_name": team.name,
            "budget_remaining": team.budget,
            "budget_spent": sum(p.final_bid for p in bought),
            "initial_budget": self.settings.starting_budget,
            "players_count": len(bought),
            "max_players": max_players,
            "can_buy_more": self._squad_count(team.id) < max_players,
        }

    def compare_teams(self) -> List[dict]:
        comparison = []
        for team in self.store.teams:
            members = self._team_members(team.id)
            bought = [p for p in members if p.category != CATEGORY_CAPTAIN]
            total_spent = sum(p.final_bid for p in bought)
            comparison.append(
                {
                    "id": team.id,
                    "name": team.name,
                    "total_players": len(members),
                    "bought_players": len(bought),
                    "total_spent": total_spent,
                    "budget_remaining": team.budget,
                    "average_player_cost": round(total_spent / len(bought)) if bought else 0,
                    "players_by_category": self._category_counts(members),
                }
            )
        return comparison

    # ==================== CAPTAINS ====================

    async def assign_captain(self, team_id: int, player_id: str) -> ActionResult:
        async with self._transaction("assigning captain") as store:
            team = self._require_team(team_id)
            captain = store.get_player(player_id)
            if captain is None or captain.category != CATEGORY_CAPTAIN:
                raise NotFound("Captain not found or invalid player category")
            if captain.team is not None and captain.team != team.id:
                raise InvalidState("Captain is already assigned to another team")
            if team.captain and team.captain != captain.id:
                raise InvalidState(f"{team.name} already has a captain")
            if (
                captain.id not in team.players
                and self._squad_count(team.id) >= store.settings.max_players_per_team
            ):
                raise TeamFull(
                    f"Team {team.name} has reached maximum player limit ({store.settings.max_players_per_team})"
                )

            captain.team = team.id
            captain.status = PLAYER_ASSIGNED
            captain.final_bid = 0
            team.captain = captain.id
            if captain.id not in team.players:
                team.players.append(captain.id)

            logger.info(f"Captain {captain.name} assigned to {team.name}")
            self._emit_teams()
            self._emit_players()
            return ActionResult(
                "Captain assigned successfully",
                {"team": team.to_dict(), "captain": captain.to_dict()},
            )

    async def unassign_captain(self, team_id: int) -> ActionResult:
        async with self._transaction("unassigning captain") as store:
            team = self._require_team(team_id)
            if not team.captain:
                raise InvalidState("No captain assigned to this team")

            captain = store.get_player(team.captain)
            if captain is not None:
                captain.team = None
                captain.status = PLAYER_AVAILABLE
                captain.final_bid = 0

            captain_id = team.captain
            team.captain = None
            team.players = [pid for pid in team.players if pid != captain_id]

            logger.info(f"Captain unassigned from {team.name}")
            self._emit_teams()
            self._emit_players()
            return ActionResult("Captain unassigned successfully", {"team": team.to_dict()})

    # ==================== RETENTION ====================

    async def assign_retention(
        self, team_id: int, player_id: str, retention_amount: int = 0
    ) -> ActionResult:
        """Attach a player to a team at a fixed price outside the bidding."""
        async with self._transaction("assigning retention") as store:
            settings = store.settings
            if not settings.enable_retention:
                raise InvalidState("Retention is not enabled for this auction")
            if retention_amount is None or retention_amount < 0:
                raise ValidationError("Retention amount must be ≥ ₹0")

            team = self._require_team(team_id)
            player = self._require_player(player_id)
            if player.category == CATEGORY_CAPTAIN:
                raise InvalidState("Captains cannot be retained players")
            if player.status == PLAYER_RETAINED:
                raise InvalidState("Player is already retained by another team")
            if player.status != PLAYER_AVAILABLE:
                raise InvalidState("Player not available for retention")
            if store.current_bid is not None and store.current_bid.player_id == player.id:
                raise InvalidState("Player is currently being bid on")

            current_retentions = len(store.team_players(team.id, PLAYER_RETAINED))
            if current_retentions >= settings.retentions_per_team:
                raise InvalidState(
                    f"Team has reached maximum retention limit ({settings.retentions_per_team} players)"
                )
            amount = int(retention_amount)
            if team.budget < amount:
                raise InsufficientBudget("Insufficient team budget for this retention amount")

            player.team = team.id
            player.status = PLAYER_RETAINED
            player.retention_amount = amount
            player.final_bid = amount
            team.budget -= amount
            if player.id not in team.players:
                team.players.append(player.id)

            logger.info(f"{player.name} retained by {team.name} for {amount}")
            self._emit_teams()
            self._emit_players()
            self._emit(
                EVENT_PLAYER_RETAINED,
                {"player": player.to_dict(), "team": team.to_dict(), "retention_amount": amount},
            )
            return ActionResult(
                f"{player.name} retained by {team.name} for ₹{amount}",
                {"player": player.to_dict(), "team": team.to_dict()},
            )

    async def unassign_retention(self, player_id: str) -> ActionResult:
        async with self._transaction("removing retention") as store:
            player = self._require_player(player_id)
            if player.status != PLAYER_RETAINED:
                raise InvalidState("Player is not currently retained")

            team = store.get_team(player.team) if player.team is not None else None
            refunded = player.retention_amount
            if team is not None:
                team.budget += refunded
                team.players = [pid for pid in team.players if pid != player.id]

            player.team = None
            player.status = PLAYER_AVAILABLE
            player.retention_amount = 0
            player.final_bid = 0

            logger.info(f"Retention removed for {player.name}, {refunded} refunded")
            self._emit_teams()
            self._emit_players()
            self._emit(
                EVENT_PLAYER_RETENTION_REMOVED,
                {
                    "player": player.to_dict(),
                    "team": team.to_dict() if team else None,
                    "refunded_amount": refunded,
                },
            )
            return ActionResult(
                f"{player.name} retention removed, ₹{refunded} refunded to team",
                {"player": player.to_dict()},
            )

    # ==================== VIEWS ====================

    def get_current_bid(self) -> Optional[CurrentBid]:
        return self.store.current_bid

    def find_player(self, query: str) -> Optional[Player]:
        """Look a player up by id, then by name."""
        return self.store.get_player(query) or self.store.find_player_by_name(query)

    def find_team(self, query) -> Optional[int]:
        """Resolve a team id or name to a team id."""
        value = str(query).strip()
        if value.isdigit():
            team = self.store.get_team(int(value))
            return team.id if team else None
        for team in self.store.teams:
            if team.name.lower() == value.lower():
                return team.id
        return None

    def get_action_history(self, limit: int = 20) -> List[dict]:
        """Recent sales, newest first."""
        entries = list(reversed(self.store.action_log))[:limit]
        return [
            {
                "id": e.id,
                "type": e.type,
                "player_name": e.player_name,
                "team_name": e.team_name,
                "amount": e.amount,
                "timestamp": e.timestamp,
            }
            for e in entries
        ]

    def get_stats(self) -> dict:
        self.store.stats = calculate_stats(self.store.players)
        return self.store.stats

    def get_auction_data(self) -> dict:
        data = self.store.snapshot()
        data["stats"] = serialize_stats(self.get_stats())
        return data

    def publish_snapshot(self):
        """Push the full state to (re)connecting viewers."""
        self._emit(EVENT_AUCTION_DATA, self.get_auction_data())
