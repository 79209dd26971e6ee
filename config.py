"""
Configuration for Cricket Auction Bot
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import List, Optional

logger = logging.getLogger("AuctionBot.Config")

# Bot token is loaded from environment variable DISCORD_TOKEN (put it in .env)
BOT_TOKEN = os.getenv("DISCORD_TOKEN", "")
# BOT ADMINS (superusers of the bot). Can be set as a comma-separated env var
# Example .env:
#   BOT_ADMINS="123456789012345678,987654321098765432"

_raw_bot_admins = os.getenv("BOT_ADMINS", "").strip()
if _raw_bot_admins:
    BOT_ADMINS = []
    for part in _raw_bot_admins.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            BOT_ADMINS.append(int(part))
        except ValueError:
            # skip invalid entries (non-numeric)
            pass
else:
    BOT_ADMINS = []

# Channel where lot announcements, sales and stats are broadcast (0 = unset,
# use /setauctionchannel)
try:
    AUCTION_CHANNEL_ID = int(os.getenv("AUCTION_CHANNEL_ID", "0") or 0)
except ValueError:
    AUCTION_CHANNEL_ID = 0

# Spreadsheet written by /export
AUCTION_EXPORT_FILE = os.getenv("AUCTION_EXPORT_FILE", "auction_results.xlsx")

# Auction statuses
STATUS_STOPPED = "stopped"
STATUS_RUNNING = "running"
STATUS_FAST_TRACK = "fast-track"
STATUS_FINISHED = "finished"

# Player statuses
PLAYER_AVAILABLE = "available"
PLAYER_SOLD = "sold"
PLAYER_UNSOLD = "unsold"
PLAYER_RETAINED = "retained"
PLAYER_ASSIGNED = "assigned"

# Player categories
CATEGORY_CAPTAIN = "captain"
CATEGORY_BATTER = "batter"
CATEGORY_BOWLER = "bowler"
CATEGORY_ALLROUNDER = "allrounder"
CATEGORY_WICKET_KEEPER = "wicket-keeper"
CATEGORY_OTHER = "other"

CATEGORIES = [
    CATEGORY_CAPTAIN,
    CATEGORY_BATTER,
    CATEGORY_BOWLER,
    CATEGORY_ALLROUNDER,
    CATEGORY_WICKET_KEEPER,
    CATEGORY_OTHER,
]

# Action log
ACTION_PLAYER_SOLD = "PLAYER_SOLD"
MAX_ACTION_HISTORY = 50

# Settings limits (checked when an admin saves settings)
MIN_TEAMS = 2
MAX_TEAMS = 16
MIN_STARTING_BUDGET = 100
MIN_PLAYERS_PER_TEAM = 5
MAX_PLAYERS_PER_TEAM = 25
MIN_BASE_PRICE = 5

# Increment used when no rules are configured
DEFAULT_BID_INCREMENT = 5


@dataclass
class BidIncrement:
    """Bids below `threshold` go up by `increment`."""

    threshold: float
    increment: int


@dataclass
class AuctionSettings:
    team_count: int = 4
    starting_budget: int = 1000
    max_players_per_team: int = 15
    base_price: int = 10
    bidding_increments: List[BidIncrement] = field(
        default_factory=lambda: [
            BidIncrement(50, 5),
            BidIncrement(100, 10),
            BidIncrement(200, 20),
        ]
    )
    enable_retention: bool = False
    retentions_per_team: int = 0

    def copy(self) -> "AuctionSettings":
        return replace(
            self,
            bidding_increments=[
                BidIncrement(r.threshold, r.increment) for r in self.bidding_increments
            ],
        )

    def to_dict(self) -> dict:
        return {
            "team_count": self.team_count,
            "starting_budget": self.starting_budget,
            "max_players_per_team": self.max_players_per_team,
            "base_price": self.base_price,
            "bidding_increments": [
                {"threshold": r.threshold, "increment": r.increment}
                for r in self.bidding_increments
            ],
            "enable_retention": self.enable_retention,
            "retentions_per_team": self.retentions_per_team,
        }


DEFAULT_SETTINGS = AuctionSettings()


# Bid Increment Rules
def get_bid_increment(
    current_bid: int, rules: Optional[List[BidIncrement]] = None
) -> int:
    """Calculate the next bid increment based on current bid amount.

    Rules are read in ascending threshold order; the first rule whose
    threshold is above the current bid wins. Past the last threshold the
    last rule's increment applies.
    """
    if not rules:
        return DEFAULT_BID_INCREMENT

    for rule in rules:
        if current_bid < rule.threshold:
            return rule.increment

    return rules[-1].increment


def parse_bid_increments(raw: str) -> List[BidIncrement]:
    """Parse "50:5,100:10,inf:20" into sorted BidIncrement rules.

    Raises ValueError on a malformed entry.
    """
    rules = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if ":" not in part:
            raise ValueError(f"Bad increment rule '{part}' (expected threshold:increment)")
        threshold_str, increment_str = part.split(":", 1)
        threshold = float(threshold_str.strip())
        if threshold.is_integer():
            threshold = int(threshold)
        increment = int(increment_str.strip())
        if increment <= 0:
            raise ValueError(f"Increment must be positive in rule '{part}'")
        rules.append(BidIncrement(threshold, increment))
    rules.sort(key=lambda r: r.threshold)
    return rules


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_settings_from_env() -> AuctionSettings:
    """Build the starting AuctionSettings from AUCTION_* environment variables."""
    defaults = DEFAULT_SETTINGS
    increments = defaults.copy().bidding_increments

    raw_increments = os.getenv("AUCTION_BID_INCREMENTS", "").strip()
    if raw_increments:
        try:
            parsed = parse_bid_increments(raw_increments)
            if parsed:
                increments = parsed
        except ValueError as e:
            logger.warning(f"Invalid AUCTION_BID_INCREMENTS: {e}. Using defaults.")

    return AuctionSettings(
        team_count=_env_int("AUCTION_TEAM_COUNT", defaults.team_count),
        starting_budget=_env_int("AUCTION_STARTING_BUDGET", defaults.starting_budget),
        max_players_per_team=_env_int(
            "AUCTION_MAX_PLAYERS", defaults.max_players_per_team
        ),
        base_price=_env_int("AUCTION_BASE_PRICE", defaults.base_price),
        bidding_increments=increments,
        enable_retention=_env_bool("AUCTION_ENABLE_RETENTION", defaults.enable_retention),
        retentions_per_team=_env_int(
            "AUCTION_RETENTIONS_PER_TEAM", defaults.retentions_per_team
        ),
    )


# Messages
MESSAGES = {
    "auction_start": "Auction has started!",
    "auction_stop": "Auction has been stopped.",
    "auction_finish": "Auction completed! All players have been processed.",
    "auction_reset": "Auction reset. All players are available for bidding again.",
    "no_funds": "Insufficient budget",
    "invalid_team": "Invalid team",
    "no_active_bid": "No active bidding",
    "no_sale": "No recent sale to undo",
}
