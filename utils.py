"""
Utility functions for Cricket Auction Bot
Contains helper functions for formatting, stats, file operations, etc.
"""

import csv
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill

from config import (
    CATEGORIES,
    CATEGORY_ALLROUNDER,
    CATEGORY_BATTER,
    CATEGORY_BOWLER,
    CATEGORY_CAPTAIN,
    CATEGORY_OTHER,
    CATEGORY_WICKET_KEEPER,
    PLAYER_ASSIGNED,
    PLAYER_AVAILABLE,
    PLAYER_RETAINED,
    PLAYER_SOLD,
    PLAYER_UNSOLD,
)

# Set up module-level logger
logger = logging.getLogger(__name__)

# Accepted roster column headers, in lookup order
NAME_COLUMNS = ("Name", "Player Name", "PlayerName")
ROLE_COLUMNS = ("Role/Category", "Role", "Category")
SERIAL_COLUMNS = ("Sl.No", "SlNo", "Serial")


def sanitize_csv_value(value: str) -> str:
    """Sanitize CSV values to prevent formula injection attacks.

    Excel/Sheets can execute formulas starting with =, +, -, @, tab, or carriage return.
    This function prefixes such values with a single quote to prevent execution.
    """
    if not value:
        return value

    dangerous_chars = ("=", "+", "-", "@", "\t", "\r")
    if value.startswith(dangerous_chars):
        return f"'{value}"
    return value


def format_amount(num: Optional[float]) -> str:
    """Format a budget/bid amount as rupees, e.g. 1250 -> '₹1,250'."""
    if num is None:
        return "₹0"

    try:
        n = float(num)
    except (TypeError, ValueError):
        return str(num)

    if n.is_integer():
        return f"₹{int(n):,}"
    return f"₹{n:,.2f}"


def _save_workbook_with_retry(
    wb, filepath: str, max_retries: int = 3, delay: float = 0.5
) -> None:
    """Save workbook with retry logic for file lock issues.

    Raises:
        PermissionError: If file is locked after all retries
    """
    import time as time_module

    last_error = None
    for attempt in range(max_retries):
        try:
            wb.save(filepath)
            return
        except PermissionError as e:
            last_error = e
            if attempt < max_retries - 1:
                logger.warning(
                    f"Excel file locked, retrying in {delay}s... (attempt {attempt + 1}/{max_retries})"
                )
                time_module.sleep(delay)

    logger.error(
        f"Failed to save Excel file after {max_retries} attempts: {last_error}"
    )
    raise PermissionError(
        f"Excel file '{filepath}' is locked by another process. Please close it and try again."
    )


# -----------------------------------------------------------
#  CATEGORY PARSER
# -----------------------------------------------------------
def determine_category(role: Optional[str]) -> str:
    """Map a free-text role to a player category. Captain wins over any other role."""
    if not role:
        return CATEGORY_OTHER

    role_text = role.lower()

    if "captain" in role_text:
        return CATEGORY_CAPTAIN
    if "keeper" in role_text or "wicket" in role_text or "wk" in role_text:
        return CATEGORY_WICKET_KEEPER
    if "batter" in role_text or "batsman" in role_text:
        return CATEGORY_BATTER
    if "bowler" in role_text:
        return CATEGORY_BOWLER
    if "allrounder" in role_text or "all-rounder" in role_text:
        return CATEGORY_ALLROUNDER

    return CATEGORY_OTHER


# -----------------------------------------------------------
#  STATS
# -----------------------------------------------------------
def calculate_stats(players: List[Any]) -> Dict[str, Any]:
    """Sale stats over players sold through bidding.

    Captains and zero-price sales are left out. Ties for highest/lowest go to
    the first player in roster order.
    """
    valid_sold = [
        p
        for p in players
        if p.status == PLAYER_SOLD and p.category != CATEGORY_CAPTAIN and p.final_bid > 0
    ]
    total_unsold = sum(1 for p in players if p.status == PLAYER_UNSOLD)

    if not valid_sold:
        return {
            "highest_bid": None,
            "lowest_bid": None,
            "total_sold": 0,
            "total_unsold": total_unsold,
            "average_bid": 0,
        }

    amounts = [p.final_bid for p in valid_sold]
    max_amount = max(amounts)
    min_amount = min(amounts)
    highest = next(p for p in valid_sold if p.final_bid == max_amount)
    lowest = next(p for p in valid_sold if p.final_bid == min_amount)

    return {
        "highest_bid": {"player": highest, "amount": max_amount},
        "lowest_bid": {"player": lowest, "amount": min_amount},
        "total_sold": len(valid_sold),
        "total_unsold": total_unsold,
        "average_bid": sum(amounts) / len(amounts),
    }


def serialize_stats(stats: Dict[str, Any]) -> Dict[str, Any]:
    """Stats with Player objects replaced by plain dicts."""
    result = dict(stats)
    for key in ("highest_bid", "lowest_bid"):
        entry = stats.get(key)
        if entry:
            result[key] = {"player": entry["player"].to_dict(), "amount": entry["amount"]}
    return result


def pick_column(row: Dict[str, Any], columns) -> str:
    for column in columns:
        value = row.get(column)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def parse_team_names(raw: str) -> Dict[int, str]:
    """Parse "1=Super Kings, 2:Royals" into {team_id: name}.

    Raises ValueError on a malformed entry.
    """
    names = {}
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        sep = "=" if "=" in part else ":"
        if sep not in part:
            raise ValueError(f"Bad team entry '{part}' (expected id=name)")
        team_id, name = part.split(sep, 1)
        try:
            team_id = int(team_id.strip())
        except ValueError:
            raise ValueError(f"Team id must be a number in '{part}'")
        if not name.strip():
            raise ValueError(f"Missing team name in '{part}'")
        names[team_id] = name.strip()
    if not names:
        raise ValueError("No team names given")
    return names


class FileManager:
    """Handles roster files and the results workbook"""

    @staticmethod
    def load_roster_file(filepath: str) -> List[Dict[str, str]]:
        """
        Load roster rows from a CSV or Excel file.
        Returns one dict per data row keyed by the header row. Rows whose first
        column is empty are dropped.
        """
        ext = os.path.splitext(filepath)[1].lower()
        if ext == ".csv":
            return FileManager._load_csv_rows(filepath)
        if ext in (".xlsx", ".xlsm"):
            return FileManager._load_excel_rows(filepath)
        raise ValueError("Invalid file type. Only Excel and CSV files are allowed.")

    @staticmethod
    def _load_csv_rows(filepath: str) -> List[Dict[str, str]]:
        try:
            with open(filepath, "r", encoding="utf-8-sig", newline="") as f:
                reader = csv.reader(f)
                rows = [r for r in reader if any(cell.strip() for cell in r)]
        except FileNotFoundError:
            logger.error(f"CSV file not found: {filepath}")
            raise
        except csv.Error as e:
            logger.error(f"CSV parsing error in {filepath}: {e}")
            raise ValueError(f"Error parsing CSV file: {str(e)}")
        except UnicodeDecodeError as e:
            logger.error(f"Encoding error in {filepath}: {e}")
            raise ValueError(f"File encoding error. Please use UTF-8: {str(e)}")

        if not rows:
            raise ValueError("CSV file is empty")

        headers = [h.strip().replace('"', "") for h in rows[0]]
        if not headers or not headers[0]:
            raise ValueError("No valid headers found in CSV")

        data = []
        for values in rows[1:]:
            row = {
                header: (values[i].strip() if i < len(values) else "")
                for i, header in enumerate(headers)
            }
            if row.get(headers[0]):
                data.append(row)
        return data

    @staticmethod
    def _load_excel_rows(filepath: str) -> List[Dict[str, str]]:
        try:
            wb = openpyxl.load_workbook(filepath, read_only=True, data_only=True)
        except FileNotFoundError:
            logger.error(f"Excel file not found: {filepath}")
            raise
        except Exception as e:
            logger.error(f"Error opening Excel file {filepath}: {e}")
            raise ValueError(f"Error parsing Excel file: {str(e)}")

        try:
            ws = wb.active
            rows = list(ws.iter_rows(values_only=True))
        finally:
            wb.close()

        rows = [r for r in rows if r and any(c is not None and str(c).strip() for c in r)]
        if not rows:
            raise ValueError("Excel file is empty")

        headers = [str(h).strip() if h is not None else "" for h in rows[0]]
        if not headers[0]:
            raise ValueError("No valid headers found in Excel file")

        data = []
        for values in rows[1:]:
            row = {}
            for i, header in enumerate(headers):
                if not header:
                    continue
                cell = values[i] if i < len(values) else None
                if isinstance(cell, float) and cell.is_integer():
                    cell = int(cell)
                row[header] = str(cell).strip() if cell is not None else ""
            if row.get(headers[0]):
                data.append(row)
        return data

    @staticmethod
    def validate_roster_rows(rows: List[Dict[str, str]], file_name: str = "") -> dict:
        """Describe a parsed roster without loading it."""
        columns = list(rows[0].keys()) if rows else []
        has_name = any(
            col.lower() in ("name", "player name", "playername") for col in columns
        )
        return {
            "valid": bool(rows) and has_name,
            "file_name": file_name,
            "total_rows": len(rows),
            "columns": columns,
            "preview": [{"index": i + 1, "data": row} for i, row in enumerate(rows[:5])],
            "suggestions": [] if has_name else ['Please ensure your file has a "Name" column'],
        }

    @staticmethod
    def _style_header(sheet, fill: PatternFill, font: Font):
        for cell in sheet[1]:
            cell.fill = fill
            cell.font = font
            cell.alignment = Alignment(horizontal="center")

    @staticmethod
    def _set_column_widths(sheet):
        for column in sheet.columns:
            values = [str(c.value) for c in column if c.value is not None]
            width = max((len(v) for v in values), default=0)
            sheet.column_dimensions[column[0].column_letter].width = min(
                max(width + 2, 10), 50
            )

    @staticmethod
    def export_auction_workbook(filepath: str, snapshot: dict) -> str:
        """Write the results workbook for an auction snapshot.

        `snapshot` is AuctionManager.get_auction_data(): players, teams,
        settings and stats as plain dicts.
        """
        players = snapshot.get("players", [])
        teams = snapshot.get("teams", [])
        stats = snapshot.get("stats") or {}
        settings = snapshot.get("settings") or {}
        team_names = {t["id"]: t["name"] for t in teams}

        header_fill = PatternFill(
            start_color="366092", end_color="366092", fill_type="solid"
        )
        header_font = Font(bold=True, color="FFFFFF")
        summary_fill = PatternFill(
            start_color="7030A0", end_color="7030A0", fill_type="solid"
        )

        def safe(value) -> str:
            return sanitize_csv_value(str(value)) if value else ""

        wb = openpyxl.Workbook()

        # Sheet 1: Yet To Auction
        sheet = wb.active
        sheet.title = "Yet To Auction"
        sheet.append(["Sl.No", "Player Name", "Role", "Category"])
        for p in players:
            if p["status"] == PLAYER_AVAILABLE and p["category"] != CATEGORY_CAPTAIN:
                sheet.append([p.get("sl_no") or "", safe(p["name"]), safe(p["role"]), p["category"]])

        # Sheet 2: Sold Players
        sold_sheet = wb.create_sheet("Sold Players")
        sold_sheet.append(["Player Name", "Role", "Category", "Team", "Final Bid"])
        sold = [
            p for p in players
            if p["status"] == PLAYER_SOLD and p["category"] != CATEGORY_CAPTAIN
        ]
        for p in sorted(sold, key=lambda p: p["final_bid"], reverse=True):
            sold_sheet.append(
                [
                    safe(p["name"]),
                    safe(p["role"]),
                    p["category"],
                    safe(team_names.get(p["team"], "")),
                    p["final_bid"],
                ]
            )

        # Sheet 3: Captains
        captain_sheet = wb.create_sheet("Captains")
        captain_sheet.append(["Player Name", "Role", "Team", "Status"])
        for p in players:
            if p["category"] == CATEGORY_CAPTAIN:
                captain_sheet.append(
                    [
                        safe(p["name"]),
                        safe(p["role"]),
                        safe(team_names.get(p["team"], "Unassigned")),
                        p["status"],
                    ]
                )

        # Sheet 4: Unsold Players
        unsold_sheet = wb.create_sheet("Unsold Players")
        unsold_sheet.append(["Player Name", "Role", "Category"])
        for p in players:
            if p["status"] == PLAYER_UNSOLD:
                unsold_sheet.append([safe(p["name"]), safe(p["role"]), p["category"]])

        # Sheet 5: Team Squads (three columns per team, blank separator between)
        squad_sheet = wb.create_sheet("Team Squads")
        squads = {}
        for t in teams:
            members = [
                p for p in players
                if p["team"] == t["id"]
                and p["status"] in (PLAYER_SOLD, PLAYER_ASSIGNED, PLAYER_RETAINED)
            ]
            squads[t["id"]] = sorted(members, key=lambda p: p["final_bid"], reverse=True)
        if teams:
            header = []
            for i, t in enumerate(teams):
                header += [f"{t['name']} Name", f"{t['name']} Role", f"{t['name']} Price"]
                if i < len(teams) - 1:
                    header.append("")
            squad_sheet.append(header)
            depth = max([len(s) for s in squads.values()] + [1])
            for row_idx in range(depth):
                row = []
                for i, t in enumerate(teams):
                    members = squads[t["id"]]
                    if row_idx < len(members):
                        p = members[row_idx]
                        price = "Captain" if p["category"] == CATEGORY_CAPTAIN else p["final_bid"]
                        row += [safe(p["name"]), safe(p["role"]), price]
                    else:
                        row += ["", "", ""]
                    if i < len(teams) - 1:
                        row.append("")
                squad_sheet.append(row)
        else:
            squad_sheet.append(["No teams available"])

        # Sheet 6: Team Finances
        finance_sheet = wb.create_sheet("Team Finances")
        finance_sheet.append(
            ["Team", "Players", "Bought", "Total Spent", "Remaining Budget", "Average Cost"]
        )
        for t in teams:
            members = squads.get(t["id"], [])
            bought = [p for p in members if p["category"] != CATEGORY_CAPTAIN]
            spent = sum(p["final_bid"] for p in bought)
            average = round(spent / len(bought)) if bought else 0
            finance_sheet.append(
                [safe(t["name"]), len(members), len(bought), spent, t["budget"], average]
            )

        # Sheet 7: Summary
        summary_sheet = wb.create_sheet("Summary")
        summary_sheet.append(["Metric", "Value"])
        highest = stats.get("highest_bid")
        lowest = stats.get("lowest_bid")
        summary_rows = [
            ("Total Players", len(players)),
            ("Total Sold", stats.get("total_sold", 0)),
            ("Total Unsold", stats.get("total_unsold", 0)),
            ("Average Bid", round(stats.get("average_bid", 0) or 0, 2)),
            (
                "Highest Bid",
                f"{highest['player']['name']} ({highest['amount']})" if highest else "N/A",
            ),
            (
                "Lowest Bid",
                f"{lowest['player']['name']} ({lowest['amount']})" if lowest else "N/A",
            ),
            ("Teams", len(teams)),
            ("Starting Budget", settings.get("starting_budget", "")),
            ("Base Price", settings.get("base_price", "")),
            ("Generated At", datetime.now().strftime("%Y-%m-%d %H:%M:%S")),
        ]
        for metric, value in summary_rows:
            summary_sheet.append([metric, safe(value) if isinstance(value, str) else value])

        # Sheet 8: Category Breakdown
        category_sheet = wb.create_sheet("Category Breakdown")
        category_sheet.append(
            ["Category", "Total", "Sold", "Unsold", "Available", "Total Spent"]
        )
        for category in CATEGORIES:
            members = [p for p in players if p["category"] == category]
            sold_members = [p for p in members if p["status"] == PLAYER_SOLD]
            category_sheet.append(
                [
                    category,
                    len(members),
                    len(sold_members),
                    sum(1 for p in members if p["status"] == PLAYER_UNSOLD),
                    sum(1 for p in members if p["status"] == PLAYER_AVAILABLE),
                    sum(p["final_bid"] for p in sold_members),
                ]
            )

        for ws in wb.worksheets:
            fill = summary_fill if ws.title == "Summary" else header_fill
            FileManager._style_header(ws, fill, header_font)
            FileManager._set_column_widths(ws)

        _save_workbook_with_retry(wb, filepath)
        logger.info(f"Exported auction workbook to {filepath}")
        return filepath


# -----------------------------------------------------------
# MESSAGE FORMATTER
# -----------------------------------------------------------
class MessageFormatter:

    @staticmethod
    def format_stats(stats: dict) -> str:
        msg = "**📊 LIVE AUCTION STATS**\n\n"
        highest = stats.get("highest_bid")
        lowest = stats.get("lowest_bid")
        if highest:
            msg += f"💰 **Highest Bid:** {highest['player'].name} - {format_amount(highest['amount'])}\n"
        else:
            msg += "💰 **Highest Bid:** None\n"
        if lowest:
            msg += f"🪙 **Lowest Bid:** {lowest['player'].name} - {format_amount(lowest['amount'])}\n"
        else:
            msg += "🪙 **Lowest Bid:** None\n"
        msg += f"✅ **Sold:** {stats.get('total_sold', 0)}\n"
        msg += f"❌ **Unsold:** {stats.get('total_unsold', 0)}\n"
        msg += f"📈 **Average Bid:** {format_amount(round(stats.get('average_bid', 0) or 0, 2))}\n"
        return msg

    @staticmethod
    def format_squad_display(team: dict, members: List[Any], max_players: int) -> str:
        """Format a team's squad for display."""

        def fmt_row(p):
            price = "Captain" if p.category == CATEGORY_CAPTAIN else format_amount(p.final_bid)
            return f"{p.name[:25]:25} : {price}"

        captains = [p for p in members if p.status == PLAYER_ASSIGNED]
        retained = [p for p in members if p.status == PLAYER_RETAINED]
        bought = [p for p in members if p.status == PLAYER_SOLD]

        msg = f"**{team['name']} Squad:**\n```\n"
        if captains:
            msg += "--- Captain ---\n"
            for p in captains:
                msg += f"{fmt_row(p)}\n"
        if retained:
            msg += "--- Retained ---\n"
            for p in retained:
                msg += f"{fmt_row(p)}\n"
        if bought:
            msg += "--- Bought ---\n"
            for p in bought:
                msg += f"{fmt_row(p)}\n"
        if not members:
            msg += "No players yet.\n"

        total_spent = sum(p.final_bid for p in bought + retained)
        squad_count = len(captains) + len(bought)
        msg += f"\n{'='*40}\n"
        msg += f"{'Total Spent':20} : {format_amount(total_spent)}\n"
        msg += f"{'Remaining Budget':20} : {format_amount(team['budget'])}\n"
        msg += f"{'Squad Size':20} : {squad_count}/{max_players}\n"
        msg += "```"
        return msg

    @staticmethod
    def format_budget_line(budget: dict) -> str:
        status = "can buy more" if budget["can_buy_more"] else "squad full"
        return (
            f"💼 {budget['team_name']}: {budget['players_count']} bought, "
            f"{format_amount(budget['budget_spent'])} of {format_amount(budget['initial_budget'])} spent, "
            f"{status}"
        )

    @staticmethod
    def format_team_stats(info: dict, budget: dict) -> str:
        """Format get_team_stats() output with the team's budget summary."""
        stats = info["stats"]
        msg = f"**📈 {info['team']['name']} Stats**\n```\n"
        msg += f"{'Players':20} : {stats['total_players']} ({stats['bought_players']} bought)\n"
        msg += f"{'Total Spent':20} : {format_amount(stats['total_spent'])}\n"
        msg += f"{'Average Price':20} : {format_amount(stats['average_spent'])}\n"
        msg += f"{'Remaining Budget':20} : {format_amount(stats['budget_remaining'])}\n"
        msg += f"{'Budget Used':20} : {stats['budget_percentage']}%\n"
        msg += f"{'Max Squad':20} : {budget['max_players']}"
        msg += f" ({'can buy more' if budget['can_buy_more'] else 'full'})\n"

        top = stats["most_expensive_player"]
        low = stats["cheapest_player"]
        if top:
            msg += f"{'Most Expensive':20} : {top['name']} ({format_amount(top['final_bid'])})\n"
        if low:
            msg += f"{'Cheapest':20} : {low['name']} ({format_amount(low['final_bid'])})\n"

        counts = [f"{c}: {n}" for c, n in stats["players_by_category"].items() if n]
        if counts:
            msg += f"{'By Category':20} : {', '.join(counts)}\n"
        msg += "```"
        return msg

    @staticmethod
    def format_action_history(history: List[dict]) -> str:
        if not history:
            return "No sales recorded."
        msg = "**Recent Sales (newest first):**\n```\n"
        for entry in history:
            when = datetime.fromtimestamp(entry["timestamp"]).strftime("%H:%M:%S")
            msg += (
                f"{when} {entry['player_name'][:22]:22} → "
                f"{entry['team_name'][:12]:12} {format_amount(entry['amount'])}\n"
            )
        msg += "```"
        return msg

    @staticmethod
    def format_player_list(players: List[Any], limit: int = 25) -> str:
        if not players:
            return "No players."
        msg = "```\n"
        for p in players[:limit]:
            msg += f"{p.name[:25]:25} {p.category:14} {p.status}\n"
        if len(players) > limit:
            msg += f"... and {len(players) - limit} more\n"
        msg += "```"
        return msg

    @staticmethod
    def format_event(event: str, payload: Any) -> Optional[str]:
        """Announcement text for a broadcast event, or None if it is not announced."""
        if event == "current_bid_updated":
            if not payload:
                return None
            if payload.get("team"):
                return (
                    f"💰 **{payload['team']}** bids **{format_amount(payload['amount'])}** "
                    f"for **{payload['player']['name']}**"
                )
            return (
                f"🎯 **Now bidding: {payload['player']['name']}**\n"
                f"Base Price: {format_amount(payload['amount'])}"
            )
        if event == "player_sold":
            return (
                f"**SOLD!**\n"
                f"Player: **{payload['player']['name']}**\n"
                f"Team: **{payload['team']['name']}**\n"
                f"Final Price: **{format_amount(payload['final_bid'])}**"
            )
        if event == "player_unsold":
            return f"**UNSOLD**\nPlayer: **{payload['player']['name']}**"
        if event == "bidding_cancelled":
            return f"⏹️ {payload['message']}"
        if event == "bid_undone":
            if payload.get("reverted_to_team"):
                return (
                    f"↩️ Bid undone for **{payload['player']}**: back to "
                    f"**{payload['reverted_to_team']}** at {format_amount(payload['reverted_to_amount'])}"
                )
            return (
                f"↩️ Bid undone for **{payload['player']}**: back to base price "
                f"{format_amount(payload['reverted_to_amount'])}"
            )
        if event == "sale_undone":
            return (
                f"↩️ Sale undone: **{payload['player']}** returned from **{payload['team']}**, "
                f"{format_amount(payload['amount'])} refunded"
            )
        if event == "auction_status_changed":
            return f"📣 Auction status: **{str(payload).upper()}**"
        if event == "fast_track_started":
            return f"⚡ **FAST TRACK** round started with {len(payload['players'])} unsold players"
        if event == "fast_track_ended":
            return "⚡ Fast track round ended"
        if event == "auction_reset":
            return "🔄 Auction reset. All players are available again."
        if event == "auction_cleared":
            return "🧹 Auction data cleared."
        if event == "auction_finished":
            return "🏁 **AUCTION FINISHED!**"
        if event == "file_uploaded":
            return (
                f"📋 Roster **{payload['file_name']}** loaded: {payload['player_count']} players "
                f"({payload['captain_count']} captains)"
            )
        if event == "player_retained":
            return (
                f"📌 **{payload['player']['name']}** retained by **{payload['team']['name']}** "
                f"for {format_amount(payload['retention_amount'])}"
            )
        if event == "player_retention_removed":
            return f"📌 Retention removed for **{payload['player']['name']}**"
        return None

