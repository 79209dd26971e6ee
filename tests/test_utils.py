"""Tests for roster files, stats and message formatting."""

import openpyxl
import pytest

from config import PLAYER_SOLD, PLAYER_UNSOLD
from conftest import sell_to
from store import Player
from utils import (
    FileManager,
    MessageFormatter,
    calculate_stats,
    determine_category,
    format_amount,
    parse_team_names,
    pick_column,
    sanitize_csv_value,
    serialize_stats,
)


@pytest.mark.parametrize(
    "role,expected",
    [
        ("Captain", "captain"),
        ("Vice Captain / Batter", "captain"),
        ("WK-Batter", "wicket-keeper"),
        ("Wicket Keeper", "wicket-keeper"),
        ("Top order batsman", "batter"),
        ("Fast Bowler", "bowler"),
        ("All-Rounder", "allrounder"),
        ("Fielder", "other"),
        ("", "other"),
        (None, "other"),
    ],
)
def test_determine_category(role, expected):
    assert determine_category(role) == expected


def test_format_amount():
    assert format_amount(1250) == "₹1,250"
    assert format_amount(12.5) == "₹12.50"
    assert format_amount(None) == "₹0"


def test_sanitize_csv_value():
    assert sanitize_csv_value("=SUM(A1)") == "'=SUM(A1)"
    assert sanitize_csv_value("@cmd") == "'@cmd"
    assert sanitize_csv_value("Virat") == "Virat"
    assert sanitize_csv_value("") == ""


def test_pick_column_uses_first_non_empty():
    row = {"Name": "  ", "Player Name": " Jadeja ", "PlayerName": "Other"}
    assert pick_column(row, ("Name", "Player Name", "PlayerName")) == "Jadeja"
    assert pick_column({}, ("Name",)) == ""


class TestStats:
    def _players(self):
        return [
            Player(id="1", name="A", category="batter", status=PLAYER_SOLD, final_bid=40),
            Player(id="2", name="B", category="bowler", status=PLAYER_SOLD, final_bid=10),
            Player(id="3", name="C", category="batter", status=PLAYER_SOLD, final_bid=40),
            Player(id="4", name="Cap", category="captain", status=PLAYER_SOLD, final_bid=500),
            Player(id="5", name="Free", category="other", status=PLAYER_SOLD, final_bid=0),
            Player(id="6", name="D", category="bowler", status=PLAYER_UNSOLD),
        ]

    def test_excludes_captains_and_zero_bids(self):
        stats = calculate_stats(self._players())
        assert stats["total_sold"] == 3
        assert stats["total_unsold"] == 1
        assert stats["highest_bid"]["player"].name == "A"
        assert stats["highest_bid"]["amount"] == 40
        assert stats["lowest_bid"]["player"].name == "B"
        assert stats["average_bid"] == 30

    def test_empty(self):
        stats = calculate_stats([])
        assert stats["highest_bid"] is None
        assert stats["average_bid"] == 0

    def test_serialize(self):
        data = serialize_stats(calculate_stats(self._players()))
        assert data["highest_bid"]["player"]["name"] == "A"
        assert MessageFormatter.format_stats(calculate_stats(self._players())).count("₹") == 3


class TestRosterFiles:
    def test_load_csv(self, tmp_path):
        path = tmp_path / "roster.csv"
        path.write_text(
            '\ufeffName,Role,"Sl.No"\nVirat Kohli,Batter,1\n,Bowler,2\n\nMS Dhoni,Captain,3\n',
            encoding="utf-8",
        )
        rows = FileManager.load_roster_file(str(path))
        assert rows == [
            {"Name": "Virat Kohli", "Role": "Batter", "Sl.No": "1"},
            {"Name": "MS Dhoni", "Role": "Captain", "Sl.No": "3"},
        ]

    def test_load_xlsx(self, tmp_path):
        path = tmp_path / "roster.xlsx"
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(["Sl.No", "Player Name", "Category"])
        ws.append([1, "Jasprit Bumrah", "Bowler"])
        ws.append([None, None, None])
        ws.append([2, "Hardik Pandya", "Allrounder"])
        wb.save(path)

        rows = FileManager.load_roster_file(str(path))
        assert [r["Player Name"] for r in rows] == ["Jasprit Bumrah", "Hardik Pandya"]
        assert rows[0]["Sl.No"] == "1"

    def test_rejects_other_extensions(self, tmp_path):
        path = tmp_path / "roster.txt"
        path.write_text("Name\nA\n")
        with pytest.raises(ValueError):
            FileManager.load_roster_file(str(path))

    def test_empty_csv(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("")
        with pytest.raises(ValueError):
            FileManager.load_roster_file(str(path))

    def test_validate_roster_rows(self):
        rows = [{"Name": str(i), "Role": "Batter"} for i in range(7)]
        report = FileManager.validate_roster_rows(rows, "roster.csv")
        assert report["valid"]
        assert report["total_rows"] == 7
        assert len(report["preview"]) == 5
        assert report["columns"] == ["Name", "Role"]

        bad = FileManager.validate_roster_rows([{"Player": "A"}], "bad.csv")
        assert not bad["valid"]
        assert bad["suggestions"]


def test_export_workbook(run, manager, tmp_path):
    run(manager.assign_captain(1, manager.find_player("Rohit Sharma").id))
    sell_to(run, manager, "Virat Kohli", 1, bids=2)
    run(manager.start_bidding(manager.find_player("Jasprit Bumrah").id))
    run(manager.mark_unsold())

    path = tmp_path / "results.xlsx"
    FileManager.export_auction_workbook(str(path), manager.get_auction_data())

    wb = openpyxl.load_workbook(path)
    assert wb.sheetnames == [
        "Yet To Auction",
        "Sold Players",
        "Captains",
        "Unsold Players",
        "Team Squads",
        "Team Finances",
        "Summary",
        "Category Breakdown",
    ]
    sold = list(wb["Sold Players"].iter_rows(min_row=2, values_only=True))
    assert sold == [("Virat Kohli", "Batter", "batter", "Team 1", 15)]
    unsold = list(wb["Unsold Players"].iter_rows(min_row=2, values_only=True))
    assert unsold == [("Jasprit Bumrah", "Bowler", "bowler")]
    finances = list(wb["Team Finances"].iter_rows(min_row=2, max_row=2, values_only=True))
    assert finances == [("Team 1", 2, 1, 15, 985, 15)]


class TestFormatEvent:
    def test_lot_opened_and_bid(self):
        player = {"name": "Virat Kohli"}
        opened = MessageFormatter.format_event(
            "current_bid_updated", {"player": player, "amount": 10, "team": None}
        )
        assert "Now bidding: Virat Kohli" in opened
        bid = MessageFormatter.format_event(
            "current_bid_updated", {"player": player, "amount": 1250, "team": "Team 2"}
        )
        assert "Team 2" in bid and "₹1,250" in bid

    def test_closed_lot_is_not_announced(self):
        assert MessageFormatter.format_event("current_bid_updated", None) is None
        assert MessageFormatter.format_event("players_updated", []) is None

    def test_sale(self):
        text = MessageFormatter.format_event(
            "player_sold",
            {"player": {"name": "A"}, "team": {"name": "Team 1"}, "final_bid": 40},
        )
        assert "SOLD" in text and "₹40" in text

    def test_bid_undone_to_base(self):
        text = MessageFormatter.format_event(
            "bid_undone",
            {"player": "A", "reverted_to_team": None, "reverted_to_amount": 10},
        )
        assert "base price" in text


class TestTeamNames:
    def test_parse(self):
        assert parse_team_names("1=Super Kings, 2:Royals,, 3 = Titans ") == {
            1: "Super Kings",
            2: "Royals",
            3: "Titans",
        }

    @pytest.mark.parametrize("raw", ["", "Kings", "one=Kings", "2="])
    def test_rejects_bad_entries(self, raw):
        with pytest.raises(ValueError):
            parse_team_names(raw)

    def test_bulk_rename_from_text(self, run, manager):
        run(manager.update_team_names(parse_team_names("2=Royals, 4=Titans")))
        assert [t.name for t in manager.store.teams] == ["Team 1", "Royals", "Team 3", "Titans"]


def test_team_stats_message(run, manager):
    run(manager.assign_captain(1, manager.find_player("Rohit Sharma").id))
    sell_to(run, manager, "Virat Kohli", 1, bids=3)
    sell_to(run, manager, "Jasprit Bumrah", 1)

    text = MessageFormatter.format_team_stats(
        manager.get_team_stats(1), manager.get_team_budget(1)
    )
    assert "Team 1 Stats" in text
    assert "3 (2 bought)" in text
    assert "Virat Kohli (₹20)" in text
    assert "Jasprit Bumrah (₹10)" in text
    assert "can buy more" in text
    assert "captain: 1" in text

    line = MessageFormatter.format_budget_line(manager.get_team_budget(1))
    assert line == "💼 Team 1: 2 bought, ₹30 of ₹1,000 spent, can buy more"
