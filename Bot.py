# Bot.py
"""
Discord Auction Bot - Main Application
Slash commands drive the auction; every committed change is announced in the
auction channel and a persistent stats message is kept up to date.
"""

import discord
from discord import app_commands
from discord.ext import commands
import asyncio
import os
import tempfile
import logging
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler("auction_bot.log", encoding="utf-8"),
        logging.StreamHandler(),  # Also print to console
    ],
)
logger = logging.getLogger("AuctionBot")

from config import (
    BOT_TOKEN,
    AUCTION_CHANNEL_ID,
    AUCTION_EXPORT_FILE,
    CATEGORY_CAPTAIN,
    PLAYER_ASSIGNED,
    PLAYER_AVAILABLE,
    PLAYER_RETAINED,
    PLAYER_SOLD,
    PLAYER_UNSOLD,
    load_settings_from_env,
    parse_bid_increments,
)
from auction_manager import AuctionError, AuctionManager
from broadcaster import EVENT_AUCTION_DATA, EVENT_STATS_UPDATED, QueuedBroadcaster
from utils import FileManager, MessageFormatter, format_amount, parse_team_names
from admin_checks import admin_or_owner_check, is_admin_or_owner

TOKEN = BOT_TOKEN or os.getenv("DISCORD_TOKEN", "")

ROSTER_EXTENSIONS = (".csv", ".xlsx", ".xlsm")


class AuctionBot(commands.Bot):
    """Custom bot class with auction manager and slash commands"""

    def __init__(self):
        intents = discord.Intents.default()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.broadcaster = QueuedBroadcaster()
        self.broadcaster.add_sink(self.announce_event)
        self.auction_manager = AuctionManager(load_settings_from_env(), self.broadcaster)
        self.formatter = MessageFormatter()

        self.auction_channel_id: Optional[int] = AUCTION_CHANNEL_ID or None
        self.stats_message_id: Optional[int] = None

        # Background tasks set - prevents 'Task destroyed but pending' warnings
        self._background_tasks: set = set()

    def create_background_task(self, coro):
        """Create a background task that cleans up after itself."""
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def setup_hook(self):
        self.broadcaster.start()
        logger.info("Syncing slash commands globally...")
        await self.tree.sync()
        logger.info("Slash commands synced!")

    async def on_ready(self):
        logger.info(f"Logged in as {self.user.name} (ID: {self.user.id})")
        logger.info("Bot is ready! Use /userhelp to see all commands.")
        self.auction_manager.publish_snapshot()

    async def close(self):
        await self.broadcaster.stop()
        await super().close()

    def get_auction_channel(self) -> Optional[discord.abc.Messageable]:
        if not self.auction_channel_id:
            return None
        return self.get_channel(self.auction_channel_id)

    async def announce_event(self, event: str, payload):
        """Broadcast sink: post auction events to the auction channel."""
        if event in (EVENT_STATS_UPDATED, EVENT_AUCTION_DATA):
            await self.update_stats_display()
            return

        text = self.formatter.format_event(event, payload)
        if not text:
            return

        channel = self.get_auction_channel()
        if channel is None:
            logger.debug(f"No auction channel set, dropping {event}")
            return
        await channel.send(text)

    async def update_stats_display(self):
        """Updates the persistent stats message"""
        channel = self.get_auction_channel()
        if channel is None:
            return

        msg_content = self.formatter.format_stats(self.auction_manager.get_stats())

        try:
            if self.stats_message_id:
                try:
                    msg = await channel.fetch_message(self.stats_message_id)
                    await msg.edit(content=msg_content)
                    return
                except discord.NotFound:
                    pass  # Message deleted, send new one

            # Send new message if edit failed
            msg = await channel.send(msg_content)
            self.stats_message_id = msg.id
        except discord.HTTPException as e:
            logger.error(f"Error updating stats display: {e}")


bot = AuctionBot()


# ============================================================
# HELPERS
# ============================================================


async def send_error(interaction: discord.Interaction, title: str, message: str):
    error_embed = discord.Embed(
        title=f"❌ {title}", description=message, color=discord.Color.red()
    )
    if interaction.response.is_done():
        await interaction.followup.send(embed=error_embed, ephemeral=True)
    else:
        await interaction.response.send_message(embed=error_embed, ephemeral=True)


async def run_action(interaction: discord.Interaction, action, failure_title: str):
    """Await an auction operation and reply to the operator.

    Announcements go to the auction channel through the broadcaster, so the
    operator only gets a short ephemeral confirmation here.
    """
    try:
        result = await action
    except AuctionError as e:
        await send_error(interaction, failure_title, e.message)
        return None

    if interaction.response.is_done():
        await interaction.followup.send(f"✅ {result.message}", ephemeral=True)
    else:
        await interaction.response.send_message(f"✅ {result.message}", ephemeral=True)
    return result


async def send_long(interaction: discord.Interaction, msg: str, ephemeral: bool = False):
    """Send a message in Discord-sized chunks."""
    chunks = [msg[i : i + 1900] for i in range(0, len(msg), 1900)] or [""]
    if interaction.response.is_done():
        await interaction.followup.send(chunks[0], ephemeral=ephemeral)
    else:
        await interaction.response.send_message(chunks[0], ephemeral=ephemeral)
    for chunk in chunks[1:]:
        await interaction.followup.send(chunk, ephemeral=ephemeral)


def resolve_team(team: str) -> Optional[int]:
    return bot.auction_manager.find_team(team)


def resolve_player(player: str):
    return bot.auction_manager.find_player(player)


async def team_autocomplete(
    interaction: discord.Interaction, current: str
) -> List[app_commands.Choice[str]]:
    current = current.lower()
    return [
        app_commands.Choice(name=t.name, value=str(t.id))
        for t in bot.auction_manager.store.teams
        if current in t.name.lower()
    ][:25]


async def available_player_autocomplete(
    interaction: discord.Interaction, current: str
) -> List[app_commands.Choice[str]]:
    current = current.lower()
    return [
        app_commands.Choice(name=p.name[:100], value=p.id)
        for p in bot.auction_manager.store.players
        if p.status == PLAYER_AVAILABLE
        and p.category != CATEGORY_CAPTAIN
        and current in p.name.lower()
    ][:25]


async def captain_autocomplete(
    interaction: discord.Interaction, current: str
) -> List[app_commands.Choice[str]]:
    current = current.lower()
    return [
        app_commands.Choice(name=p.name[:100], value=p.id)
        for p in bot.auction_manager.store.players
        if p.category == CATEGORY_CAPTAIN and current in p.name.lower()
    ][:25]


async def retained_player_autocomplete(
    interaction: discord.Interaction, current: str
) -> List[app_commands.Choice[str]]:
    current = current.lower()
    return [
        app_commands.Choice(name=p.name[:100], value=p.id)
        for p in bot.auction_manager.store.players
        if p.status == PLAYER_RETAINED and current in p.name.lower()
    ][:25]


async def download_roster(attachment: discord.Attachment) -> str:
    """Save an uploaded roster to a temp file and return its path."""
    ext = os.path.splitext(attachment.filename)[1].lower()
    if ext not in ROSTER_EXTENSIONS:
        raise ValueError("Invalid file type. Only Excel and CSV files are allowed.")
    fd, path = tempfile.mkstemp(suffix=ext)
    os.close(fd)
    await attachment.save(path)
    return path


class ConfirmView(discord.ui.View):
    """Confirm/cancel buttons for destructive commands"""

    def __init__(self, user_id: int):
        super().__init__(timeout=60)
        self.user_id = user_id
        self.confirmed = False

    async def on_timeout(self):
        for item in self.children:
            item.disabled = True

    async def _check_user(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id != self.user_id:
            await interaction.response.send_message(
                "This is not your confirmation!", ephemeral=True
            )
            return False
        return True

    @discord.ui.button(label="Confirm", style=discord.ButtonStyle.danger, emoji="🗑️")
    async def confirm_button(
        self, interaction: discord.Interaction, button: discord.ui.Button
    ):
        if not await self._check_user(interaction):
            return
        self.confirmed = True
        self.stop()
        await interaction.response.defer()

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.secondary, emoji="❌")
    async def cancel_button(
        self, interaction: discord.Interaction, button: discord.ui.Button
    ):
        if not await self._check_user(interaction):
            return
        self.stop()
        await interaction.response.defer()


async def confirm(interaction: discord.Interaction, prompt: str) -> bool:
    view = ConfirmView(interaction.user.id)
    await interaction.response.send_message(prompt, view=view, ephemeral=True)
    await view.wait()

    # Disable buttons after interaction
    for item in view.children:
        item.disabled = True
    try:
        await interaction.edit_original_response(view=view)
    except discord.HTTPException:
        pass

    if not view.confirmed:
        await interaction.followup.send("❌ Operation cancelled.", ephemeral=True)
    return view.confirmed


# ============================================================
# SETUP COMMANDS
# ============================================================


@bot.tree.command(name="setup", description="Configure teams, budgets and bidding (Admin only)")
@app_commands.describe(
    teams="Number of teams (2-16)",
    budget="Starting budget per team",
    max_players="Max players per team (5-25)",
    base_price="Opening price for every player",
    increments="Bid increments as threshold:increment, e.g. 50:5,100:10,200:20",
    retention="Allow retaining players before the auction",
    retentions_per_team="Max retained players per team",
)
@admin_or_owner_check()
async def setup_auction(
    interaction: discord.Interaction,
    teams: Optional[int] = None,
    budget: Optional[int] = None,
    max_players: Optional[int] = None,
    base_price: Optional[int] = None,
    increments: Optional[str] = None,
    retention: Optional[bool] = None,
    retentions_per_team: Optional[int] = None,
):
    current = bot.auction_manager.settings
    try:
        rules = parse_bid_increments(increments) if increments else current.bidding_increments
    except ValueError as e:
        await send_error(interaction, "Invalid Settings", str(e))
        return

    result = await run_action(
        interaction,
        bot.auction_manager.update_settings(
            team_count=teams if teams is not None else current.team_count,
            starting_budget=budget if budget is not None else current.starting_budget,
            max_players_per_team=(
                max_players if max_players is not None else current.max_players_per_team
            ),
            base_price=base_price if base_price is not None else current.base_price,
            bidding_increments=rules,
            enable_retention=retention if retention is not None else current.enable_retention,
            retentions_per_team=(
                retentions_per_team
                if retentions_per_team is not None
                else current.retentions_per_team
            ),
        ),
        "Invalid Settings",
    )
    if result:
        s = result.data["settings"]
        rules_text = ", ".join(
            f"<{r['threshold']}: +{r['increment']}" for r in s["bidding_increments"]
        )
        await interaction.followup.send(
            f"```\n"
            f"Teams           : {s['team_count']}\n"
            f"Starting Budget : {format_amount(s['starting_budget'])}\n"
            f"Max Players     : {s['max_players_per_team']}\n"
            f"Base Price      : {format_amount(s['base_price'])}\n"
            f"Increments      : {rules_text}\n"
            f"Retention       : {'on' if s['enable_retention'] else 'off'}"
            f" ({s['retentions_per_team']} per team)\n"
            f"```",
            ephemeral=True,
        )


@bot.tree.command(name="upload", description="Upload the player roster (CSV/Excel) (Admin only)")
@app_commands.describe(file="Roster with a Name column and an optional Role column")
@admin_or_owner_check()
async def upload_roster(interaction: discord.Interaction, file: discord.Attachment):
    await interaction.response.defer(ephemeral=True)
    path = None
    try:
        path = await download_roster(file)
        rows = await asyncio.to_thread(FileManager.load_roster_file, path)
    except ValueError as e:
        await send_error(interaction, "Upload Failed", str(e))
        return
    finally:
        if path and os.path.exists(path):
            os.remove(path)

    await run_action(
        interaction,
        bot.auction_manager.upload_players(rows, file.filename),
        "Upload Failed",
    )


@bot.tree.command(name="validatefile", description="Preview a roster file without loading it (Admin only)")
@app_commands.describe(file="Roster file to check")
@admin_or_owner_check()
async def validate_file(interaction: discord.Interaction, file: discord.Attachment):
    await interaction.response.defer(ephemeral=True)
    path = None
    try:
        path = await download_roster(file)
        rows = await asyncio.to_thread(FileManager.load_roster_file, path)
    except ValueError as e:
        await send_error(interaction, "Validation Failed", str(e))
        return
    finally:
        if path and os.path.exists(path):
            os.remove(path)

    report = FileManager.validate_roster_rows(rows, file.filename)
    msg = f"**{'✅ Valid' if report['valid'] else '⚠️ Invalid'}: {file.filename}**\n"
    msg += f"Rows: {report['total_rows']}\nColumns: {', '.join(report['columns'])}\n"
    if report["preview"]:
        msg += "```\n"
        for entry in report["preview"]:
            msg += f"{entry['index']}. " + " | ".join(str(v) for v in entry["data"].values()) + "\n"
        msg += "```"
    for suggestion in report["suggestions"]:
        msg += f"\n💡 {suggestion}"
    await send_long(interaction, msg, ephemeral=True)


@bot.tree.command(name="clear", description="Clear all players, teams and sales (Admin only)")
@admin_or_owner_check()
async def clear_auction(interaction: discord.Interaction):
    if not await confirm(
        interaction,
        "**⚠️ Clear Auction Data**\n\n"
        "This removes the roster, all teams, sales and bid history.\n"
        "**Do you want to continue?**",
    ):
        return
    bot.stats_message_id = None
    await run_action(interaction, bot.auction_manager.clear_auction(), "Clear Failed")


@bot.tree.command(name="setauctionchannel", description="Set the channel for auction announcements (Admin only)")
@app_commands.describe(channel="Channel for lots, sales and live stats")
@admin_or_owner_check()
async def set_auction_channel(
    interaction: discord.Interaction, channel: discord.TextChannel
):
    bot.auction_channel_id = channel.id
    bot.stats_message_id = None
    logger.info(f"Auction channel set to {channel.id}")
    await interaction.response.send_message(
        f"Auction announcements will be posted in {channel.mention}", ephemeral=True
    )
    bot.create_background_task(bot.update_stats_display())


# ============================================================
# AUCTION CONTROL COMMANDS
# ============================================================


@bot.tree.command(name="start", description="Start the auction (Admin only)")
@admin_or_owner_check()
async def start_auction(interaction: discord.Interaction):
    await run_action(interaction, bot.auction_manager.start_auction(), "Cannot Start")


@bot.tree.command(name="stop", description="Stop the auction (Admin only)")
@admin_or_owner_check()
async def stop_auction(interaction: discord.Interaction):
    await run_action(interaction, bot.auction_manager.stop_auction(), "Cannot Stop")


@bot.tree.command(name="finish", description="Finish the auction (Admin only)")
@admin_or_owner_check()
async def finish_auction(interaction: discord.Interaction):
    await run_action(interaction, bot.auction_manager.finish_auction(), "Cannot Finish")


@bot.tree.command(name="reset", description="Reset all sales and budgets, keeping captains (Admin only)")
@admin_or_owner_check()
async def reset_auction(interaction: discord.Interaction):
    if not await confirm(
        interaction,
        "**⚠️ Reset Auction**\n\n"
        "Every non-captain player goes back on the block and all budgets are restored.\n"
        "**Do you want to continue?**",
    ):
        return
    await run_action(interaction, bot.auction_manager.reset_auction(), "Reset Failed")


# ============================================================
# LOT COMMANDS
# ============================================================


@bot.tree.command(name="bidon", description="Open bidding for a player (Admin only)")
@app_commands.describe(player="Player to put on the block")
@app_commands.autocomplete(player=available_player_autocomplete)
@admin_or_owner_check()
async def bid_on(interaction: discord.Interaction, player: str):
    found = resolve_player(player)
    if found is None:
        await send_error(interaction, "Cannot Start Bidding", f"Player not found: {player}")
        return
    await run_action(
        interaction, bot.auction_manager.start_bidding(found.id), "Cannot Start Bidding"
    )


@bot.tree.command(name="bid", description="Place the next bid for a team (Admin only)")
@app_commands.describe(team="Team placing the bid")
@app_commands.autocomplete(team=team_autocomplete)
@app_commands.checks.cooldown(1, 1.0, key=lambda i: i.user.id)
@admin_or_owner_check()
async def bid(interaction: discord.Interaction, team: str):
    team_id = resolve_team(team)
    if team_id is None:
        await send_error(interaction, "Bid Failed", "Invalid team")
        return
    await run_action(interaction, bot.auction_manager.place_bid(team_id), "Bid Failed")


@bot.tree.command(name="sold", description="Sell the current player to the leading team (Admin only)")
@admin_or_owner_check()
async def sold(interaction: discord.Interaction):
    await run_action(interaction, bot.auction_manager.sell_player(), "Sale Failed")


@bot.tree.command(name="unsold", description="Mark the current player as unsold (Admin only)")
@admin_or_owner_check()
async def mark_unsold(interaction: discord.Interaction):
    await run_action(interaction, bot.auction_manager.mark_unsold(), "Cannot Mark Unsold")


@bot.tree.command(name="cancel", description="Cancel bidding and put the player back (Admin only)")
@admin_or_owner_check()
async def cancel_bidding(interaction: discord.Interaction):
    await run_action(interaction, bot.auction_manager.cancel_bidding(), "Cannot Cancel")


@bot.tree.command(name="undobid", description="Undo the last bid on the current player (Admin only)")
@admin_or_owner_check()
async def undo_bid(interaction: discord.Interaction):
    await run_action(interaction, bot.auction_manager.undo_current_bid(), "Undo Failed")


@bot.tree.command(name="undosale", description="Undo the most recent sale (Admin only)")
@admin_or_owner_check()
async def undo_sale(interaction: discord.Interaction):
    await run_action(interaction, bot.auction_manager.undo_last_sale(), "Undo Failed")


@bot.tree.command(name="fasttrack", description="Re-auction all unsold players (Admin only)")
@admin_or_owner_check()
async def fast_track(interaction: discord.Interaction):
    await run_action(
        interaction, bot.auction_manager.start_fast_track(), "Cannot Start Fast Track"
    )


@bot.tree.command(name="endfasttrack", description="End the fast track round (Admin only)")
@admin_or_owner_check()
async def end_fast_track(interaction: discord.Interaction):
    await run_action(
        interaction, bot.auction_manager.end_fast_track(), "Cannot End Fast Track"
    )


# ============================================================
# TEAM, CAPTAIN & RETENTION COMMANDS
# ============================================================


@bot.tree.command(name="renameteam", description="Rename a team (Admin only)")
@app_commands.describe(team="Team to rename", name="New team name")
@app_commands.autocomplete(team=team_autocomplete)
@admin_or_owner_check()
async def rename_team(interaction: discord.Interaction, team: str, name: str):
    team_id = resolve_team(team)
    if team_id is None:
        await send_error(interaction, "Rename Failed", f"Invalid team: {team}")
        return
    await run_action(
        interaction, bot.auction_manager.update_team_name(team_id, name), "Rename Failed"
    )


@bot.tree.command(name="resetteam", description="Release a team's bought players and restore its budget (Admin only)")
@app_commands.describe(team="Team to reset")
@app_commands.autocomplete(team=team_autocomplete)
@admin_or_owner_check()
async def reset_team(interaction: discord.Interaction, team: str):
    team_id = resolve_team(team)
    if team_id is None:
        await send_error(interaction, "Reset Failed", f"Invalid team: {team}")
        return
    await run_action(interaction, bot.auction_manager.reset_team(team_id), "Reset Failed")


@bot.tree.command(name="renameteams", description="Rename several teams at once (Admin only)")
@app_commands.describe(names="Team ids and names, e.g. 1=Super Kings, 2=Royals")
@admin_or_owner_check()
async def rename_teams(interaction: discord.Interaction, names: str):
    try:
        parsed = parse_team_names(names)
    except ValueError as e:
        await send_error(interaction, "Rename Failed", str(e))
        return
    await run_action(
        interaction, bot.auction_manager.update_team_names(parsed), "Rename Failed"
    )


@bot.tree.command(name="assigncaptain", description="Assign a captain to a team (Admin only)")
@app_commands.describe(team="Team", player="Captain from the roster")
@app_commands.autocomplete(team=team_autocomplete, player=captain_autocomplete)
@admin_or_owner_check()
async def assign_captain(interaction: discord.Interaction, team: str, player: str):
    team_id = resolve_team(team)
    found = resolve_player(player)
    if team_id is None or found is None:
        await send_error(interaction, "Assign Failed", "Team or captain not found")
        return
    await run_action(
        interaction,
        bot.auction_manager.assign_captain(team_id, found.id),
        "Assign Failed",
    )


@bot.tree.command(name="unassigncaptain", description="Remove a team's captain (Admin only)")
@app_commands.describe(team="Team")
@app_commands.autocomplete(team=team_autocomplete)
@admin_or_owner_check()
async def unassign_captain(interaction: discord.Interaction, team: str):
    team_id = resolve_team(team)
    if team_id is None:
        await send_error(interaction, "Unassign Failed", f"Invalid team: {team}")
        return
    await run_action(
        interaction, bot.auction_manager.unassign_captain(team_id), "Unassign Failed"
    )


@bot.tree.command(name="retain", description="Retain a player for a team at a fixed price (Admin only)")
@app_commands.describe(team="Team", player="Player to retain", amount="Retention price")
@app_commands.autocomplete(team=team_autocomplete, player=available_player_autocomplete)
@admin_or_owner_check()
async def retain_player(
    interaction: discord.Interaction, team: str, player: str, amount: int = 0
):
    team_id = resolve_team(team)
    found = resolve_player(player)
    if team_id is None or found is None:
        await send_error(interaction, "Retention Failed", "Team or player not found")
        return
    await run_action(
        interaction,
        bot.auction_manager.assign_retention(team_id, found.id, amount),
        "Retention Failed",
    )


@bot.tree.command(name="unretain", description="Remove a player's retention and refund the team (Admin only)")
@app_commands.describe(player="Retained player")
@app_commands.autocomplete(player=retained_player_autocomplete)
@admin_or_owner_check()
async def unretain_player(interaction: discord.Interaction, player: str):
    found = resolve_player(player)
    if found is None:
        await send_error(interaction, "Retention Failed", f"Player not found: {player}")
        return
    await run_action(
        interaction,
        bot.auction_manager.unassign_retention(found.id),
        "Retention Failed",
    )


# ============================================================
# HISTORY & EXPORT
# ============================================================


@bot.tree.command(name="history", description="Show recent sales (Admin only)")
@app_commands.describe(limit="Number of sales to show (default 20)")
@admin_or_owner_check()
async def sale_history(interaction: discord.Interaction, limit: int = 20):
    history = bot.auction_manager.get_action_history(limit)
    await send_long(interaction, bot.formatter.format_action_history(history), ephemeral=True)


@bot.tree.command(name="export", description="Download the auction results workbook (Admin only)")
@admin_or_owner_check()
async def export_results(interaction: discord.Interaction):
    await interaction.response.defer(ephemeral=True)
    snapshot = bot.auction_manager.get_auction_data()
    try:
        path = await asyncio.to_thread(
            FileManager.export_auction_workbook, AUCTION_EXPORT_FILE, snapshot
        )
    except PermissionError as e:
        await send_error(interaction, "Export Failed", str(e))
        return
    await interaction.followup.send(
        "📊 Auction results", file=discord.File(path), ephemeral=True
    )


# ============================================================
# VIEWER COMMANDS
# ============================================================


@bot.tree.command(name="status", description="Show current auction status")
async def show_status(interaction: discord.Interaction):
    manager = bot.auction_manager
    store = manager.store

    msg = f"**Auction Status:** {store.auction_status.upper()}\n"
    if store.file_name:
        msg += f"**Roster:** {store.file_name}\n"

    current = manager.get_current_bid()
    if current:
        player = store.get_player(current.player_id)
        leader = store.team_name(current.bidding_team) or "No bids yet"
        msg += (
            f"\n🎯 **On the block:** {player.name} ({player.category})\n"
            f"💰 **Current Bid:** {format_amount(current.current_amount)}\n"
            f"🏆 **Leading:** {leader}\n"
        )
    else:
        msg += "\nNo player on the block.\n"

    non_captains = [p for p in store.players if p.category != CATEGORY_CAPTAIN]
    msg += (
        f"\nAvailable: {sum(1 for p in non_captains if p.status == PLAYER_AVAILABLE)} | "
        f"Sold: {sum(1 for p in non_captains if p.status == PLAYER_SOLD)} | "
        f"Unsold: {sum(1 for p in non_captains if p.status == PLAYER_UNSOLD)}"
    )
    await interaction.response.send_message(msg)


@bot.tree.command(name="stats", description="Show auction stats")
async def show_stats(interaction: discord.Interaction):
    await interaction.response.send_message(
        bot.formatter.format_stats(bot.auction_manager.get_stats())
    )


@bot.tree.command(name="teams", description="Show all teams with budgets and squad sizes")
async def show_teams(interaction: discord.Interaction):
    teams = bot.auction_manager.compare_teams()
    if not teams:
        await interaction.response.send_message(
            "No teams yet. Upload a roster with `/upload`.", ephemeral=True
        )
        return

    max_players = bot.auction_manager.settings.max_players_per_team
    msg = "**Teams:**\n```\n"
    msg += f"{'Team':<16} {'Budget':>10} {'Squad':>7} {'Spent':>10} {'Avg':>8}\n"
    msg += "=" * 55 + "\n"
    for t in teams:
        msg += (
            f"{t['name'][:16]:<16} {format_amount(t['budget_remaining']):>10} "
            f"{t['total_players']:>3}/{max_players:<3} {format_amount(t['total_spent']):>10} "
            f"{format_amount(t['average_player_cost']):>8}\n"
        )
    msg += "```"
    await send_long(interaction, msg)


@bot.tree.command(name="squad", description="View any team's squad and budget")
@app_commands.describe(team="Team")
@app_commands.autocomplete(team=team_autocomplete)
async def view_squad(interaction: discord.Interaction, team: str):
    """View any team's squad - available to all users"""
    manager = bot.auction_manager
    team_id = resolve_team(team)
    if team_id is None:
        await interaction.response.send_message(f"Invalid team: {team}", ephemeral=True)
        return

    team_data = manager.store.get_team(team_id).to_dict()
    members = manager.store.team_players(
        team_id, PLAYER_SOLD, PLAYER_RETAINED, PLAYER_ASSIGNED
    )
    msg = bot.formatter.format_squad_display(
        team_data, members, manager.settings.max_players_per_team
    )
    msg += "\n" + bot.formatter.format_budget_line(manager.get_team_budget(team_id))
    await send_long(interaction, msg)


@bot.tree.command(name="teamstats", description="Spending and squad breakdown for a team")
@app_commands.describe(team="Team")
@app_commands.autocomplete(team=team_autocomplete)
async def team_stats(interaction: discord.Interaction, team: str):
    manager = bot.auction_manager
    team_id = resolve_team(team)
    if team_id is None:
        await interaction.response.send_message(f"Invalid team: {team}", ephemeral=True)
        return

    msg = bot.formatter.format_team_stats(
        manager.get_team_stats(team_id), manager.get_team_budget(team_id)
    )
    await send_long(interaction, msg)


@bot.tree.command(name="players", description="List players by status")
@app_commands.describe(status="Which players to list (default: available)")
@app_commands.choices(
    status=[
        app_commands.Choice(name="Available", value=PLAYER_AVAILABLE),
        app_commands.Choice(name="Sold", value=PLAYER_SOLD),
        app_commands.Choice(name="Unsold", value=PLAYER_UNSOLD),
        app_commands.Choice(name="Retained", value=PLAYER_RETAINED),
        app_commands.Choice(name="Captains", value=PLAYER_ASSIGNED),
    ]
)
async def list_players(
    interaction: discord.Interaction,
    status: Optional[app_commands.Choice[str]] = None,
):
    wanted = status.value if status else PLAYER_AVAILABLE
    players = bot.auction_manager.store.players_with_status(wanted)
    msg = f"**Players ({wanted}): {len(players)}**\n"
    msg += bot.formatter.format_player_list(players, limit=40)
    await send_long(interaction, msg)


@bot.tree.command(name="userhelp", description="Show available commands")
async def user_help_command(interaction: discord.Interaction):
    help_text = """
**Cricket Auction Bot - Commands**

**Follow the auction:**
`/status` - Current player on the block and auction status.
`/stats` - Highest, lowest and average sale prices.
`/teams` - Budgets and squad sizes for every team.
`/squad <team>` - A team's squad and remaining budget.
`/teamstats <team>` - Spending, prices and category breakdown for a team.
`/players [status]` - Players by status.
"""
    if await is_admin_or_owner(interaction):
        help_text += """
**Admin - Setup:**
`/setup` `/upload` `/validatefile` `/clear` `/setauctionchannel`

**Admin - Auction:**
`/start` `/stop` `/finish` `/reset` `/fasttrack` `/endfasttrack`

**Admin - Lot:**
`/bidon <player>` `/bid <team>` `/sold` `/unsold` `/cancel` `/undobid` `/undosale`

**Admin - Teams:**
`/renameteam` `/renameteams` `/resetteam` `/assigncaptain` `/unassigncaptain` `/retain` `/unretain`
`/history` `/export`
"""
    await interaction.response.send_message(help_text, ephemeral=True)


# ============================================================
# MISC (errors / main)
# ============================================================


@bot.tree.error
async def on_app_command_error(
    interaction: discord.Interaction, error: app_commands.AppCommandError
):
    if isinstance(error, app_commands.MissingPermissions):
        error_msg = "You don't have permission to use this command."
    elif isinstance(error, app_commands.CommandOnCooldown):
        error_msg = f"Command on cooldown. Try again in {error.retry_after:.1f}s"
    elif isinstance(error, app_commands.CheckFailure):
        error_msg = str(error) or "You can't use this command."
    else:
        logger.error(f"Command error: {error}", exc_info=True)
        error_msg = f"An error occurred: {str(error)}"

    try:
        if not interaction.response.is_done():
            await interaction.response.send_message(error_msg, ephemeral=True)
        else:
            await interaction.followup.send(error_msg, ephemeral=True)
    except discord.HTTPException:
        logger.error(f"Could not send error message to user: {error_msg}")


if __name__ == "__main__":
    if not TOKEN:
        logger.critical(
            "Please set your bot token in DISCORD_TOKEN environment variable or .env"
        )
    else:
        logger.info("Starting Discord Auction Bot...")
        bot.run(TOKEN)
