from discord import app_commands
import discord
import logging
from typing import Callable, Optional
from config import BOT_ADMINS

logger = logging.getLogger("AuctionBot.AdminChecks")


async def admin_reason(interaction: discord.Interaction) -> Optional[str]:
    """
    Return why the user counts as an auction operator, or None if they don't.
    Operators are the application owner, ids in BOT_ADMINS and guild members
    with the Administrator permission.
    """
    user = interaction.user
    client = interaction.client

    try:
        app_info = getattr(client, "_cached_app_info", None)
        if app_info is None:
            app_info = await client.application_info()
            setattr(client, "_cached_app_info", app_info)
        owner = getattr(app_info, "owner", None)
        owner_id = getattr(owner, "id", None)
        if owner_id and user.id == owner_id:
            return "app owner"
    except Exception as e:
        logger.debug(f"app_info lookup failed: {e}")

    if user.id in BOT_ADMINS:
        return "BOT_ADMINS"

    try:
        if interaction.guild and user.guild_permissions.administrator:
            return "guild admin"
    except AttributeError as e:
        logger.debug(f"guild permission check error: {e}")

    return None


async def is_admin_or_owner(interaction: discord.Interaction) -> bool:
    """Non-decorator form, for handlers that show extra detail to operators."""
    return await admin_reason(interaction) is not None


def admin_or_owner_check() -> Callable:
    """
    app_commands check for operator-only auction commands.
    Logs the reason for allow/deny to help debugging.
    """

    async def predicate(interaction: discord.Interaction) -> bool:
        reason = await admin_reason(interaction)
        if reason:
            logger.info(
                f"admin_or_owner_check: allowed by {reason} (user={interaction.user.id})"
            )
            return True

        logger.info(f"admin_or_owner_check: DENIED for user {interaction.user.id}")
        raise app_commands.CheckFailure(
            "Only auction admins can use this command."
        )

    return app_commands.check(predicate)
