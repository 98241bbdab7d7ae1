import asyncio
import logging
from typing import List, Optional

import discord
from discord.ext import commands
from discord import app_commands

from prizedesk.config import Config
from prizedesk.database.database import Database
from prizedesk.services.configuration import ConfigurationService
from prizedesk.utils.error_embeds import ErrorEmbeds
from prizedesk.utils.exceptions import PrizeDeskError
from prizedesk.utils.logger import setup_logger

COGS = (
    'prizedesk.cogs.admin',
    'prizedesk.cogs.tournament',
    'prizedesk.cogs.results',
)


def unwrap_error(error: Exception) -> Exception:
    """Hybrid commands nest the raised exception in one or two wrappers"""
    while getattr(error, 'original', None) is not None:
        error = error.original
    return error


class PrizeDeskBot(commands.Bot):
    """Discord front end of the prize desk: owns the Database and ConfigurationService the cogs share."""

    def __init__(self):
        intents = discord.Intents.default()
        intents.message_content = True

        super().__init__(
            command_prefix=Config.COMMAND_PREFIX,
            intents=intents,
            help_command=None,
            owner_id=Config.OWNER_DISCORD_ID or None
        )
        self.tree.on_error = self.on_app_command_error

        self.db: Optional[Database] = None
        self.config_service: Optional[ConfigurationService] = None
        self.logger = setup_logger(__name__)

    async def setup_hook(self):
        self.logger.info("Starting prize desk")

        self.db = Database()
        await self.db.initialize()

        self.config_service = ConfigurationService(self.db.session_factory)
        await self.config_service.load_all()
        policy = self.config_service.get_reward_policy()
        self.logger.info(
            f"Reward policy: first place {policy.first_place_share:.0%}, kills {policy.kill_share:.0%}, "
            f"{policy.currency_decimals} decimal(s)"
        )

        for cog in COGS:
            try:
                await self.load_extension(cog)
                self.logger.info(f"Loaded cog: {cog}")
            except commands.ExtensionError as e:
                self.logger.error(f"Failed to load cog {cog}: {e}", exc_info=True)

        await self._sync_commands()

    async def _sync_commands(self):
        if not self.tree.get_commands():
            self.logger.warning("No application commands registered, skipping sync")
            return

        guild_ids = Config.get_guild_ids()
        if not guild_ids:
            # Global propagation can take up to an hour
            try:
                synced = await self.tree.sync()
                self.logger.info(f"Synced {len(synced)} command(s) globally")
            except discord.errors.DiscordException as e:
                self.logger.error(f"Global command sync failed: {e}", exc_info=True)
            return

        synced_total = await self._sync_to_guilds(guild_ids)
        self.logger.info(f"Synced {synced_total} command instance(s) across {len(guild_ids)} guild(s)")

    async def _sync_to_guilds(self, guild_ids: List[int]) -> int:
        total = 0
        for guild_id in guild_ids:
            guild = discord.Object(id=guild_id)
            self.tree.copy_global_to(guild=guild)
            try:
                synced = await self.tree.sync(guild=guild)
            except discord.errors.Forbidden:
                self.logger.error(f"Missing 'applications.commands' scope in guild {guild_id}")
                continue
            except discord.errors.HTTPException as e:
                self.logger.error(f"Sync to guild {guild_id} failed with status {e.status}: {e.text}")
                continue
            total += len(synced)
        return total

    async def on_ready(self):
        self.logger.info(f"{self.user} connected to {len(self.guilds)} guild(s)")
        await self.change_presence(activity=discord.Game(name="Prize Desk | /results"))

    def _error_embed(self, error: Exception, command_name: str, user) -> discord.Embed:
        """Map a command failure to the embed shown to the admin"""
        original = unwrap_error(error)

        if isinstance(original, (commands.CheckFailure, app_commands.CheckFailure)):
            self.logger.info(f"Permission denied for '{command_name}' by {user}")
            return ErrorEmbeds.permission_denied()
        if isinstance(original, PrizeDeskError):
            self.logger.warning(f"'{command_name}' rejected for {user}: {original}")
            return ErrorEmbeds.from_error(original)
        if isinstance(original, (commands.MissingRequiredArgument, commands.BadArgument)):
            return ErrorEmbeds.invalid_input(str(original))
        if isinstance(original, (commands.CommandOnCooldown, app_commands.CommandOnCooldown)):
            return ErrorEmbeds.invalid_input(f"Command is on cooldown. Try again in {original.retry_after:.1f}s.")

        self.logger.error(f"Unexpected error in '{command_name}'", exc_info=original)
        return ErrorEmbeds.command_error("unexpected failure, see the bot log")

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        if interaction.extras.get('error_handled'):
            # Hybrid command already answered by on_command_error
            return
        command_name = interaction.command.name if interaction.command else 'unknown'
        embed = self._error_embed(error, command_name, interaction.user)
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.errors.DiscordException as e:
            self.logger.error(f"Failed to send error response: {e}")

    async def on_command_error(self, ctx: commands.Context, error: Exception):
        if isinstance(error, commands.CommandNotFound):
            return
        command_name = ctx.command.qualified_name if ctx.command else 'unknown'
        await ctx.send(embed=self._error_embed(error, command_name, ctx.author))
        if ctx.interaction is not None:
            ctx.interaction.extras['error_handled'] = True

    async def close(self):
        self.logger.info("Shutting down prize desk")
        if self.db:
            await self.db.close()
        await super().close()


async def main():
    Config.validate()
    async with PrizeDeskBot() as bot:
        await bot.start(Config.DISCORD_TOKEN)


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted, prize desk stopped")


if __name__ == "__main__":
    run()
