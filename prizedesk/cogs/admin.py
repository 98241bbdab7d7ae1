import json
import discord
from discord.ext import commands
from discord import app_commands
from sqlalchemy import select, func

from prizedesk.config import Config
from prizedesk.database.models import User, Tournament, TournamentResult, WalletTransaction, AdminAuditLog
from prizedesk.services.configuration import REWARD_POLICY_KEYS
from prizedesk.utils.error_embeds import ErrorEmbeds
from prizedesk.utils.exceptions import PrizeDeskError
from prizedesk.utils.logger import setup_logger

logger = setup_logger(__name__)


class AdminCog(commands.Cog):
    """Admin-only commands for managing the prize desk"""

    def __init__(self, bot):
        self.bot = bot
        self.logger = logger

    def cog_check(self, ctx):
        """Check if user is the bot owner"""
        return ctx.author.id == Config.OWNER_DISCORD_ID

    @commands.command(name='shutdown')
    async def shutdown_bot(self, ctx):
        """Shutdown the bot (Owner only)"""
        await ctx.send("🔴 Shutting down Prize Desk...")
        await self.bot.close()

    @commands.command(name='reload')
    async def reload_cog(self, ctx, cog_name: str):
        """Reload a specific cog (Owner only)"""
        try:
            await self.bot.reload_extension(f'prizedesk.cogs.{cog_name}')
            await ctx.send(f"✅ Reloaded `{cog_name}` cog successfully.")
        except commands.ExtensionError as e:
            self.logger.error(f"Reload of {cog_name} failed: {e}", exc_info=True)
            await ctx.send(f"❌ Failed to reload `{cog_name}`: {e}")

    @commands.command(name='dbstats')
    async def database_stats(self, ctx):
        """Show database statistics (Owner only)"""
        async with self.bot.db.get_session() as session:
            user_count = await session.scalar(select(func.count(User.id)))
            tournament_count = await session.scalar(select(func.count(Tournament.id)))
            result_count = await session.scalar(select(func.count(TournamentResult.id)))
            transaction_count = await session.scalar(select(func.count(WalletTransaction.id)))
            paid_total = await session.scalar(select(func.coalesce(func.sum(Tournament.total_distributed), 0.0)))

        embed = discord.Embed(
            title="📊 Database Statistics",
            color=discord.Color.blue()
        )
        embed.add_field(name="Users", value=user_count, inline=True)
        embed.add_field(name="Tournaments", value=tournament_count, inline=True)
        embed.add_field(name="Results", value=result_count, inline=True)
        embed.add_field(name="Transactions", value=transaction_count, inline=True)
        embed.add_field(name="Total Paid", value=f"{Config.CURRENCY_SYMBOL}{paid_total:,.2f}", inline=True)

        await ctx.send(embed=embed)

    @commands.hybrid_command(name='admin-config-set', description="Set a runtime reward policy value")
    @app_commands.describe(key="Configuration key", value="JSON value, e.g. 0.4 or [\"draft\", \"upcoming\"]")
    @app_commands.choices(key=[app_commands.Choice(name=k, value=k) for k in REWARD_POLICY_KEYS])
    async def config_set(self, ctx, key: str, *, value: str):
        """Set a configuration value (Owner only)"""
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            await ctx.send(embed=ErrorEmbeds.invalid_input(f"`{value}` is not valid JSON."))
            return

        try:
            await self.bot.config_service.set(key, parsed, ctx.author.id)
        except PrizeDeskError as e:
            await ctx.send(embed=ErrorEmbeds.from_error(e))
            return

        await ctx.send(f"✅ `{key}` set to `{json.dumps(parsed)}`.")

    @commands.hybrid_command(name='admin-config-list', description="Show the active reward policy")
    async def config_list(self, ctx):
        """Show the reward policy currently in effect (Owner only)"""
        policy = self.bot.config_service.get_reward_policy()
        overrides = self.bot.config_service.get_by_category('rewards')

        embed = discord.Embed(title="⚙️ Reward Policy", color=discord.Color.blue())
        for key, field_name in REWARD_POLICY_KEYS.items():
            marker = " (override)" if key[len('rewards.'):] in overrides else ""
            embed.add_field(name=f"{key}{marker}", value=f"`{getattr(policy, field_name)}`", inline=False)
        await ctx.send(embed=embed)

    @commands.hybrid_command(name='admin-audit-log', description="Show recent admin actions")
    @app_commands.describe(limit="Number of entries (max 25)")
    async def audit_log(self, ctx, limit: int = 10):
        """Show the most recent audit log entries (Owner only)"""
        limit = max(1, min(limit, 25))
        async with self.bot.db.get_session() as session:
            result = await session.execute(
                select(AdminAuditLog).order_by(AdminAuditLog.id.desc()).limit(limit)
            )
            entries = result.scalars().all()

        if not entries:
            await ctx.send("No audit entries yet.")
            return

        lines = [
            f"`{e.created_at:%Y-%m-%d %H:%M}` **{e.action_type}** "
            f"{e.target_type or ''}{f' #{e.target_id}' if e.target_id else ''} by {e.admin_id or 'system'}"
            for e in entries
        ]
        await ctx.send(embed=discord.Embed(
            title="📜 Audit Log",
            description="\n".join(lines),
            color=discord.Color.greyple()
        ))


async def setup(bot):
    await bot.add_cog(AdminCog(bot))
