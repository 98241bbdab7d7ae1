import discord
from discord.ext import commands
from discord import app_commands
from typing import Optional

from prizedesk.config import Config
from prizedesk.database.models import MatchType
from prizedesk.operations.tournament_operations import TournamentOperations
from prizedesk.operations.verification_operations import VerificationOperations
from prizedesk.utils.logger import setup_logger
from prizedesk.utils.reward_rules import compute_prize_pool

logger = setup_logger(__name__)

MATCH_TYPE_CHOICES = [app_commands.Choice(name=m.value, value=m.value) for m in MatchType]


def owner_only():
    return commands.check(lambda ctx: ctx.author.id == Config.OWNER_DISCORD_ID)


class TournamentCog(commands.Cog):
    """Tournament setup, registration and result submission"""

    def __init__(self, bot):
        self.bot = bot
        self.tournament_ops = TournamentOperations(bot.db, bot.config_service)
        self.verification_ops = VerificationOperations(bot.db, bot.config_service)
        self.logger = logger

    @commands.hybrid_command(name='tournaments', description="List tournaments and their prize pools")
    async def list_tournaments(self, ctx):
        tournaments = await self.bot.db.get_all_tournaments()
        if not tournaments:
            await ctx.send(embed=discord.Embed(
                title="Tournaments",
                description="No tournaments found.",
                color=discord.Color.orange()
            ))
            return

        lines = []
        for tournament in tournaments[:20]:
            pool = compute_prize_pool(tournament.to_economics())
            lines.append(
                f"`#{tournament.id}` **{tournament.title}** • {tournament.match_type.value} • "
                f"entry {Config.CURRENCY_SYMBOL}{tournament.entry_fee:g} • pool {Config.CURRENCY_SYMBOL}{pool:,.0f} • "
                f"`{tournament.status.value}`"
            )

        embed = discord.Embed(title="Tournaments", description="\n".join(lines), color=discord.Color.blue())
        if len(tournaments) > 20:
            embed.set_footer(text=f"Showing first 20 of {len(tournaments)} tournaments")
        await ctx.send(embed=embed)

    @commands.hybrid_command(name='create-tournament', description="Create a tournament with auto-calculated rewards")
    @app_commands.describe(
        title="Tournament title",
        entry_fee="Entry fee per player",
        max_teams="Maximum number of teams",
        match_type="Team format",
        commission="Platform commission in percent (default from config)"
    )
    @app_commands.choices(match_type=MATCH_TYPE_CHOICES)
    @owner_only()
    async def create_tournament(
        self,
        ctx,
        title: str,
        entry_fee: float,
        max_teams: int,
        match_type: str = Config.DEFAULT_MATCH_TYPE,
        commission: Optional[float] = None
    ):
        tournament = await self.tournament_ops.create_tournament(
            title=title,
            entry_fee=entry_fee,
            max_teams=max_teams,
            match_type=match_type,
            commission_percentage=commission,
            admin_id=ctx.author.id
        )
        embed = discord.Embed(
            title="✅ Tournament Created",
            description=f"**{tournament.title}** (#{tournament.id})",
            color=discord.Color.green()
        )
        embed.add_field(name="Prize Pool", value=f"{Config.CURRENCY_SYMBOL}{compute_prize_pool(tournament.to_economics()):,.2f}", inline=True)
        embed.add_field(name="First Place", value=f"{Config.CURRENCY_SYMBOL}{tournament.first_place_prize:,.2f}", inline=True)
        embed.add_field(name="Per Kill", value=f"{Config.CURRENCY_SYMBOL}{tournament.kill_reward_per_kill:,.2f}", inline=True)
        embed.set_footer(text="Use /set-rewards to override the auto-calculated values")
        await ctx.send(embed=embed)

    @commands.hybrid_command(name='edit-economics', description="Change entry fee, capacity, format or commission")
    @app_commands.describe(
        tournament_id="Tournament ID",
        entry_fee="New entry fee",
        max_teams="New team capacity",
        match_type="New team format",
        commission="New commission in percent"
    )
    @app_commands.choices(match_type=MATCH_TYPE_CHOICES)
    @owner_only()
    async def edit_economics(
        self,
        ctx,
        tournament_id: int,
        entry_fee: Optional[float] = None,
        max_teams: Optional[int] = None,
        match_type: Optional[str] = None,
        commission: Optional[float] = None
    ):
        tournament = await self.tournament_ops.update_economics(
            tournament_id,
            admin_id=ctx.author.id,
            entry_fee=entry_fee,
            max_teams=max_teams,
            match_type=match_type,
            commission_percentage=commission
        )
        await ctx.send(
            f"✅ Economics of **{tournament.title}** updated. Prize pool is now "
            f"{Config.CURRENCY_SYMBOL}{compute_prize_pool(tournament.to_economics()):,.2f}."
        )

    @commands.hybrid_command(name='join', description="Register for a tournament")
    @app_commands.describe(tournament_id="Tournament ID", team_name="Optional team name")
    async def join(self, ctx, tournament_id: int, *, team_name: Optional[str] = None):
        user = await self.bot.db.get_or_create_user(ctx.author.id, ctx.author.name)
        registration = await self.tournament_ops.register_participant(
            tournament_id, user.id, display_name=ctx.author.display_name, team_name=team_name
        )
        await ctx.send(f"✅ You're registered for tournament #{tournament_id} (registration #{registration.id}).", ephemeral=True)

    @commands.hybrid_command(name='submit-result', description="Submit your kills and finishing position")
    @app_commands.describe(
        tournament_id="Tournament ID",
        kills="Your kill count",
        position="Your finishing position",
        screenshot="Screenshot of the result screen"
    )
    async def submit_result(
        self,
        ctx,
        tournament_id: int,
        kills: int,
        position: Optional[int] = None,
        screenshot: Optional[discord.Attachment] = None
    ):
        user = await self.bot.db.get_or_create_user(ctx.author.id, ctx.author.name)
        record = await self.verification_ops.submit_result(
            tournament_id,
            user.id,
            kills=kills,
            position=position,
            screenshot_url=screenshot.url if screenshot else None
        )
        await ctx.send(
            f"✅ Result submitted: {record.kills} kills, position {record.position_label}. "
            f"An admin will verify it shortly.",
            ephemeral=True
        )

    @commands.hybrid_command(name='wallet', description="Show your wallet balance")
    async def wallet(self, ctx):
        user = await self.bot.db.get_or_create_user(ctx.author.id, ctx.author.name)
        balance = await self.bot.db.get_wallet_balance(user.id)
        await ctx.send(f"💰 Wallet balance: **{Config.CURRENCY_SYMBOL}{balance:,.2f}**", ephemeral=True)


async def setup(bot):
    await bot.add_cog(TournamentCog(bot))
