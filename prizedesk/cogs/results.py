import discord
from discord.ext import commands
from discord import app_commands
from typing import Optional, Dict, List

from prizedesk.config import Config
from prizedesk.database.models import TournamentStatus
from prizedesk.operations.distribution_operations import DistributionOperations
from prizedesk.operations.result_operations import ResultOperations, EDITABLE_FIELDS
from prizedesk.operations.tournament_operations import TournamentOperations, REWARD_FIELDS
from prizedesk.operations.verification_operations import VerificationOperations
from prizedesk.ui import DistributionConfirmationView
from prizedesk.utils.error_embeds import ErrorEmbeds
from prizedesk.utils.exceptions import ValidationError
from prizedesk.utils.logger import setup_logger

logger = setup_logger(__name__)

# Discord embeds allow 25 fields; keep a little headroom for summaries
MAX_RESULT_LINES = 20


def format_amount(amount: float) -> str:
    return f"{Config.CURRENCY_SYMBOL}{amount:,.2f}".rstrip('0').rstrip('.')


def parse_position_table(raw: str) -> Dict[int, float]:
    """Parse '1:60, 2:30' into {1: 60.0, 2: 30.0}"""
    table = {}
    for part in raw.split(','):
        part = part.strip()
        if not part:
            continue
        position, separator, percentage = part.partition(':')
        if not separator:
            raise ValidationError('position_rewards', f"'{part}' is not in position:percentage form")
        try:
            table[int(position)] = float(percentage.rstrip('%'))
        except ValueError:
            raise ValidationError('position_rewards', f"'{part}' is not numeric")
    return table


def parse_field_value(field: str, raw: str):
    """Convert /edit-result input into the value type of the field"""
    if raw.strip().lower() in ('none', 'clear', '-'):
        return None
    if field in ('kills', 'position'):
        try:
            return int(raw)
        except ValueError:
            raise ValidationError(field, 'must be a whole number')
    return raw


class ResultsCog(commands.Cog):
    """Result verification and reward distribution (Owner only)"""

    def __init__(self, bot):
        self.bot = bot
        self.tournament_ops = TournamentOperations(bot.db, bot.config_service)
        self.result_ops = ResultOperations(bot.db, bot.config_service)
        self.verification_ops = VerificationOperations(bot.db, bot.config_service)
        self.distribution_ops = DistributionOperations(bot.db, bot.config_service)
        self.logger = logger

    def cog_check(self, ctx):
        """Check if user is the bot owner"""
        return ctx.author.id == Config.OWNER_DISCORD_ID

    @commands.hybrid_command(name='results', description="List the results of a tournament with computed rewards")
    @app_commands.describe(tournament_id="Tournament ID")
    async def list_results(self, ctx, tournament_id: int):
        """Show every participant's result, kills, position, reward and state"""
        if ctx.interaction:
            await ctx.defer(ephemeral=True)

        tournament = await self.tournament_ops.get_tournament(tournament_id)
        results = await self.result_ops.get_results(tournament_id)

        embed = discord.Embed(
            title=f"📋 Results - {tournament.title}",
            description=f"Status: **{tournament.status.value}** • {len(results)} participant(s)",
            color=discord.Color.blue()
        )
        if not results:
            embed.add_field(name="No Participants", value="Nobody has registered yet.", inline=False)

        for record in results[:MAX_RESULT_LINES]:
            name = record.registration.display_name if record.registration else f"User {record.user_id}"
            flag = "" if record.result_submitted else " ⚠️ not submitted"
            embed.add_field(
                name=f"#{record.id} {name}{flag}",
                value=(
                    f"Pos {record.position_label} • {record.kills} kills\n"
                    f"Placement {format_amount(record.placement_reward)} + Kills {format_amount(record.kill_reward)}"
                    f" = **{format_amount(record.total_reward)}**\n"
                    f"State: `{record.state.value}`"
                ),
                inline=True
            )
        if len(results) > MAX_RESULT_LINES:
            embed.set_footer(text=f"... and {len(results) - MAX_RESULT_LINES} more")

        await ctx.send(embed=embed)

    @commands.hybrid_command(name='verification-queue', description="Submitted results waiting for verification")
    @app_commands.describe(tournament_id="Tournament ID")
    async def verification_queue(self, ctx, tournament_id: int):
        results = await self.verification_ops.get_verification_queue(tournament_id)
        if not results:
            await ctx.send("✅ No results are waiting for verification.")
            return

        lines = []
        for record in results[:MAX_RESULT_LINES]:
            name = record.registration.display_name if record.registration else f"User {record.user_id}"
            screenshot = " 🖼️" if record.screenshot_url else ""
            lines.append(f"`#{record.id}` {name}: {record.kills} kills, pos {record.position_label}{screenshot}")

        await ctx.send(embed=discord.Embed(
            title=f"🕒 Verification Queue ({len(results)})",
            description="\n".join(lines),
            color=discord.Color.orange()
        ))

    @commands.hybrid_command(name='verify-result', description="Verify a result with the final kills and position")
    @app_commands.describe(
        result_id="Result ID (see /results)",
        kills="Final kill count",
        position="Final finishing position",
        notes="Optional verification notes"
    )
    async def verify_result(self, ctx, result_id: int, kills: int, position: Optional[int] = None, *, notes: Optional[str] = None):
        """Verify & edit: set final numbers, compute rewards and mark the result verified"""
        record = await self.verification_ops.verify_result(
            result_id=result_id,
            admin_id=ctx.author.id,
            kills=kills,
            position=position,
            notes=notes
        )
        image_url = await self.result_ops.get_result_image_url(result_id)

        embed = discord.Embed(
            title="✅ Result Verified",
            description=f"Result #{record.id}",
            color=discord.Color.green()
        )
        embed.add_field(name="Position", value=record.position_label, inline=True)
        embed.add_field(name="Kills", value=record.kills, inline=True)
        embed.add_field(name="Placement Reward", value=format_amount(record.placement_reward), inline=True)
        embed.add_field(name="Kill Reward", value=format_amount(record.kill_reward), inline=True)
        embed.add_field(name="Total Reward", value=f"**{format_amount(record.total_reward)}**", inline=True)
        if record.verification_notes:
            embed.add_field(name="Notes", value=record.verification_notes, inline=False)
        if image_url:
            embed.set_thumbnail(url=image_url)
        embed.set_footer(text="Action logged for audit trail")
        await ctx.send(embed=embed)

    @commands.hybrid_command(name='edit-result', description="Edit one field of a result record")
    @app_commands.describe(
        result_id="Result ID (see /results)",
        field="Field to edit",
        value="New value ('none' clears position, screenshot or notes)"
    )
    @app_commands.choices(field=[app_commands.Choice(name=f, value=f) for f in EDITABLE_FIELDS])
    async def edit_result(self, ctx, result_id: int, field: str, *, value: str):
        record = await self.result_ops.upsert_field(
            result_id, field, parse_field_value(field, value), admin_id=ctx.author.id
        )
        await ctx.send(
            f"✅ Result #{record.id}: `{field}` updated. "
            f"Rewards now {format_amount(record.placement_reward)} + {format_amount(record.kill_reward)}"
            f" = **{format_amount(record.total_reward)}**"
        )

    @commands.hybrid_command(name='distribute-rewards', description="Pay out all verified, undistributed results of a tournament")
    @app_commands.describe(tournament_id="Tournament ID")
    async def distribute_rewards(self, ctx, tournament_id: int):
        """
        Distribute all rewards of a tournament.

        Requires button confirmation within 30 seconds.
        """
        tournament = await self.tournament_ops.get_tournament(tournament_id)
        pending = await self.distribution_ops.get_pending_results(tournament_id)
        if not pending:
            await ctx.send(embed=ErrorEmbeds.nothing_to_distribute())
            return

        pending_amount = sum(r.total_reward or 0.0 for r in pending)
        embed = discord.Embed(
            title="⚠️ Confirm Reward Distribution",
            color=discord.Color.orange()
        )
        embed.add_field(name="Tournament", value=tournament.title, inline=True)
        embed.add_field(name="Results", value=len(pending), inline=True)
        embed.add_field(name="Total Payout", value=format_amount(pending_amount), inline=True)
        embed.add_field(
            name="⚠️ Warning",
            value="Wallet credits cannot be undone!",
            inline=False
        )
        embed.set_footer(text="Press Distribute to confirm • Times out in 30 seconds")

        view = DistributionConfirmationView(ctx.author.id, tournament.title, len(pending), pending_amount)
        confirmation_msg = await ctx.send(embed=embed, view=view)

        if await view.wait():
            await confirmation_msg.edit(embed=discord.Embed(
                title="⏰ Confirmation Timeout",
                description="Reward distribution cancelled due to timeout.",
                color=discord.Color.orange()
            ), view=None)
            return

        if not view.confirmed:
            return

        report = await self.distribution_ops.distribute_all(tournament_id, admin_id=ctx.author.id)

        result_embed = discord.Embed(
            title="✅ Rewards Distributed" if not report.failed else "⚠️ Rewards Partially Distributed",
            description=f"Total paid: **{format_amount(report.total_distributed)}**",
            color=discord.Color.green() if not report.failed else discord.Color.orange()
        )
        result_embed.add_field(name="Succeeded", value=len(report.succeeded), inline=True)
        result_embed.add_field(name="Failed", value=len(report.failed), inline=True)
        if report.failed:
            failures = [f"• {e.display_name} (#{e.result_id}): {e.error}" for e in report.failed[:10]]
            result_embed.add_field(name="Failures (safe to retry)", value="\n".join(failures), inline=False)
        result_embed.set_footer(text="Action logged for audit trail")

        await confirmation_msg.edit(embed=result_embed, view=None)

    @commands.hybrid_command(name='prize-summary', description="Show the prize pool and reward configuration of a tournament")
    @app_commands.describe(tournament_id="Tournament ID")
    async def prize_summary(self, ctx, tournament_id: int):
        summary = await self.tournament_ops.get_prize_summary(tournament_id)

        embed = discord.Embed(
            title=f"💰 Prize Summary - {summary.title}",
            color=discord.Color.gold()
        )
        embed.add_field(name="Entry Fee", value=format_amount(summary.entry_fee), inline=True)
        embed.add_field(name="Players", value=f"{summary.registered_players}/{summary.total_players}", inline=True)
        embed.add_field(name="Commission", value=f"{summary.commission_percentage:g}%", inline=True)
        embed.add_field(name="Prize Pool", value=f"**{format_amount(summary.prize_pool)}**", inline=True)
        embed.add_field(
            name="First Place Prize",
            value=f"{format_amount(summary.first_place_prize)} ({'manual' if summary.first_place_prize_manual else 'auto'})",
            inline=True
        )
        embed.add_field(
            name="Per Kill",
            value=f"{format_amount(summary.kill_reward_per_kill)} ({'manual' if summary.kill_reward_manual else 'auto'})",
            inline=True
        )
        embed.add_field(
            name="Suggested",
            value=(
                f"First {format_amount(summary.suggested_first_prize)} • "
                f"Kill {format_amount(summary.suggested_kill_reward)} "
                f"(~{summary.estimated_total_kills} kills)"
            ),
            inline=False
        )
        if summary.position_rewards:
            table = ", ".join(f"{pos}: {pct:g}%" for pos, pct in sorted(summary.position_rewards.items()))
            embed.add_field(name="Placement Table", value=table, inline=False)
        embed.add_field(name="Verified Rewards", value=format_amount(summary.verified_rewards), inline=True)
        embed.add_field(name="Distributed", value=format_amount(summary.total_distributed), inline=True)
        embed.add_field(name="Remaining", value=format_amount(summary.remaining_budget), inline=True)

        await ctx.send(embed=embed)

    @commands.hybrid_command(name='set-rewards', description="Manually set reward values of a tournament")
    @app_commands.describe(
        tournament_id="Tournament ID",
        first_place_prize="Fixed first place prize",
        kill_reward_per_kill="Fixed reward per kill",
        position_rewards="Placement table, e.g. '1:5, 2:3, 3:2' (percent of prize pool)",
        reason="Optional reason (for audit trail)"
    )
    async def set_rewards(
        self,
        ctx,
        tournament_id: int,
        first_place_prize: Optional[float] = None,
        kill_reward_per_kill: Optional[float] = None,
        position_rewards: Optional[str] = None,
        *,
        reason: Optional[str] = None
    ):
        table = parse_position_table(position_rewards) if position_rewards else None
        tournament = await self.tournament_ops.configure_rewards(
            tournament_id,
            admin_id=ctx.author.id,
            first_place_prize=first_place_prize,
            kill_reward_per_kill=kill_reward_per_kill,
            position_rewards=table,
            reason=reason
        )
        await ctx.send(
            f"✅ Rewards for **{tournament.title}** updated: first place {format_amount(tournament.first_place_prize)}, "
            f"per kill {format_amount(tournament.kill_reward_per_kill)}"
        )

    @commands.hybrid_command(name='reset-rewards', description="Clear manual reward values and go back to auto-calculation")
    @app_commands.describe(tournament_id="Tournament ID", field="Reward to reset (default: both)")
    @app_commands.choices(field=[app_commands.Choice(name=f, value=f) for f in REWARD_FIELDS])
    async def reset_rewards(self, ctx, tournament_id: int, field: Optional[str] = None):
        fields: List[str] = [field] if field else list(REWARD_FIELDS)
        tournament = await self.tournament_ops.reset_auto_rewards(tournament_id, admin_id=ctx.author.id, fields=fields)
        await ctx.send(
            f"✅ {', '.join(fields)} reset to auto for **{tournament.title}**: first place "
            f"{format_amount(tournament.first_place_prize)}, per kill {format_amount(tournament.kill_reward_per_kill)}"
        )

    @commands.hybrid_command(name='tournament-status', description="Change the status of a tournament")
    @app_commands.describe(tournament_id="Tournament ID", status="New status", reason="Optional reason (for audit trail)")
    @app_commands.choices(status=[app_commands.Choice(name=s.value, value=s.value) for s in TournamentStatus])
    async def tournament_status(self, ctx, tournament_id: int, status: str, *, reason: Optional[str] = None):
        tournament = await self.tournament_ops.update_status(tournament_id, status, admin_id=ctx.author.id, reason=reason)
        await ctx.send(f"✅ **{tournament.title}** is now `{tournament.status.value}`.")


async def setup(bot):
    await bot.add_cog(ResultsCog(bot))
