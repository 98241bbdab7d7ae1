"""
Distribution Confirmation View

Button confirmation shown before rewards of a tournament are paid out.
Only the admin who ran the command can press the buttons; the command
waits on the view and distributes only when `confirmed` is set.
"""

import discord

from prizedesk.config import Config


class DistributionConfirmationView(discord.ui.View):
    """Confirm/cancel buttons for distributing all pending rewards of a tournament"""

    def __init__(self, admin_discord_id: int, tournament_title: str, pending_count: int, pending_amount: float):
        super().__init__(timeout=30.0)
        self.admin_discord_id = admin_discord_id
        self.tournament_title = tournament_title
        self.pending_count = pending_count
        self.pending_amount = pending_amount
        self.confirmed = False

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id == self.admin_discord_id:
            return True
        await interaction.response.send_message("❌ Only the admin who started this payout can answer it.", ephemeral=True)
        return False

    def _disable_buttons(self):
        for child in self.children:
            child.disabled = True

    @discord.ui.button(label="Distribute", style=discord.ButtonStyle.danger, emoji="💰")
    async def confirm_distribution(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.confirmed = True
        self._disable_buttons()
        self.stop()

        await interaction.response.edit_message(
            embed=discord.Embed(
                title="🔄 Distributing Rewards...",
                description=(
                    f"Paying {Config.CURRENCY_SYMBOL}{self.pending_amount:,.2f} to "
                    f"{self.pending_count} player(s) of **{self.tournament_title}**."
                ),
                color=discord.Color.orange()
            ),
            view=self
        )

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.secondary, emoji="✖️")
    async def cancel_distribution(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.stop()
        await interaction.response.edit_message(
            embed=discord.Embed(
                title="Distribution Cancelled",
                description="No rewards were paid out.",
                color=discord.Color.red()
            ),
            view=None
        )

    async def on_timeout(self):
        self._disable_buttons()
