"""
Error embeds shown by the prize desk commands.

Engine errors carry their own user_message; the embed title is picked
from the exception type so admins can tell a rejected edit from a failed
wallet credit at a glance.
"""

import discord

from prizedesk.utils.exceptions import (
    PrizeDeskError, ValidationError, BudgetExceededError, LedgerWriteFailure, NotEligibleForSettlement,
    ImmutableAfterSettlement, TournamentNotStarted, TournamentNotFoundError, ResultNotFoundError,
    ResultStateError
)

# Most specific class first
ERROR_TITLES = (
    (BudgetExceededError, "Budget Exceeded"),
    (LedgerWriteFailure, "Wallet Credit Failed"),
    (ImmutableAfterSettlement, "Already Settled"),
    (NotEligibleForSettlement, "Not Eligible For Payout"),
    (TournamentNotStarted, "Tournament Not Started"),
    (TournamentNotFoundError, "Tournament Not Found"),
    (ResultNotFoundError, "Result Not Found"),
    (ResultStateError, "Result Locked"),
    (ValidationError, "Invalid Input"),
)


def _embed(title: str, description: str, color: discord.Color = None) -> discord.Embed:
    return discord.Embed(title=title, description=description, color=color or discord.Color.red())


class ErrorEmbeds:
    """Factory for the red (and occasionally orange) embeds of the admin desk."""

    @staticmethod
    def from_error(error: PrizeDeskError) -> discord.Embed:
        title = next((t for cls, t in ERROR_TITLES if isinstance(error, cls)), "Request Rejected")
        embed = _embed(title, error.user_message)
        if isinstance(error, LedgerWriteFailure):
            embed.set_footer(text="Nothing was credited. Running the distribution again is safe.")
        return embed

    @staticmethod
    def command_error(error: str) -> discord.Embed:
        return _embed("Command Error", f"Something went wrong: {error}\n\nNo payout was made by this command.")

    @staticmethod
    def invalid_input(message: str) -> discord.Embed:
        return _embed("Invalid Input", message)

    @staticmethod
    def permission_denied() -> discord.Embed:
        return _embed("Permission Denied", "Only the prize desk owner can run this command.")

    @staticmethod
    def nothing_to_distribute() -> discord.Embed:
        """No verified, unpaid results in the tournament"""
        return _embed(
            "Nothing To Distribute",
            "There are no verified results waiting for payout in this tournament.",
            discord.Color.orange()
        )
