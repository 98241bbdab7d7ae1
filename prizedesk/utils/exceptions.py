"""
Custom exceptions for the result verification and reward distribution engine.

Every exception carries a log-oriented message plus a user-facing message
that the Discord layer renders directly.
"""

class PrizeDeskError(Exception):
    """Base exception for prize desk errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class ValidationError(PrizeDeskError):
    """Raised when numeric or enum input is malformed. Nothing is mutated."""
    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Invalid value for '{field}': {reason}",
            f"❌ Invalid {field}: {reason}"
        )
        self.field = field

class BudgetExceededError(PrizeDeskError):
    """Raised when a manual reward configuration would exceed the prize pool."""
    def __init__(self, planned_total: float, prize_pool: float):
        super().__init__(
            f"Planned payout {planned_total:.2f} exceeds prize pool {prize_pool:.2f}",
            f"❌ Planned rewards ({planned_total:.2f}) exceed the prize pool ({prize_pool:.2f})."
        )
        self.planned_total = planned_total
        self.prize_pool = prize_pool

class TournamentNotStarted(PrizeDeskError):
    """Raised when results are processed before the tournament has begun."""
    def __init__(self, tournament_id: int, status: str):
        super().__init__(
            f"Tournament {tournament_id} has not started (status: {status})",
            f"❌ Results can only be verified once the tournament has started (current status: {status})."
        )
        self.tournament_id = tournament_id
        self.status = status

class ImmutableAfterSettlement(PrizeDeskError):
    """Raised when a distributed result record is edited."""
    def __init__(self, result_id: int, field: str = None):
        detail = f" (field '{field}')" if field else ""
        super().__init__(
            f"Result {result_id} has already been settled{detail}",
            "❌ Rewards for this result were already distributed; it can no longer be edited."
        )
        self.result_id = result_id
        self.field = field

class NotEligibleForSettlement(PrizeDeskError):
    """Raised when a result cannot be settled (unverified or cancelled tournament)."""
    def __init__(self, result_id: int, reason: str):
        super().__init__(
            f"Result {result_id} is not eligible for settlement: {reason}",
            f"❌ Cannot distribute rewards: {reason}"
        )
        self.result_id = result_id
        self.reason = reason

class LedgerWriteFailure(PrizeDeskError):
    """Raised when writing the ledger or crediting the wallet fails. Safe to retry."""
    def __init__(self, result_id: int, details: str = None):
        super().__init__(
            f"Ledger write failed for result {result_id}: {details}",
            "❌ Wallet credit failed. Nothing was paid; please retry."
        )
        self.result_id = result_id
        self.details = details

class TournamentNotFoundError(PrizeDeskError):
    """Raised when a tournament does not exist."""
    def __init__(self, tournament_id: int):
        super().__init__(
            f"Tournament {tournament_id} not found",
            f"❌ Tournament #{tournament_id} not found!"
        )
        self.tournament_id = tournament_id

class ResultNotFoundError(PrizeDeskError):
    """Raised when a result record does not exist."""
    def __init__(self, result_id: int):
        super().__init__(
            f"Result {result_id} not found",
            f"❌ Result #{result_id} not found!"
        )
        self.result_id = result_id

class ResultStateError(PrizeDeskError):
    """Raised when a transition is not allowed from the result's current state."""
    def __init__(self, result_id: int, state: str, action: str):
        super().__init__(
            f"Cannot {action} result {result_id} in state {state}",
            f"❌ This result is already {state.lower()}; you can't {action} it anymore."
        )
        self.result_id = result_id
        self.state = state
