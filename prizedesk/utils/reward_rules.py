"""
Reward rules for battle-royale tournaments.

Pure functions turning a tournament's economics into a prize pool, suggested
reward values and per-result rewards. Nothing in here touches the database
or reads ambient state: the split constants arrive in an explicit
RewardPolicy built by the caller (see ConfigurationService.get_reward_policy).

Reward values configured on a tournament are tagged:
- AutoReward: computed from the policy, refreshed whenever economics change
- ManualReward: set by an admin, only cleared by an explicit reset
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import ClassVar, Dict, Optional, Tuple, Union

from prizedesk.config import Config
from prizedesk.utils.exceptions import BudgetExceededError, ValidationError

TEAM_SIZES = {
    'solo': 1,
    'duo': 2,
    'trio': 3,
    'squad': 4,
    'custom': 4,
}
DEFAULT_TEAM_SIZE = 4


@dataclass(frozen=True)
class RewardPolicy:
    """Split constants used by the reward rules"""
    first_place_share: float = Config.FIRST_PLACE_SHARE
    kill_share: float = Config.KILL_SHARE
    kill_estimate_ratio: float = Config.KILL_ESTIMATE_RATIO
    currency_decimals: int = Config.CURRENCY_DECIMALS
    budget_epsilon: float = Config.BUDGET_EPSILON
    pre_start_statuses: Tuple[str, ...] = Config.PRE_START_STATUSES

    def __post_init__(self):
        if not 0 <= self.first_place_share <= 1:
            raise ValidationError('first_place_share', 'must be between 0 and 1')
        if not 0 <= self.kill_share <= 1:
            raise ValidationError('kill_share', 'must be between 0 and 1')
        if self.first_place_share + self.kill_share > 1 + 1e-9:
            raise ValidationError('kill_share', 'first place and kill shares together exceed 100% of the pool')
        if self.kill_estimate_ratio <= 0:
            raise ValidationError('kill_estimate_ratio', 'must be positive')
        if self.currency_decimals < 0:
            raise ValidationError('currency_decimals', 'must not be negative')
        if self.budget_epsilon < 0:
            raise ValidationError('budget_epsilon', 'must not be negative')


@dataclass(frozen=True)
class AutoReward:
    """Reward amount computed from the policy"""
    amount: float
    is_manual: ClassVar[bool] = False


@dataclass(frozen=True)
class ManualReward:
    """Reward amount pinned by an admin"""
    amount: float
    is_manual: ClassVar[bool] = True


Reward = Union[AutoReward, ManualReward]


@dataclass
class TournamentEconomics:
    """Economic attributes of a tournament that drive reward calculation"""
    entry_fee: float
    max_teams: int
    match_type: str = Config.DEFAULT_MATCH_TYPE
    commission_percentage: float = Config.DEFAULT_COMMISSION_PERCENTAGE
    first_place_prize: Optional[Reward] = None
    kill_reward_per_kill: Optional[Reward] = None
    position_rewards: Dict[int, float] = field(default_factory=dict)


@dataclass(frozen=True)
class RewardSuggestion:
    """Auto-calculated reward values for a tournament"""
    prize_pool: float
    total_players: int
    estimated_total_kills: int
    suggested_first_prize: float
    suggested_kill_reward: float


@dataclass(frozen=True)
class ResultInputs:
    """Final kills and finishing position of one participant"""
    kills: int
    position: Optional[int] = None


@dataclass(frozen=True)
class RewardBreakdown:
    """Reward snapshot of a single result"""
    placement_reward: float
    kill_reward: float
    total_reward: float


def round_currency(amount: float, decimals: int) -> float:
    """Round half-up to the currency's minor unit."""
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(str(amount)).quantize(quantum, rounding=ROUND_HALF_UP))


def team_size_for(match_type: Optional[str]) -> int:
    if not match_type:
        return DEFAULT_TEAM_SIZE
    return TEAM_SIZES.get(str(match_type).strip().lower(), DEFAULT_TEAM_SIZE)


def total_players(economics: TournamentEconomics) -> int:
    return economics.max_teams * team_size_for(economics.match_type)


def compute_prize_pool(economics: TournamentEconomics) -> float:
    """
    Prize pool after platform commission.

    prize_pool = entry_fee * total_players * (1 - commission / 100), floored at 0.
    """
    revenue = economics.entry_fee * total_players(economics)
    pool = revenue * (1 - economics.commission_percentage / 100)
    return max(0.0, pool)


def estimate_total_kills(player_count: int, policy: RewardPolicy) -> int:
    """Expected number of kills in a match, never below 1."""
    estimate = Decimal(str(player_count * policy.kill_estimate_ratio)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return max(1, int(estimate))


def suggest_rewards(economics: TournamentEconomics, policy: RewardPolicy) -> RewardSuggestion:
    """
    Auto-calculate the first place prize and the per-kill reward.

    The first place share of the pool goes to the winner, the kill share is
    spread evenly over the estimated total kill count.
    """
    pool = compute_prize_pool(economics)
    players = total_players(economics)
    kills = estimate_total_kills(players, policy)
    return RewardSuggestion(
        prize_pool=pool,
        total_players=players,
        estimated_total_kills=kills,
        suggested_first_prize=pool * policy.first_place_share,
        suggested_kill_reward=pool * policy.kill_share / kills,
    )


def refresh_reward(current: Optional[Reward], computed: float) -> Reward:
    """Replace an auto value with a fresh computation; manual values are kept."""
    if isinstance(current, ManualReward):
        return current
    return AutoReward(computed)


def apply_suggestions(economics: TournamentEconomics, policy: RewardPolicy) -> TournamentEconomics:
    """Return economics with every AutoReward recomputed from the policy."""
    suggestion = suggest_rewards(economics, policy)
    return replace(
        economics,
        first_place_prize=refresh_reward(economics.first_place_prize, suggestion.suggested_first_prize),
        kill_reward_per_kill=refresh_reward(economics.kill_reward_per_kill, suggestion.suggested_kill_reward),
    )


def effective_first_place_prize(economics: TournamentEconomics, policy: RewardPolicy) -> float:
    if economics.first_place_prize is not None:
        return economics.first_place_prize.amount
    return suggest_rewards(economics, policy).suggested_first_prize


def effective_kill_reward(economics: TournamentEconomics, policy: RewardPolicy) -> float:
    if economics.kill_reward_per_kill is not None:
        return economics.kill_reward_per_kill.amount
    return suggest_rewards(economics, policy).suggested_kill_reward


def effective_position_table(economics: TournamentEconomics, policy: RewardPolicy) -> Dict[int, float]:
    """
    Position -> percentage of the prize pool.

    An explicit table wins. Without one, the first place prize is expressed as
    a single-entry table so placement always goes through the same lookup.
    """
    if economics.position_rewards:
        return dict(economics.position_rewards)

    pool = compute_prize_pool(economics)
    first_prize = effective_first_place_prize(economics, policy)
    if pool <= 0 or first_prize <= 0:
        return {}
    return {1: first_prize / pool * 100}


def placement_reward_for(position: Optional[int], table: Dict[int, float], prize_pool: float) -> float:
    if position is None:
        return 0.0
    percentage = table.get(position)
    if percentage is None:
        return 0.0
    return prize_pool * percentage / 100


def validate_result_inputs(kills, position) -> ResultInputs:
    """Reject malformed kills/position before anything is mutated."""
    if isinstance(kills, bool) or not isinstance(kills, int):
        raise ValidationError('kills', 'must be a whole number')
    if kills < 0:
        raise ValidationError('kills', 'must not be negative')
    if position is not None:
        if isinstance(position, bool) or not isinstance(position, int):
            raise ValidationError('position', 'must be a whole number')
        if position <= 0:
            raise ValidationError('position', 'must be a positive number')
    return ResultInputs(kills=kills, position=position)


def compute_reward(inputs: ResultInputs, economics: TournamentEconomics, policy: RewardPolicy) -> RewardBreakdown:
    """
    Reward snapshot for one result.

    Each component is rounded to the currency's minor unit before summing so
    total_reward is always exactly placement_reward + kill_reward.
    """
    pool = compute_prize_pool(economics)
    table = effective_position_table(economics, policy)

    placement = round_currency(placement_reward_for(inputs.position, table, pool), policy.currency_decimals)
    kill = round_currency(inputs.kills * effective_kill_reward(economics, policy), policy.currency_decimals)

    return RewardBreakdown(
        placement_reward=placement,
        kill_reward=kill,
        total_reward=round_currency(placement + kill, policy.currency_decimals),
    )


def validate_position_table(table: Optional[Dict]) -> Dict[int, float]:
    """Normalize a position table, rejecting bad positions and percentages."""
    if not table:
        return {}

    normalized = {}
    for raw_position, raw_percentage in table.items():
        try:
            position = int(raw_position)
            percentage = float(raw_percentage)
        except (TypeError, ValueError):
            raise ValidationError('position_rewards', f"entry {raw_position!r}: {raw_percentage!r} is not numeric")
        if position <= 0:
            raise ValidationError('position_rewards', f"position {position} must be positive")
        if not 0 <= percentage <= 100:
            raise ValidationError('position_rewards', f"percentage for position {position} must be between 0 and 100")
        normalized[position] = percentage

    if sum(normalized.values()) > 100 + 1e-9:
        raise ValidationError('position_rewards', 'percentages add up to more than 100')
    return normalized


def validate_economics(entry_fee: float, max_teams: int, commission_percentage: float) -> None:
    if entry_fee is None or entry_fee < 0:
        raise ValidationError('entry_fee', 'must not be negative')
    if isinstance(max_teams, bool) or not isinstance(max_teams, int) or max_teams <= 0:
        raise ValidationError('max_teams', 'must be a positive whole number')
    if commission_percentage is None or not 0 <= commission_percentage <= 100:
        raise ValidationError('commission_percentage', 'must be between 0 and 100')


def validate_reward_budget(
    economics: TournamentEconomics,
    policy: RewardPolicy,
    planned_first_prize: Optional[float] = None,
    kill_reward_per_kill: Optional[float] = None,
    position_table: Optional[Dict[int, float]] = None,
) -> float:
    """
    Check a reward configuration against the prize pool.

    Values left as None fall back to the tournament's current configuration.
    A position table and a planned or manual first place prize are each
    checked; the larger placement total is the one held against the pool.
    Returns the planned total payout; raises BudgetExceededError when it goes
    over the pool by more than the policy's epsilon.
    """
    for name, value in (('first_place_prize', planned_first_prize), ('kill_reward_per_kill', kill_reward_per_kill)):
        if value is not None and value < 0:
            raise ValidationError(name, 'must not be negative')

    pool = compute_prize_pool(economics)
    players = total_players(economics)
    estimated_kills = estimate_total_kills(players, policy)

    table = validate_position_table(position_table) if position_table is not None else dict(economics.position_rewards)
    placements = []
    if table:
        placements.append(pool * sum(table.values()) / 100)
    if planned_first_prize is not None:
        placements.append(planned_first_prize)
    elif not table or getattr(economics.first_place_prize, 'is_manual', False):
        placements.append(effective_first_place_prize(economics, policy))
    planned_placement = max(placements)

    per_kill = kill_reward_per_kill if kill_reward_per_kill is not None else effective_kill_reward(economics, policy)
    planned_total = planned_placement + per_kill * estimated_kills

    if planned_total > pool + policy.budget_epsilon:
        raise BudgetExceededError(planned_total, pool)
    return planned_total
