"""
Runtime configuration for the prize desk.

Values live JSON-encoded in the `configurations` table and are served
from an in-memory cache. The 'rewards' category backs the RewardPolicy
handed to the reward rules; every change is written to the admin audit
log together with the value it replaced.
"""

import json
import logging
from dataclasses import replace
from typing import Any, Dict, Optional
from sqlalchemy import select
from prizedesk.services.base import BaseService
from prizedesk.database.models import Configuration, AdminAuditLog
from prizedesk.utils.exceptions import ValidationError
from prizedesk.utils.reward_rules import RewardPolicy

logger = logging.getLogger(__name__)

# Configuration key -> RewardPolicy field
REWARD_POLICY_KEYS = {
    'rewards.first_place_share': 'first_place_share',
    'rewards.kill_share': 'kill_share',
    'rewards.kill_estimate_ratio': 'kill_estimate_ratio',
    'rewards.currency_decimals': 'currency_decimals',
    'rewards.budget_epsilon': 'budget_epsilon',
    'rewards.pre_start_statuses': 'pre_start_statuses',
}


def _decode(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return {"error": "invalid JSON", "raw": raw}


def _coerce_policy_value(key: str, value: Any) -> Any:
    field_name = REWARD_POLICY_KEYS[key]
    try:
        if field_name == 'pre_start_statuses':
            if isinstance(value, str):
                raise TypeError("expected a list of statuses")
            return tuple(str(v).lower() for v in value)
        if field_name == 'currency_decimals':
            return int(value)
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(key, str(e))


class ConfigurationService(BaseService):
    """Cached key/value configuration with an audit trail."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self._cache: Dict[str, Any] = {}

    async def load_all(self):
        """Reload the cache, retrying while SQLite reports the database as locked."""
        await self.execute_with_retry(self._load_all)

    async def _load_all(self):
        async with self.get_session() as session:
            rows = (await session.execute(select(Configuration))).scalars().all()

        cache = {}
        for row in rows:
            try:
                cache[row.key] = json.loads(row.value)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring config key '{row.key}': stored value is not JSON")

        self._cache = cache
        logger.info(f"Loaded {len(cache)} configuration value(s)")

    def get(self, key: str, default: Any = None) -> Any:
        return self._cache.get(key, default)

    async def set(self, key: str, value: Any, admin_id: int):
        """
        Persist a configuration value and refresh the cache.

        Reward keys are checked by building the resulting RewardPolicy first,
        so an invalid split is rejected before anything is written.

        Args:
            key: Configuration key, e.g. 'rewards.kill_share'
            value: Any JSON-serializable value
            admin_id: Discord ID of the admin, recorded in the audit log

        Raises:
            ValidationError: The value would produce an invalid RewardPolicy
        """
        if key in REWARD_POLICY_KEYS:
            self._build_policy({**self._cache, key: value})

        encoded = json.dumps(value)
        async with self.get_session() as session:
            row = await session.get(Configuration, key)
            previous = _decode(row.value) if row else None
            if row:
                row.value = encoded
            else:
                session.add(Configuration(key=key, value=encoded))

            session.add(AdminAuditLog(
                admin_id=admin_id,
                action_type='config_set',
                target_type='configuration',
                details=json.dumps({'key': key, 'old_value': previous, 'new_value': value})
            ))

        logger.info(f"Admin {admin_id} set {key} = {encoded}")
        await self.load_all()

    def list_all(self) -> Dict[str, Any]:
        return self._cache.copy()

    def get_by_category(self, category: str) -> Dict[str, Any]:
        """Values under '<category>.', keyed without the prefix"""
        prefix = f"{category}."
        return {
            key[len(prefix):]: value
            for key, value in self._cache.items()
            if key.startswith(prefix)
        }

    def get_reward_policy(self) -> RewardPolicy:
        """Reward split constants: Config defaults overlaid with stored 'rewards.*' values."""
        return self._build_policy(self._cache)

    @staticmethod
    def _build_policy(values: Dict[str, Any]) -> RewardPolicy:
        overrides = {
            field_name: _coerce_policy_value(key, values[key])
            for key, field_name in REWARD_POLICY_KEYS.items()
            if key in values
        }
        return replace(RewardPolicy(), **overrides)
