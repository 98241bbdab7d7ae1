import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Prize desk configuration settings"""

    # Discord settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    DISCORD_GUILD_ID = int(os.getenv('DISCORD_GUILD_ID', 0))
    DISCORD_GUILD_IDS = os.getenv('DISCORD_GUILD_IDS', '')  # Comma-separated for multi-guild support
    OWNER_DISCORD_ID = int(os.getenv('OWNER_DISCORD_ID', 0))

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///prizedesk.db')

    # Bot settings
    COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', '!')
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')

    # Tournament economics defaults
    DEFAULT_COMMISSION_PERCENTAGE = float(os.getenv('DEFAULT_COMMISSION_PERCENTAGE', 10))
    DEFAULT_MATCH_TYPE = 'squad'
    CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', '₹')

    # Reward split defaults (overridable at runtime via ConfigurationService 'rewards.*' keys)
    FIRST_PLACE_SHARE = float(os.getenv('FIRST_PLACE_SHARE', 0.10))
    KILL_SHARE = float(os.getenv('KILL_SHARE', 0.90))
    KILL_ESTIMATE_RATIO = 0.8
    CURRENCY_DECIMALS = int(os.getenv('CURRENCY_DECIMALS', 0))
    BUDGET_EPSILON = 0.01

    # Statuses in which results cannot be processed yet
    PRE_START_STATUSES = ('draft', 'upcoming', 'scheduled')

    @classmethod
    def get_guild_ids(cls):
        """Get list of guild IDs for command syncing"""
        if cls.DISCORD_GUILD_IDS:
            # Multi-guild support: comma-separated IDs
            try:
                return [int(guild_id.strip()) for guild_id in cls.DISCORD_GUILD_IDS.split(',') if guild_id.strip()]
            except ValueError:
                raise ValueError("DISCORD_GUILD_IDS must be comma-separated integers")
        elif cls.DISCORD_GUILD_ID:
            return [cls.DISCORD_GUILD_ID]
        else:
            # Global sync
            return []

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DISCORD_TOKEN:
            raise ValueError("DISCORD_TOKEN is required")
        if not cls.OWNER_DISCORD_ID:
            raise ValueError("OWNER_DISCORD_ID is required")
        if not 0 <= cls.DEFAULT_COMMISSION_PERCENTAGE <= 100:
            raise ValueError("DEFAULT_COMMISSION_PERCENTAGE must be between 0 and 100")
