"""
UI Module - Discord UI Components

This module contains Discord UI components for the prize desk bot.

Available components:
- DistributionConfirmationView: Button confirmation before paying out a tournament
"""

from prizedesk.ui.distribution_confirmation import DistributionConfirmationView

__all__ = ['DistributionConfirmationView']
