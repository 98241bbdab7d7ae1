"""
Services package for the prize desk.

Service Layer & Database Safety
"""

from .base import BaseService
from .configuration import ConfigurationService

__all__ = ['BaseService', 'ConfigurationService']
