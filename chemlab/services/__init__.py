"""
Service Layer Package

Business flows that combine several gamification operations into one
transaction, kept apart from the HTTP layer (chemlab.api) and the data access
layer (chemlab.db.queries).
"""

from chemlab.services.gamification_service import GamificationService

__all__ = [
    "GamificationService",
]
