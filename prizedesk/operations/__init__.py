"""
Operations Layer

This package provides business logic operations that compose database methods
for the result verification and reward distribution workflows. Operations
modules handle multi-step transactions, validation, and business rules while
maintaining clean separation of concerns.

Architecture:
- Database layer: Pure data access and CRUD operations
- Operations layer: Business logic composition and workflows
- Command layer: Discord integration and user interface

Each operations module focuses on a specific domain:
- TournamentOperations: Tournament economics and reward configuration
- ResultOperations: Per-registration result records and field edits
- VerificationOperations: Player submissions and admin verification
- SettlementOperations: Idempotent wallet credit of one verified result
- DistributionOperations: Batch settlement of a whole tournament
"""
