"""Core functionality for the shot clock."""

from shotclock.core.models import CommitSnapshot, DerivedClock, RepositoryContext

__all__ = ["CommitSnapshot", "DerivedClock", "RepositoryContext"]
