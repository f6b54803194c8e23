"""Primary Registry: Cook County open-data catalog (Socrata)."""

from .assessments import assessment_changes, market_multiplier, state_equalizer
from .client import RegistryClient, SalesTolerances

__all__ = [
    "RegistryClient",
    "SalesTolerances",
    "assessment_changes",
    "market_multiplier",
    "state_equalizer",
]
