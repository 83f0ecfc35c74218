"""
Stores

Abstract store interfaces and in-memory implementations.
"""

from .base import (
    AlertStore,
    ChannelSettingsStore,
    CostFeed,
    DigestQueueStore,
    PreferencesStore,
    RuleStore,
)
from .memory import (
    InMemoryAlertStore,
    InMemoryChannelSettingsStore,
    InMemoryCostFeed,
    InMemoryDigestQueueStore,
    InMemoryPreferencesStore,
    InMemoryRuleStore,
)

__all__ = [
    "AlertStore",
    "ChannelSettingsStore",
    "CostFeed",
    "DigestQueueStore",
    "PreferencesStore",
    "RuleStore",
    "InMemoryAlertStore",
    "InMemoryChannelSettingsStore",
    "InMemoryCostFeed",
    "InMemoryDigestQueueStore",
    "InMemoryPreferencesStore",
    "InMemoryRuleStore",
]
