"""Image pull policies.

This module provides the policies that decide whether an image must be
pulled before use.
"""

from .pull_policy import (
    AgeBasedPullPolicy,
    AlwaysPullPolicy,
    DefaultPullPolicy,
    ImagePullPolicy,
    NeverPullPolicy,
    pull_policy_from_config,
)

__all__ = [
    "AgeBasedPullPolicy",
    "AlwaysPullPolicy",
    "DefaultPullPolicy",
    "ImagePullPolicy",
    "NeverPullPolicy",
    "pull_policy_from_config",
]
