"""Anti-bot strategy chain."""

from .chain import AntiBotChain, AntiBotContext, BaseStrategy, RequestDirective
from .strategies import (
    BackoffStrategy,
    HeaderStrategy,
    IdentityRotationStrategy,
    PacingStrategy,
    RetryStrategy,
    backoff_delay,
    build_chain,
)

__all__ = [
    "AntiBotChain",
    "AntiBotContext",
    "BackoffStrategy",
    "BaseStrategy",
    "HeaderStrategy",
    "IdentityRotationStrategy",
    "PacingStrategy",
    "RequestDirective",
    "RetryStrategy",
    "backoff_delay",
    "build_chain",
]
