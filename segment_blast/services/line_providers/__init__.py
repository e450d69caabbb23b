"""
LINE providers - abstraction over Messaging API delivery endpoints.

Supports:
- multicast (up to 500 recipients per call)
- push (one recipient per call)

Usage:
    from segment_blast.services.line_providers import get_provider

    provider = get_provider("multicast")
    result = await provider.send(["U0123..."], [{"type": "text", "text": "hi"}])
"""

import logging
from typing import Optional

from segment_blast.core.config import settings
from segment_blast.core.exceptions import ConfigurationError
from segment_blast.services.line_providers.base import (
    LineProvider,
    ProviderType,
    SendResult,
)
from segment_blast.services.line_providers.messaging_api import (
    MULTICAST_MAX_RECIPIENTS,
    MulticastProvider,
    PushProvider,
)

logger = logging.getLogger(__name__)

__all__ = [
    "LineProvider",
    "ProviderType",
    "SendResult",
    "MulticastProvider",
    "PushProvider",
    "MULTICAST_MAX_RECIPIENTS",
    "get_provider",
]


def get_provider(
    provider_type: str,
    access_token: Optional[str] = None,
) -> LineProvider:
    """
    Creates the provider for a campaign run.

    Args:
        provider_type: 'multicast' or 'push'
        access_token: Channel access token (default: settings)

    Returns:
        Configured LineProvider

    Raises:
        ConfigurationError: Unknown provider or missing token
    """
    token = access_token or settings.LINE_CHANNEL_ACCESS_TOKEN
    if not token:
        raise ConfigurationError("LINE_CHANNEL_ACCESS_TOKEN is required")

    try:
        mode = ProviderType(provider_type)
    except ValueError:
        raise ConfigurationError(f"Unknown provider: {provider_type}")

    if mode == ProviderType.MULTICAST:
        provider = MulticastProvider(access_token=token)
    else:
        provider = PushProvider(access_token=token)

    logger.debug(f"[Providers] Created {mode.value} provider")
    return provider
