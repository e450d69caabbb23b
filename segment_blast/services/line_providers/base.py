"""
Abstract interface for LINE delivery providers.

Defines the contract every provider implements so the dispatcher can
switch between multicast (many recipients per call) and push (one
recipient per call, personalized payloads).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class ProviderType(str, Enum):
    """Supported provider modes."""

    MULTICAST = "multicast"
    PUSH = "push"


@dataclass
class SendResult:
    """
    Result of one provider call.

    A call either fully succeeds or is treated as fully failed; no
    per-recipient outcome is reported.
    """

    success: bool
    error: Optional[str] = None
    status_code: Optional[int] = None
    request_id: Optional[str] = None
    provider: Optional[str] = None


class LineProvider(ABC):
    """
    Abstract LINE Messaging API provider.

    Attributes:
        provider_type: Provider mode
        max_recipients: Maximum recipients accepted per call (B)
    """

    provider_type: ProviderType
    max_recipients: int

    @abstractmethod
    async def send(
        self,
        user_ids: List[str],
        messages: List[dict],
        retry_key: Optional[str] = None,
    ) -> SendResult:
        """
        Sends the same messages to every recipient in one call.

        Args:
            user_ids: Recipients (len <= max_recipients)
            messages: Rendered LINE message objects
            retry_key: Optional idempotency key for the call

        Returns:
            SendResult with the call outcome
        """
        pass
