"""
Core interfaces for the Zen session client.

This module defines the abstract interfaces for the collaborators the session
layer consumes but does not own: the durable token store and the
user-visible notification sink.
"""

from abc import ABC, abstractmethod
from typing import Optional


class ITokenStore(ABC):
    """Interface for the durable key-value store holding the bearer token."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Get the value stored under key, or None."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key."""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove key; removing a missing key is not an error."""
        pass


class INotificationSink(ABC):
    """Interface for the user-visible error notification channel."""

    @abstractmethod
    def notify_error(self, title: str, description: Optional[str] = None) -> None:
        """Show an error notification to the user."""
        pass
