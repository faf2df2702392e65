"""
Sleep-Suppression Capability

This module contains the abstract interface the controller uses to reach the
host platform's "prevent sleep" primitive, so the polling logic never depends
on how suppression is actually implemented.
"""

from abc import ABC, abstractmethod
from typing import Any


class SuppressionCapability(ABC):
    """
    Abstract base class for a sleep-suppression provider.

    Implementations may fail on any call; they signal failure by raising
    CapabilityUnavailable. The controller treats every call as fallible.
    """

    @abstractmethod
    def start_suppression(self, reason: str) -> Any:
        """
        Start preventing the host from sleeping.

        Args:
            reason: Human-readable reason shown by the platform, if supported

        Returns:
            Opaque handle to pass back to stop_suppression()
        """
        pass

    @abstractmethod
    def stop_suppression(self, handle: Any) -> None:
        """
        Stop a suppression previously started.

        Args:
            handle: The handle returned by start_suppression()
        """
        pass

    @abstractmethod
    def is_host_process(self) -> bool:
        """
        Check whether the current process may own the suppression primitive.

        Returns:
            True if this process was launched as the capability host
        """
        pass
