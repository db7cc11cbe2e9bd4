"""
Abstract base class for the friend directory.

The directory answers who observes whom. Friendship management itself
(invitations, acceptance) lives outside the engine.
"""

from abc import ABC, abstractmethod
from typing import List

from presence_guard.models.presence import FriendLink


class FriendDirectory(ABC):
    """Read-only view of observer to watched-person links."""

    @abstractmethod
    async def list_observers(self) -> List[str]:
        """
        Return every user that watches at least one person.

        Raises:
            StoreUnavailable: If the backend cannot be reached.
        """
        pass

    @abstractmethod
    async def get_friends(self, observer_id: str) -> List[FriendLink]:
        """
        Return the people watched by an observer.

        Args:
            observer_id: The observing user.

        Returns:
            List[FriendLink]: Watched people, empty if none.

        Raises:
            StoreUnavailable: If the backend cannot be reached.
        """
        pass
