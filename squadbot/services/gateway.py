from abc import ABC, abstractmethod

from squadbot.services.session_registry import Session


class ProvisioningGateway(ABC):
    """Creates and destroys the private voice room of a filled session."""

    @abstractmethod
    async def provision_room(self, session: Session) -> str:
        """Creates the room (and its category if needed) and returns the room id.

        Raises ProvisioningFailure when the room could not be created.
        """
        pass

    @abstractmethod
    async def destroy_room(self, room_id: str) -> None:
        """Deletes the room. A room that no longer exists counts as deleted."""
        pass

    @abstractmethod
    async def cleanup_empty_room(self, room_id: str) -> bool:
        """Deletes the room only if nobody is in it, then its category if that is now childless.

        Returns True when the room was deleted.
        """
        pass


class SessionPresenter(ABC):
    """Best-effort rendering of a session card; implementations never raise for platform errors."""

    @abstractmethod
    async def refresh(self, session: Session) -> None:
        """Re-renders the session card after a roster change."""
        pass

    @abstractmethod
    async def announce_room(self, session: Session) -> None:
        """Shows the provisioned voice room on the card and pings the squad."""
        pass

    @abstractmethod
    async def delete_message(self, session: Session) -> None:
        """Removes the session card."""
        pass
