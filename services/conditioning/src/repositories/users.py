from src.domain.events import EventName
from src.domain.models import User

from .base import InMemoryRepository


class UserRepository(InMemoryRepository[User]):
    created_event = EventName.USER_CREATED
    updated_event = EventName.USER_UPDATED
    deleted_event = EventName.USER_DELETED
    # restoring a user changes nothing the cache projects beyond an update
    undeleted_event = EventName.USER_UPDATED
