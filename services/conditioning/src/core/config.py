from pydantic_settings import SettingsConfigDict

from shared.config import BaseServiceConfig
from shared.constants import Roles, Topics


class Settings(BaseServiceConfig):
    model_config = SettingsConfigDict(extra="ignore")

    # Access control
    admin_role: str = Roles.ADMIN

    # Compensating actions (fixed delay, no backoff)
    rollback_max_attempts: int = 5
    rollback_delay_ms: int = 500

    # Query defaults
    default_sort_key: str = "start"

    # Populate the cache during startup instead of on first request
    warm_cache_on_startup: bool = False

    # Change events written by other processes
    change_events_enabled: bool = False
    change_event_topics: list[str] = Topics.all_change_topics()
    change_event_consumer_group: str = "conditioning-service"
    change_event_consume_from: str = "latest"  # earliest|latest

    otel_service_name: str = "conditioning"


settings = Settings()
