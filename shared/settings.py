"""
Engine configuration loaded from environment variables.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.models import ResolveMethod


class FanoutSettings(BaseSettings):
    """Fan-out engine configuration (env prefix FANOUT_)."""

    model_config = SettingsConfigDict(env_prefix="FANOUT_", env_file=".env", extra="ignore")

    # Email is only sent in production
    environment: str = "development"

    # Resolver strategy when publish options name none
    default_method: ResolveMethod = ResolveMethod.DEMAND_SUBSCRIPTION

    # Private member channels are "<prefix><member id>"
    member_channel_prefix: str = "mem-"

    # Latest comments expanded per hydrated item
    comment_limit: int = 5

    email_from: str = "notifications@island.io"

    @property
    def delivery_enabled(self) -> bool:
        return self.environment == "production"

    def member_channel(self, member_id: str) -> str:
        return f"{self.member_channel_prefix}{member_id}"


@lru_cache
def get_settings() -> FanoutSettings:
    return FanoutSettings()
