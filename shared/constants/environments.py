from enum import Enum


class Environment(str, Enum):
    """Deployment environments the service knows about."""

    PRODUCTION = "production"
    STAGING = "staging"
    TESTING = "testing"
    DEVELOPMENT = "development"

    @classmethod
    def parse(cls, env: str) -> "Environment":
        """Resolve an environment name, falling back to production."""
        try:
            return cls(env.lower())
        except ValueError:
            return cls.PRODUCTION

    @classmethod
    def is_production(cls, env: str) -> bool:
        return cls.parse(env) is cls.PRODUCTION

    @classmethod
    def wants_plain_logs(cls, env: str) -> bool:
        """Local runs log human-readable lines instead of JSON."""
        return cls.parse(env) in (cls.DEVELOPMENT, cls.TESTING)
