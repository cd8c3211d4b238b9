from .environments import Environment
from .roles import Roles
from .topics import Topics

__all__ = ["Environment", "Roles", "Topics"]
