from typing import Optional

from src.core.config import settings
from src.core.logger import get_logger
from src.domain.errors import UnauthorizedAccessError
from src.domain.models import UserContext

logger = get_logger("conditioning.access")


class AccessGate:
    """Callers holding the admin role pass; everyone else may only target themselves."""

    def __init__(self, admin_role: Optional[str] = None):
        self.admin_role = admin_role or settings.admin_role

    def is_admin(self, ctx: UserContext) -> bool:
        return ctx.is_admin(self.admin_role)

    def authorize(self, ctx: UserContext, target_user_id: Optional[str]) -> None:
        if self.is_admin(ctx):
            return
        if target_user_id is not None and str(target_user_id) == ctx.user_id:
            return
        logger.warning(
            "unauthorized_access",
            extra={"requesting_user_id": ctx.user_id, "target_user_id": target_user_id},
        )
        raise UnauthorizedAccessError(
            f"User {ctx.user_id} is not allowed to access data of user {target_user_id}"
        )
