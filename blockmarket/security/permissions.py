"""Permission checks for purchase and license endpoints."""

from blockmarket.models.purchase import Purchase


class PermissionChecker:
    """Check requester permissions for actions."""

    def __init__(self, admin_user_ids: list[str] | None = None):
        """Initialize permission checker."""
        self.admin_user_ids = admin_user_ids or []

    def is_admin(self, user_id: str) -> bool:
        """Check if user is admin by user id."""
        return user_id in self.admin_user_ids

    def can_view_purchase(self, user_id: str, purchase: Purchase) -> bool:
        """Buyers see their own purchases; admins see all."""
        return purchase.buyer_id == user_id or self.is_admin(user_id)
