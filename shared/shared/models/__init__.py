from shared.models.user import CurrentUser
from shared.models.pagination import Pagination

__all__ = ["CurrentUser", "Pagination"]
