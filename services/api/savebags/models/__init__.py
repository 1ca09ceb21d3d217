"""SQLAlchemy ORM models.

Models represent database tables:
- merchants: Business profiles, stock and verification flags
- verifications: One verification submission per merchant
- orders: Single-bag reservations
- favorites: User bookmarks of merchants
"""

from savebags.models.favorite import FavoriteRow
from savebags.models.merchant import MerchantRow
from savebags.models.order import OrderRow
from savebags.models.verification import VerificationRow

__all__ = ["FavoriteRow", "MerchantRow", "OrderRow", "VerificationRow"]
