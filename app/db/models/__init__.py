from app.db.models.campaigns import Campaign
from app.db.models.redemption_codes import RedemptionCode
from app.db.models.users import User

__all__ = [
    "Campaign",
    "RedemptionCode",
    "User",
]
