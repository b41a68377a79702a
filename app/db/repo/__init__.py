from app.db.repo.campaigns_repo import CampaignsRepo
from app.db.repo.redemption_codes_repo import RedemptionCodesRepo
from app.db.repo.users_repo import UsersRepo

__all__ = [
    "CampaignsRepo",
    "RedemptionCodesRepo",
    "UsersRepo",
]
