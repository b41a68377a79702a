from app.redemption.service import RedemptionService, redeem_code

__all__ = [
    "RedemptionService",
    "redeem_code",
]
