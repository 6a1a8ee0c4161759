class ReferralError(Exception):
    pass


class ReferralValidationError(ReferralError):
    pass


class ReferralCodeNotFoundError(ReferralError):
    def __init__(self, referral_code: str) -> None:
        super().__init__(f"referral code not found: {referral_code}")
        self.referral_code = referral_code
