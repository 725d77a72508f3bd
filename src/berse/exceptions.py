"""Domain exceptions raised by the points and badge services."""


class BerseError(Exception):
    """Base class for service-level errors."""


class UserNotFoundError(BerseError):
    def __init__(self, user_id: int) -> None:
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class UnknownBadgeError(BerseError):
    def __init__(self, badge_type: str) -> None:
        super().__init__(f"Unknown badge type: {badge_type}")
        self.badge_type = badge_type


class InvalidPointAmountError(BerseError):
    """Raised for non-positive awards or spends exceeding the balance."""
