class MigrationError(Exception):
    pass


class MigrationValidationError(MigrationError):
    pass


class InvalidStatusTransitionError(MigrationError):
    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"invalid migration status transition: {from_status} -> {to_status}")
        self.from_status = from_status
        self.to_status = to_status
