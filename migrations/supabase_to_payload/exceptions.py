class MigrationError(Exception):
    """Base exception for migration errors."""

    pass


class MigrationConfigError(MigrationError):
    """A stage cannot start: missing configuration or unreachable store."""

    pass


class SourceStoreError(MigrationError):
    """A call against the source store failed."""

    pass


class DestinationStoreError(MigrationError):
    def __init__(self, message: str, status_code: int | None = None, details: object = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)
