class BulkRepoSyncException(Exception):
    """Base exception for all bulk-repo-sync errors."""
    pass

class MissingInputException(BulkRepoSyncException):
    """Raised when the operator leaves a required field blank."""
    def __init__(self, field: str, message: str = "A required value was left blank."):
        self.field = field
        super().__init__(f"{message} Field: {field}")

class PersistenceException(BulkRepoSyncException):
    """Raised when the configuration document cannot be written."""
    pass

class InvalidInputException(BulkRepoSyncException):
    """Raised when the operator enters a value that cannot be used."""
    def __init__(self, field: str, reason: str):
        self.field = field
        super().__init__(f"Invalid value for {field}: {reason}")

class ConsoleInputException(BulkRepoSyncException):
    """Raised when the console can no longer be read."""
    pass
