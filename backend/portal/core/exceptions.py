class StorageError(Exception):
    """Raised when an object storage operation fails."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error
