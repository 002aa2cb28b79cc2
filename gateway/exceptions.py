class ApiError(Exception):
    """Raised for any failed call to the accounting backend."""

    def __init__(self, message, status=None, payload=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload or {}

    def __str__(self):
        return self.message
