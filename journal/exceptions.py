from django.core.exceptions import ValidationError


class JournalValidationError(ValidationError):
    """A journal entry failed the pre-submission checks."""

    def __init__(self, result):
        self.result = result
        super().__init__(result.message, code=result.reason.value)


class SubmissionFailed(Exception):
    """The backend rejected or never received the transaction."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.message = message
        self.status = status


class ReconciledTransaction(Exception):
    def __init__(self, action="edit"):
        super().__init__(f"Cannot {action} reconciled transactions")
