"""
Quiz error taxonomy

Services raise these; the route layer turns them into ``{"error": ...}``
JSON bodies with the matching HTTP status.
"""


class QuizError(Exception):
    status_code = 500

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {'error': self.message}
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(QuizError):
    """Malformed or missing request fields"""
    status_code = 400


class NotFoundError(QuizError):
    """Unknown quiz, attempt or progression"""
    status_code = 404


class ConflictError(QuizError):
    """Duplicate attempt key or a lost concurrent update"""
    status_code = 409


class RetakeNotAllowedError(ConflictError):
    """Player already holds a perfect score for this quiz"""


class ProgressionCompleteError(ConflictError):
    """Answer submitted after the last question"""


class UpstreamError(QuizError):
    """LLM, pinning, chain RPC or database failure"""
    status_code = 500
