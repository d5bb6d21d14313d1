class ErrorCode:
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    GAME_NOT_ACTIVE = 'GAME_NOT_ACTIVE'
    PLAYER_NOT_FOUND = 'PLAYER_NOT_FOUND'
    QUESTION_NOT_FOUND = 'QUESTION_NOT_FOUND'
    ALREADY_ANSWERED = 'ALREADY_ANSWERED'
    # Registration
    GAME_NOT_OPEN = 'GAME_NOT_OPEN'
    ALREADY_PLAYED = 'ALREADY_PLAYED'
    NICKNAME_INVALID = 'NICKNAME_INVALID'
    INVALID_BRANCH = 'INVALID_BRANCH'


class SubmissionError(Exception):
    """Expected, client-actionable rejection. Never mutates player state."""

    def __init__(self, code, message, status=400):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status

    def to_dict(self):
        return {'success': False, 'error': self.message, 'errorCode': self.code}


class CatalogMisconfigured(Exception):
    """Question set is corrupt (e.g. no correct answer). A server fault, not a client error."""
