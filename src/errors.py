"""Exceptions raised by the scoring and bracket engines."""


class ScoreboardError(Exception):
    """Base class for every scoreboard error."""


class InvalidTransition(ScoreboardError):
    """A state machine refused an operation; nothing was changed."""


class InvalidConfiguration(ScoreboardError):
    """Rejected configuration value (winning score, bracket size, draw)."""


class NotFound(ScoreboardError):
    pass


class AlreadyCompleted(ScoreboardError):
    """Finalize attempted on a match that is already Completed.

    ``match`` holds the recorded match so callers can compare outcomes and
    treat an identical re-delivery as success.
    """

    def __init__(self, message: str, match=None):
        super().__init__(message)
        self.match = match


class SlotConflict(ScoreboardError):
    """Bracket slot already holds a different team.

    Means a broken topology or a duplicate-delivery bug. Never resolved
    automatically; an operator has to look at it.
    """

    def __init__(self, message: str, match_id: str = None, side=None,
                 existing: str = None, incoming: str = None):
        super().__init__(message)
        self.match_id = match_id
        self.side = side
        self.existing = existing
        self.incoming = incoming


class VersionConflict(ScoreboardError):
    """Compare-and-set write lost a race against another writer."""


class NotCompleted(ScoreboardError):
    pass


class MissingWinner(NotCompleted):
    pass
