"""Exceptions raised at collaborator seams."""


class ProbeError(Exception):
    """Base class for probe engine errors."""


class CollaboratorUnavailable(ProbeError):
    """Browser or scanner transport could not be reached."""

    def __init__(self, collaborator: str, detail: str = ""):
        self.collaborator = collaborator
        self.detail = detail
        msg = f"{collaborator} unavailable"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
