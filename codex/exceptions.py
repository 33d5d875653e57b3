"""
Exceptions raised at the edit boundary.
Sync functions never raise; these are for rejecting an action before any mutation.
"""


class CodexError(Exception):
    """Base class for storycodex errors."""
    pass


class ValidationError(CodexError):
    """An edit was rejected (bad date, duplicate name, too few participants, ...)."""
    pass


class AnnotationError(CodexError):
    """An annotation transition was rejected (overlap, empty selection, second pending, ...)."""
    pass
