from __future__ import annotations


class TrackerError(Exception):
    pass


class NotFoundError(TrackerError):
    pass


class ForbiddenError(TrackerError):
    pass


class InvalidTransitionError(TrackerError):
    pass


class ValidationError(TrackerError):
    pass


class ConflictError(TrackerError):
    pass
