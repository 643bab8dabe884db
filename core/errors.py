"""Error taxonomy shared across the onboarding core.

Every failure surfaced by the core belongs to one of a few kinds so an
adapter can map it to a response without inspecting messages:

- InvalidInputError: the caller passed something malformed (4xx).
- NotFoundError: a referenced entity does not exist (4xx).
- AlreadyExistsError: a uniqueness rule would be violated (4xx).
- PreconditionError: the entity exists but cannot be used this way (4xx).
- ExternalServiceError: the source-control host or AI service failed (5xx).
- StorageError: one of the storage backends failed (5xx).
"""


class OnboarderError(Exception):
    """Base exception for all onboarding errors."""

    pass


# Invalid input


class InvalidInputError(OnboarderError):
    """Caller supplied malformed input."""

    pass


class InvalidRepositoryUrlError(InvalidInputError):
    """Repository URL could not be parsed."""

    pass


class InvalidCommitIdError(InvalidInputError):
    """Composite commit id is malformed."""

    pass


# Not found


class NotFoundError(OnboarderError):
    """Referenced entity does not exist."""

    pass


class RepositoryNotFoundError(NotFoundError):
    """Repository is not stored."""

    pass


class CommitNotFoundError(NotFoundError):
    """Commit is not stored."""

    pass


class TutorialNotFoundError(NotFoundError):
    """Tutorial row is not stored."""

    pass


class TutorialContentNotFoundError(NotFoundError):
    """Tutorial row exists but its content blob is missing."""

    pass


class SessionNotFoundError(NotFoundError):
    """Learner session is not stored."""

    pass


# Already exists


class AlreadyExistsError(OnboarderError):
    """Entity already exists."""

    pass


class RepositoryExistsError(AlreadyExistsError):
    """Repository has already been ingested."""

    pass


class CommitExistsError(AlreadyExistsError):
    """Commit is already stored for the repository."""

    pass


# Preconditions


class PreconditionError(OnboarderError):
    """Entity exists but is not in a usable state."""

    pass


class NoParentCommitError(PreconditionError):
    """Commit has no parent to capture a "before" state from."""

    pass


# Infrastructure


class ExternalServiceError(OnboarderError):
    """Upstream service (source-control host, AI) failed."""

    pass


class StorageError(OnboarderError):
    """Storage backend failed."""

    pass


_CLIENT_ERRORS = (InvalidInputError, NotFoundError, AlreadyExistsError, PreconditionError)


def is_client_error(exc: BaseException) -> bool:
    """Check whether an error was caused by the caller.

    Args:
        exc: Exception raised by the core.

    Returns:
        True for validation, not-found, conflict and precondition errors.
    """
    return isinstance(exc, _CLIENT_ERRORS)
