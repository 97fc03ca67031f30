from __future__ import annotations


class PostureGuardError(Exception):
    """Base error for PostureGuard."""


class CredentialError(PostureGuardError):
    """Account credentials rejected by AWS; aborts the whole account scan."""


class ProbeError(PostureGuardError):
    """Probe-level failure; absorbed by the orchestrator as an empty result."""


class ProbeCredentialError(ProbeError):
    """AWS rejected a probe call for credential or authorization reasons."""


class ProbeTimeoutError(ProbeError):
    """Probe did not finish before its deadline."""


class ProbeConfigError(PostureGuardError):
    """Unknown or invalid probe configuration."""


class NotFoundError(PostureGuardError):
    """Referenced record does not exist."""


class AccountNotFoundError(NotFoundError):
    """Account id does not resolve to a stored account."""


class RegionNotFoundError(NotFoundError):
    """Region id does not resolve to a stored region."""


class PersistenceError(PostureGuardError):
    """Database write, query or cascade failure."""


class DuplicateRegionError(PersistenceError):
    """Region already registered for the account."""
