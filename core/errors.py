"""
core/errors.py — MedChain Error Taxonomy
==========================================
Every failure the core can raise on purpose lives here.
Each class carries the HTTP status main.py answers with, so route handlers
never have to translate errors themselves.

Chain verification is NOT an error: see core/ledger.py VerificationResult.
"""


class MedChainError(Exception):
    """Base class for all deliberate MedChain failures."""

    status_code = 400

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.__class__.__doc__)
        self.detail = detail or self.__class__.__doc__


# ── Identity ──────────────────────────────────────────────────────────────────
class DuplicateEmail(MedChainError):
    """Email already registered."""
    status_code = 409


class InvalidCredentials(MedChainError):
    """Exactly one of password or wallet address must be provided."""
    status_code = 400


class AuthenticationFailed(MedChainError):
    """Invalid email or credentials."""
    status_code = 401


# ── Authorization ─────────────────────────────────────────────────────────────
class NotAuthorized(MedChainError):
    """Caller is not entitled to perform this action."""
    status_code = 403


class NoAccess(MedChainError):
    """No access to this patient."""
    status_code = 403


class DuplicateGrant(MedChainError):
    """Access already granted."""
    status_code = 409


# ── Lookup / input ────────────────────────────────────────────────────────────
class NotFound(MedChainError):
    """Resource not found."""
    status_code = 404


class InvalidInput(MedChainError):
    """Invalid input."""
    status_code = 422


# ── Ledger / storage ──────────────────────────────────────────────────────────
class ChainGapError(MedChainError):
    """Predecessor block missing: ledger history is broken."""
    status_code = 500


class StorageError(MedChainError):
    """Underlying store failure."""
    status_code = 500
