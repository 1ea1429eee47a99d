"""
core/identity.py — Identity & Credential Helpers
==================================================
Roles, authentication descriptors and profile validation.
No I/O here: modules/accounts.py does the reads and writes.

An identity authenticates with exactly one descriptor:
    password → salt_hex + password_hash_hex
    wallet   → wallet_address (signature checks happen before we are called)
"""

import logging
from enum import Enum
from typing import Optional

from core.crypto import crypto_engine
from core.errors import InvalidCredentials, InvalidInput
from db.models import User

logger = logging.getLogger("medchain.identity")


class Role(str, Enum):
    PATIENT = "patient"     # subject: owns a ledger
    DOCTOR = "doctor"       # grantee: acts on a patient's records when granted


class AuthMethod(str, Enum):
    PASSWORD = "password"
    WALLET = "wallet"


# Free-form profile attributes the owner may edit. Not security-relevant.
PROFILE_FIELDS = frozenset({
    "age", "gender", "height", "weight",
    "blood_pressure", "heart_rate", "temperature", "respiratory_rate",
    "bmi", "body_fat", "muscle_mass", "bone_density",
})


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise InvalidInput(f"Invalid email address: {email!r}")
    return email


def parse_role(role: str) -> Role:
    try:
        return Role(role)
    except ValueError:
        raise InvalidInput(f"Unknown role: {role!r}") from None


def build_auth_descriptor(password: Optional[str] = None, wallet_address: Optional[str] = None) -> dict:
    """
    Column values for a new identity's credentials.
    Exactly one of password / wallet_address must be given.
    """
    if bool(password) == bool(wallet_address):
        raise InvalidCredentials()
    if password:
        salt_hex = crypto_engine.new_salt()
        return {
            "auth_method": AuthMethod.PASSWORD.value,
            "salt_hex": salt_hex,
            "password_hash_hex": crypto_engine.hash_password(password, salt_hex),
            "wallet_address": None,
        }
    return {
        "auth_method": AuthMethod.WALLET.value,
        "salt_hex": None,
        "password_hash_hex": None,
        "wallet_address": wallet_address.strip(),
    }


def check_credentials(user: User, password: Optional[str] = None, wallet_address: Optional[str] = None) -> bool:
    """True when the presented credential matches the identity's own descriptor."""
    if password and user.auth_method == AuthMethod.PASSWORD.value:
        if not user.salt_hex or not user.password_hash_hex:
            return False
        return crypto_engine.verify_password(password, user.salt_hex, user.password_hash_hex)
    if wallet_address and user.auth_method == AuthMethod.WALLET.value:
        if not user.wallet_address:
            return False
        # addresses are hex: checksum casing is not significant here
        return wallet_address.strip().lower() == user.wallet_address.lower()
    return False


def clean_profile(fields: dict) -> dict:
    unknown = set(fields) - PROFILE_FIELDS
    if unknown:
        raise InvalidInput(f"Unknown profile fields: {sorted(unknown)}")
    return {k: (str(v) if v is not None else None) for k, v in fields.items()}


def public_view(user: User) -> dict:
    """Identity as returned to callers: credentials never leave the store."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "auth_method": user.auth_method,
        "wallet_address": user.wallet_address,
        "created_at": user.created_at,
        "profile": dict(user.profile or {}),
    }
