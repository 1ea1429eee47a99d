"""
db/models.py — Database Table Definitions
==========================================
Each class = one record family in the keyed store.
Every table is keyed by an opaque string id; secondary lookup paths are the
indexes declared in __table_args__.

Timestamps are integer epoch milliseconds: block hashes are computed over
them, so they must round-trip exactly.

Cross-family references (subject_id, grantee_id, payload_ref) are plain
columns, not foreign keys: a block keeps pointing at a prescription that was
deleted, and a permission may outlive the identity it names.
"""

import time
import uuid
from typing import Optional
from sqlalchemy import (
    BigInteger, CheckConstraint, Index, Integer, JSON, LargeBinary, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from db.session import Base


def new_uuid():
    return str(uuid.uuid4())


def now_ms() -> int:
    return int(time.time() * 1000)


# ── 1. Identities ─────────────────────────────────────────────────────────────
class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        # exactly one authentication descriptor: password pair XOR wallet
        CheckConstraint(
            "(auth_method = 'password' AND password_hash_hex IS NOT NULL AND salt_hex IS NOT NULL"
            " AND wallet_address IS NULL)"
            " OR (auth_method = 'wallet' AND wallet_address IS NOT NULL"
            " AND password_hash_hex IS NULL AND salt_hex IS NULL)",
            name="ck_users_single_auth_descriptor",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, index=True)     # patient | doctor
    auth_method: Mapped[str] = mapped_column(String(20), nullable=False)          # password | wallet
    salt_hex: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    password_hash_hex: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    wallet_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    profile: Mapped[dict] = mapped_column(JSON, default=dict)                     # vitals, free-form
    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms)


# ── 2. History Entries ────────────────────────────────────────────────────────
class HistoryEntry(Base):
    __tablename__ = "history_entries"
    __table_args__ = (
        Index("ix_history_entries_subject_created", "subject_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    subject_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    author_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    author_name: Mapped[str] = mapped_column(String(255))                        # denormalized at write
    kind: Mapped[str] = mapped_column(String(20), nullable=False)                # report | update | prescription
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms)


# ── 3. Permissions ────────────────────────────────────────────────────────────
class Permission(Base):
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("subject_id", "grantee_id", name="uq_permissions_subject_grantee"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    subject_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    grantee_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    granted_at: Mapped[int] = mapped_column(BigInteger, default=now_ms)


# ── 4. Prescriptions ──────────────────────────────────────────────────────────
class Prescription(Base):
    __tablename__ = "prescriptions"
    __table_args__ = (
        Index("ix_prescriptions_subject_created", "subject_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    subject_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    grantee_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    grantee_name: Mapped[str] = mapped_column(String(255))
    medication: Mapped[str] = mapped_column(String(255), nullable=False)
    dosage: Mapped[str] = mapped_column(String(255), nullable=False)
    frequency: Mapped[str] = mapped_column(String(255), nullable=False)
    duration: Mapped[str] = mapped_column(String(255), nullable=False)
    instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms)


# ── 5. Ledger Blocks ──────────────────────────────────────────────────────────
class Block(Base):
    __tablename__ = "blocks"
    __table_args__ = (
        UniqueConstraint("subject_id", "index", name="uq_blocks_subject_index"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    subject_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    index: Mapped[int] = mapped_column(Integer, nullable=False)
    prev_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payload_type: Mapped[str] = mapped_column(String(20), nullable=False)
    payload_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)   # weak back-reference
    author_id: Mapped[str] = mapped_column(String(36), nullable=False)
    author_name: Mapped[str] = mapped_column(String(255))


# ── 6. File Blobs ─────────────────────────────────────────────────────────────
class FileBlob(Base):
    __tablename__ = "file_blobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    filename: Mapped[str] = mapped_column(String(255))
    content_type: Mapped[str] = mapped_column(String(255), default="application/octet-stream")
    sha256: Mapped[str] = mapped_column(String(64), nullable=False)     # digest of the plaintext
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    data_encrypted: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms)
