"""
core/ledger.py — Per-Subject Hash-Chained Ledger
==================================================
Every state-changing action on a patient's records leaves one immutable
block in that patient's chain. The chain is the audit trail: blocks are
never updated or deleted, even when the record they document is.

Block hash format (must stay byte-identical for existing data):

    content_hash = sha256("<payload_type>:<payload_ref or ''>")
    preimage     = "<prev_hash>|<content_hash>|<timestamp_ms>|<author_id>|<index>"
    hash         = sha256(preimage)

Block 0 is always a genesis block whose prev_hash is the GENESIS sentinel.

All modules call:  from core.ledger import ledger
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.crypto import digest
from core.errors import ChainGapError, InvalidInput
from db import store
from db.models import Block, new_uuid, now_ms

logger = logging.getLogger("medchain.ledger")

GENESIS = settings.GENESIS_SENTINEL


class PayloadType(str, Enum):
    GENESIS = "genesis"
    REPORT = "report"
    UPDATE = "update"
    ACCESS_GRANTED = "access-granted"
    ACCESS_REVOKED = "access-revoked"
    PRESCRIPTION = "prescription"


# ── Payloads: one variant per payload type ────────────────────────────────────
@dataclass(frozen=True)
class GenesisPayload:
    payload_type: ClassVar[PayloadType] = PayloadType.GENESIS

    @property
    def ref(self) -> Optional[str]:
        return None


@dataclass(frozen=True)
class ReportPayload:
    entry_id: str
    payload_type: ClassVar[PayloadType] = PayloadType.REPORT

    @property
    def ref(self) -> str:
        return self.entry_id


@dataclass(frozen=True)
class UpdatePayload:
    entry_id: str
    payload_type: ClassVar[PayloadType] = PayloadType.UPDATE

    @property
    def ref(self) -> str:
        return self.entry_id


@dataclass(frozen=True)
class AccessGrantedPayload:
    permission_id: str
    payload_type: ClassVar[PayloadType] = PayloadType.ACCESS_GRANTED

    @property
    def ref(self) -> str:
        return self.permission_id


@dataclass(frozen=True)
class AccessRevokedPayload:
    # the permission row is gone by the time this block is written
    subject_id: str
    grantee_id: str
    payload_type: ClassVar[PayloadType] = PayloadType.ACCESS_REVOKED

    @property
    def ref(self) -> str:
        return f"{self.subject_id}:{self.grantee_id}"


@dataclass(frozen=True)
class PrescriptionPayload:
    prescription_id: str
    payload_type: ClassVar[PayloadType] = PayloadType.PRESCRIPTION

    @property
    def ref(self) -> str:
        return self.prescription_id


Payload = Union[
    GenesisPayload, ReportPayload, UpdatePayload,
    AccessGrantedPayload, AccessRevokedPayload, PrescriptionPayload,
]


# ── Hashing ───────────────────────────────────────────────────────────────────
def content_hash(payload_type: str, payload_ref: Optional[str]) -> str:
    return digest(f"{payload_type}:{payload_ref or ''}")


def build_preimage(prev_hash: str, content: str, timestamp: int, author_id: str, index: int) -> str:
    return f"{prev_hash}|{content}|{timestamp}|{author_id}|{index}"


def compute_block_hash(
    prev_hash: str,
    payload_type: str,
    payload_ref: Optional[str],
    timestamp: int,
    author_id: str,
    index: int,
) -> str:
    preimage = build_preimage(prev_hash, content_hash(payload_type, payload_ref), timestamp, author_id, index)
    return digest(preimage)


# ── Verification ──────────────────────────────────────────────────────────────
@dataclass
class ChainFailure:
    index: int
    reason: str


@dataclass
class VerificationResult:
    ok: bool
    failures: List[ChainFailure] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "failures": [{"index": f.index, "reason": f.reason} for f in self.failures],
        }


def verify_chain(blocks: Sequence[Block], recompute: bool = True) -> VerificationResult:
    """
    Check a subject's blocks, ordered by index. Never raises: tampering is
    reported as data so it can be shown to the user.

    Linkage checks:
        block 0    → payload_type is genesis and prev_hash is the sentinel
        block i>0  → prev_hash equals block i-1's hash
    With recompute=True every block's hash is also rebuilt from its preimage
    fields, which catches payload substitution that keeps the links intact.
    """
    failures: List[ChainFailure] = []
    for position, block in enumerate(blocks):
        if block.index != position:
            failures.append(ChainFailure(block.index, "Index gap"))
        if position == 0:
            if block.payload_type != PayloadType.GENESIS.value or block.prev_hash != GENESIS:
                failures.append(ChainFailure(block.index, "Invalid genesis"))
        elif block.prev_hash != blocks[position - 1].hash:
            failures.append(ChainFailure(block.index, "Prev hash mismatch"))
        if recompute:
            expected = compute_block_hash(
                block.prev_hash, block.payload_type, block.payload_ref,
                block.timestamp, block.author_id, block.index,
            )
            if expected != block.hash:
                failures.append(ChainFailure(block.index, "Hash mismatch"))

    if failures:
        subject = blocks[0].subject_id if blocks else "?"
        logger.warning(f"Chain verification failed for {subject}: {len(failures)} failure(s)")
    return VerificationResult(ok=not failures, failures=failures)


# ── Engine ────────────────────────────────────────────────────────────────────
class LedgerEngine:
    """
    Appends and reads per-subject chains.

    The only per-subject state is the tip (last index + hash), which is read
    back from the store on every append. Writers for the same subject must
    hold writer(subject_id) from the read of the tip until their commit;
    the unique (subject_id, index) constraint catches anyone who doesn't.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def writer(self, subject_id: str) -> asyncio.Lock:
        lock = self._locks.get(subject_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[subject_id] = lock
        return lock

    async def append_block(
        self,
        db: AsyncSession,
        subject_id: str,
        payload: Payload,
        author_id: str,
    ) -> Block:
        blocks = await store.list_blocks_by_subject(db, subject_id)
        index = max(b.index for b in blocks) + 1 if blocks else 0

        is_genesis = payload.payload_type is PayloadType.GENESIS
        if index == 0 and not is_genesis:
            raise ChainGapError(f"Subject {subject_id} has no genesis block")
        if index > 0 and is_genesis:
            raise InvalidInput(f"Subject {subject_id} already has a genesis block")

        if index == 0:
            prev_hash = GENESIS
        else:
            prev = next((b for b in blocks if b.index == index - 1), None)
            if prev is None:
                raise ChainGapError(f"Block #{index - 1} missing for subject {subject_id}")
            prev_hash = prev.hash

        author = await store.get_user(db, author_id)
        author_name = author.name if author else settings.UNKNOWN_AUTHOR_NAME

        timestamp = now_ms()
        payload_type = payload.payload_type.value
        block = Block(
            id=new_uuid(),
            subject_id=subject_id,
            index=index,
            prev_hash=prev_hash,
            hash=compute_block_hash(prev_hash, payload_type, payload.ref, timestamp, author_id, index),
            timestamp=timestamp,
            payload_type=payload_type,
            payload_ref=payload.ref,
            author_id=author_id,
            author_name=author_name,
        )
        block = await store.put_block(db, block)
        logger.info(f"Block #{index} written [{payload_type}] subject={subject_id} hash={block.hash[:16]}...")
        return block

    async def get_ledger(self, db: AsyncSession, subject_id: str) -> List[Block]:
        """Materialized chain for a subject, ordered by index. Recomputed on every call."""
        return await store.list_blocks_by_subject(db, subject_id)

    verify_chain = staticmethod(verify_chain)


# Singleton: import this everywhere:  from core.ledger import ledger
ledger = LedgerEngine()
