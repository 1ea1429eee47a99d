"""
modules/prescriptions.py — Prescriptions Module
================================================
Doctors prescribe for patients who granted them access.
Writing a prescription leaves a block on the patient's ledger; deleting it
does not touch the ledger: the block keeps pointing at the removed id.
"""

import logging
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from core import permissions
from core.errors import InvalidInput, NotAuthorized, NotFound
from core.identity import Role
from core.ledger import PrescriptionPayload, ledger
from db import store
from db.models import Prescription, User, new_uuid, now_ms
from modules.common import require_role, unit_of_work

logger = logging.getLogger("medchain.modules.prescriptions")

REQUIRED_FIELDS = ("medication", "dosage", "frequency", "duration")


async def add_prescription(
    db: AsyncSession,
    caller: User,
    subject_id: str,
    medication: str,
    dosage: str,
    frequency: str,
    duration: str,
    instructions: Optional[str] = None,
) -> Prescription:
    require_role(caller, Role.DOCTOR, "Only doctors can add prescriptions")
    await permissions.require_access(db, subject_id, caller.id)

    fields = {
        "medication": medication, "dosage": dosage,
        "frequency": frequency, "duration": duration,
    }
    missing = [name for name in REQUIRED_FIELDS if not (fields[name] or "").strip()]
    if missing:
        raise InvalidInput(f"Missing prescription fields: {', '.join(missing)}")

    async with unit_of_work(db, subject_id):
        prescription = await store.put_prescription(db, Prescription(
            id=new_uuid(),
            subject_id=subject_id,
            grantee_id=caller.id,
            grantee_name=caller.name,
            instructions=(instructions or "").strip() or None,
            created_at=now_ms(),
            **{k: v.strip() for k, v in fields.items()},
        ))
        await ledger.append_block(db, subject_id, PrescriptionPayload(prescription.id), author_id=caller.id)

    logger.info(f"Prescription {prescription.id} added for patient {subject_id} by {caller.id}")
    return prescription


async def remove_prescription(db: AsyncSession, caller: User, prescription_id: str, subject_id: str):
    """Only the prescribing doctor, while still holding access, may delete a prescription."""
    require_role(caller, Role.DOCTOR, "Only doctors can remove prescriptions")
    await permissions.require_access(db, subject_id, caller.id)

    prescription = await store.get_prescription(db, prescription_id)
    if prescription is None or prescription.subject_id != subject_id:
        raise NotFound("Prescription not found")
    if prescription.grantee_id != caller.id:
        raise NotAuthorized("Only the prescribing doctor can remove this prescription")

    async with unit_of_work(db, subject_id):
        await store.delete_prescription(db, prescription_id)
    logger.info(f"Prescription {prescription_id} removed by {caller.id}")


async def list_prescriptions(db: AsyncSession, caller: User, subject_id: str) -> List[Prescription]:
    """Newest first. The patient sees their own; a doctor needs live access."""
    if caller.role == Role.PATIENT.value and caller.id == subject_id:
        return await store.list_prescriptions_by_subject(db, subject_id)
    if caller.role == Role.DOCTOR.value and await permissions.has_access(db, subject_id, caller.id):
        return await store.list_prescriptions_by_subject(db, subject_id)
    return []
