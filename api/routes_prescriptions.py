"""
api/routes_prescriptions.py — Prescription API Endpoints

Endpoints:
    POST   /prescriptions/{subject_id}                     → Doctor prescribes
    GET    /prescriptions/{subject_id}                     → List (newest first)
    DELETE /prescriptions/{subject_id}/{prescription_id}   → Prescriber removes one
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from api.deps import get_current_user
from db.models import Prescription, User
from db.session import get_db
from modules import prescriptions

router = APIRouter()


class PrescriptionRequest(BaseModel):
    medication: str
    dosage: str
    frequency: str
    duration: str
    instructions: Optional[str] = None


def _prescription(p: Prescription) -> dict:
    return {
        "id": p.id,
        "subject_id": p.subject_id,
        "grantee_id": p.grantee_id,
        "grantee_name": p.grantee_name,
        "medication": p.medication,
        "dosage": p.dosage,
        "frequency": p.frequency,
        "duration": p.duration,
        "instructions": p.instructions,
        "created_at": p.created_at,
    }


@router.post("/{subject_id}", status_code=201)
async def add_prescription(
    subject_id: str,
    body: PrescriptionRequest,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    prescription = await prescriptions.add_prescription(
        db, caller, subject_id,
        medication=body.medication,
        dosage=body.dosage,
        frequency=body.frequency,
        duration=body.duration,
        instructions=body.instructions,
    )
    return _prescription(prescription)


@router.get("/{subject_id}")
async def list_prescriptions(
    subject_id: str,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [_prescription(p) for p in await prescriptions.list_prescriptions(db, caller, subject_id)]


@router.delete("/{subject_id}/{prescription_id}", status_code=204)
async def remove_prescription(
    subject_id: str,
    prescription_id: str,
    caller: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await prescriptions.remove_prescription(db, caller, prescription_id, subject_id)
