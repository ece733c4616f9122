"""
CAF export projection for the external PDF renderer.

`fillable` forms go out before the work is done; `completed` forms carry the
signatures and approval metadata.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import HTTPException, status

from ..parties import models as party_models
from . import models, schemas

EXPORT_FORMATS = ("fillable", "completed")


def export_file_name(caf_number: str, export_format: str, on: date) -> str:
    return f"CAF_{caf_number}_{export_format}_{on.isoformat()}.pdf"


def _party(staff: Optional[party_models.Staff]) -> Optional[schemas.ExportParty]:
    if staff is None:
        return None
    return schemas.ExportParty(name=staff.display_name, position=staff.position or "N/A")


def build_export(
    caf: models.CorrectiveActionForm,
    *,
    export_format: str = "fillable",
    today: Optional[date] = None,
) -> schemas.CafExport:
    if export_format not in EXPORT_FORMATS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"format must be one of: {', '.join(EXPORT_FORMATS)}",
        )

    signatures = []
    if export_format == "completed":
        for signature in caf.signatures:
            staff = signature.staff
            signatures.append(
                schemas.ExportSignature(
                    signature_type=signature.signature_type,
                    signer_name=staff.display_name if staff is not None else "",
                    signer_position=staff.position if staff is not None else None,
                    signed_at=signature.signed_at,
                    digital_signature=signature.digital_signature,
                    notes=signature.notes,
                )
            )

    return schemas.CafExport(
        file_name=export_file_name(caf.caf_number, export_format, today or date.today()),
        format=export_format,
        caf_number=caf.caf_number,
        title=caf.title,
        description=caf.description,
        corrective_actions=caf.corrective_actions,
        violation_summary=caf.violation_summary or "No summary provided",
        violation_codes=list(caf.violation_codes or []),
        responsibility_type=caf.responsibility_type.value if caf.responsibility_type else "Unknown",
        category=caf.category.value,
        priority=caf.priority.value,
        status=caf.status.value,
        organization_name=caf.organization.name if caf.organization is not None else None,
        incident_id=caf.incident_id or "N/A",
        assigned_to=_party(caf.assigned_staff),
        created_by=_party(caf.created_by_staff),
        approved_by=_party(caf.approved_by_staff) if export_format == "completed" else None,
        due_date=caf.due_date,
        created_at=caf.created_at,
        completed_at=caf.completed_at if export_format == "completed" else None,
        approved_at=caf.approved_at if export_format == "completed" else None,
        completion_notes=caf.completion_notes if export_format == "completed" else None,
        signatures=signatures,
    )
