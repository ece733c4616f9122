from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from ...authorization import Action, CallerContext, authorize, ensure_allowed, get_current_caller
from ...database import get_db
from . import export, models, schemas, services, signatures
from .enums import CafStatus, SignatureType


router = APIRouter(prefix="/corrective-action-forms", tags=["corrective-action-forms"])
permissions_router = APIRouter(tags=["corrective-action-forms"])


def _load_visible_caf(db: Session, caf_id: str, caller: CallerContext) -> models.CorrectiveActionForm:
    caf = services.get_caf_or_404(db, caf_id)
    ensure_allowed(authorize(caller, caf, Action.VIEW))
    return caf


@permissions_router.get("/user/caf-permissions", response_model=schemas.CafPermissions)
def get_caf_permissions(
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    return services.caf_permissions(db, caller=caller)


@router.post("", response_model=schemas.CafRead, status_code=status.HTTP_201_CREATED)
def create_caf(
    payload: schemas.CafCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    caf = services.create_caf(db, payload=payload, caller=caller)
    db.commit()
    db.refresh(caf)
    return caf


@router.get("", response_model=List[schemas.CafRead])
def list_cafs(
    organization_id: Optional[str] = None,
    incident_id: Optional[str] = None,
    status_filter: Optional[CafStatus] = None,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    return services.list_cafs(
        db,
        caller=caller,
        organization_id=organization_id,
        incident_id=incident_id,
        status_filter=status_filter,
    )


@router.get("/{caf_id}", response_model=schemas.CafRead)
def get_caf(
    caf_id: str,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    return _load_visible_caf(db, caf_id, caller)


@router.put("/{caf_id}", response_model=schemas.CafRead)
def update_caf(
    caf_id: str,
    payload: schemas.CafUpdate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    caf = _load_visible_caf(db, caf_id, caller)
    services.update_caf(db, caf=caf, payload=payload, caller=caller)
    db.commit()
    db.refresh(caf)
    return caf


@router.delete("/{caf_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_caf(
    caf_id: str,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    caf = _load_visible_caf(db, caf_id, caller)
    services.delete_caf(db, caf=caf, caller=caller)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{caf_id}/sign", response_model=schemas.SignatureResult, status_code=status.HTTP_201_CREATED)
def sign_caf(
    caf_id: str,
    payload: schemas.SignatureCreate,
    request: Request,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    signature, caf = signatures.submit_signature(
        db,
        caf_id=caf_id,
        payload=payload,
        caller=caller,
        ip_address=signatures.client_ip(request.headers),
    )
    db.commit()
    db.refresh(caf)
    db.refresh(signature)
    return schemas.SignatureResult(
        signature=schemas.CafSignatureRead.model_validate(signature),
        caf=schemas.CafRead.model_validate(caf),
        message=signatures.signature_message(SignatureType(signature.signature_type), caf),
    )


@router.get("/{caf_id}/export", response_model=schemas.CafExport)
def export_caf(
    caf_id: str,
    format: str = "fillable",
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    caf = _load_visible_caf(db, caf_id, caller)
    return export.build_export(caf, export_format=format)


@router.get("/{caf_id}/attachments", response_model=List[schemas.CafAttachmentRead])
def list_attachments(
    caf_id: str,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    caf = _load_visible_caf(db, caf_id, caller)
    return services.list_attachments(db, caf=caf)


@router.post(
    "/{caf_id}/attachments",
    response_model=schemas.CafAttachmentRead,
    status_code=status.HTTP_201_CREATED,
)
def add_attachment(
    caf_id: str,
    payload: schemas.CafAttachmentCreate,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    caf = _load_visible_caf(db, caf_id, caller)
    attachment = services.add_attachment(db, caf=caf, payload=payload, caller=caller)
    db.commit()
    db.refresh(attachment)
    return attachment


@router.delete("/{caf_id}/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_attachment(
    caf_id: str,
    attachment_id: str,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    caf = _load_visible_caf(db, caf_id, caller)
    services.remove_attachment(db, caf=caf, attachment_id=attachment_id, caller=caller)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
