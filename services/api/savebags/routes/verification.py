"""Merchant verification endpoints under /v1/verification.

Documents are sent as base64 in JSON and kept in a draft until submission.
"""

import base64
import binascii

from fastapi import APIRouter, Depends, Path
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from savebags.routes.deps import current_merchant, get_verification_service
from savebags.schemas import REQUIRED_SLOTS, ContactInfo, Merchant, Verification, VerificationDraft
from savebags.services.verification import VerificationService

router = APIRouter()


class DocumentOut(BaseModel):
    name: str
    mime_type: str = Field(alias="mimeType")
    size: int

    model_config = {"populate_by_name": True}


class VerificationState(BaseModel):
    """Draft progress as shown on the verification screen."""

    status: str
    rejection_reason: str | None = Field(alias="rejectionReason", default=None)
    contact: ContactInfo
    documents: dict[str, DocumentOut]
    required_completed: int = Field(alias="requiredCompleted")
    required_total: int = Field(alias="requiredTotal", default=len(REQUIRED_SLOTS))

    model_config = {"populate_by_name": True}

    @classmethod
    def of(cls, draft: VerificationDraft) -> "VerificationState":
        return cls(
            status=draft.status.value,
            rejection_reason=draft.rejection_reason,
            contact=draft.contact,
            documents={
                slot: DocumentOut(name=doc.name, mime_type=doc.mime_type, size=len(doc.payload))
                for slot, doc in draft.documents.items()
            },
            required_completed=draft.required_completed,
        )


class DocumentUpload(BaseModel):
    filename: str = Field(min_length=1, max_length=200)
    mime_type: str = Field(alias="mimeType", default="application/octet-stream")
    content_base64: str = Field(alias="contentBase64")

    model_config = {"populate_by_name": True}


class SubmitRequest(BaseModel):
    contact: ContactInfo | None = None


def _rejected(message: str, required_completed: int) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "DOCUMENT_REJECTED",
                "message": message,
                "detail": {"requiredCompleted": required_completed},
            }
        },
    )


@router.get("", response_model=VerificationState)
async def get_state(
    merchant: Merchant = Depends(current_merchant),
    service: VerificationService = Depends(get_verification_service),
) -> VerificationState:
    return VerificationState.of(await service.start_submission(merchant.id))


@router.put("/documents/{slot}", response_model=VerificationState)
async def put_document(
    upload: DocumentUpload,
    slot: str = Path(min_length=1, max_length=50),
    merchant: Merchant = Depends(current_merchant),
    service: VerificationService = Depends(get_verification_service),
):
    try:
        payload = base64.b64decode(upload.content_base64, validate=True)
    except (binascii.Error, ValueError):
        draft = await service.start_submission(merchant.id)
        return _rejected("Document content is not valid base64", draft.required_completed)

    result = await service.attach_document(
        merchant.id,
        slot,
        filename=upload.filename,
        payload=payload,
        mime_type=upload.mime_type,
    )
    if result.error:
        return _rejected(result.error, result.required_completed)
    return VerificationState.of(result.draft)


@router.delete("/documents/{slot}", response_model=VerificationState)
async def delete_document(
    slot: str = Path(min_length=1, max_length=50),
    merchant: Merchant = Depends(current_merchant),
    service: VerificationService = Depends(get_verification_service),
) -> VerificationState:
    return VerificationState.of(await service.detach_document(merchant.id, slot))


@router.put("/contact", response_model=VerificationState)
async def put_contact(
    contact: ContactInfo,
    merchant: Merchant = Depends(current_merchant),
    service: VerificationService = Depends(get_verification_service),
) -> VerificationState:
    return VerificationState.of(await service.update_contact(merchant.id, contact))


@router.post("/submit", response_model=Verification)
async def submit(
    request: SubmitRequest,
    merchant: Merchant = Depends(current_merchant),
    service: VerificationService = Depends(get_verification_service),
) -> Verification:
    return await service.submit(merchant.id, request.contact)
