"""Verification schemas: submitted records and in-progress drafts."""

import base64
from datetime import datetime

from pydantic import BaseModel, Field

from savebags.schemas.merchant import VerificationStatus

# Slot id -> required
DOCUMENT_SLOTS: dict[str, bool] = {
    "tax_id_proof": True,
    "owner_identification": True,
    "address_proof": True,
    "storefront_photo": False,
    "operating_permit": False,
}
REQUIRED_SLOTS = tuple(slot for slot, required in DOCUMENT_SLOTS.items() if required)


class DocumentRef(BaseModel):
    """An uploaded document. `reference` is None when the upload failed."""

    name: str
    reference: str | None = None
    mime_type: str = Field(alias="mimeType", default="application/octet-stream")

    model_config = {"populate_by_name": True}


class ContactInfo(BaseModel):
    contact_name: str = Field(alias="contactName", default="")
    contact_phone: str = Field(alias="contactPhone", default="")
    tax_id: str = Field(alias="taxId", default="")
    website: str | None = None

    model_config = {"populate_by_name": True}


class Verification(BaseModel):
    """One verification record per merchant."""

    id: str
    merchant_id: str = Field(alias="merchantId")
    contact_name: str = Field(alias="contactName", default="")
    contact_phone: str = Field(alias="contactPhone", default="")
    tax_id: str = Field(alias="taxId", default="")
    website: str | None = None
    documents: dict[str, DocumentRef] = Field(default_factory=dict)
    status: VerificationStatus = VerificationStatus.DRAFT
    submitted_at: datetime | None = Field(alias="submittedAt", default=None)
    reviewed_at: datetime | None = Field(alias="reviewedAt", default=None)
    rejection_reason: str | None = Field(alias="rejectionReason", default=None)

    model_config = {"populate_by_name": True}


class DraftDocument(BaseModel):
    """A document attached to a draft but not uploaded yet. Content is base64."""

    name: str
    mime_type: str = Field(alias="mimeType", default="application/octet-stream")
    content: str

    model_config = {"populate_by_name": True}

    @classmethod
    def from_bytes(cls, name: str, payload: bytes, mime_type: str) -> "DraftDocument":
        return cls(name=name, mime_type=mime_type, content=base64.b64encode(payload).decode("ascii"))

    @property
    def payload(self) -> bytes:
        return base64.b64decode(self.content)


class VerificationDraft(BaseModel):
    """Client-side working copy before submission."""

    merchant_id: str = Field(alias="merchantId")
    contact: ContactInfo = Field(default_factory=ContactInfo)
    documents: dict[str, DraftDocument] = Field(default_factory=dict)
    status: VerificationStatus = VerificationStatus.DRAFT
    rejection_reason: str | None = Field(alias="rejectionReason", default=None)

    model_config = {"populate_by_name": True}

    @property
    def required_completed(self) -> int:
        return sum(1 for slot in REQUIRED_SLOTS if slot in self.documents)
