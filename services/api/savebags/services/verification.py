"""Merchant verification workflow.

draft -> pending on submission, pending -> approved | rejected on admin review,
rejected -> pending on resubmission. A pending submission may be overwritten by
a new one, and re-approving an approved record is a no-op.

Documents are collected in a local draft, uploaded on submit, and referenced
from the stored verification record. A failed upload keeps the document name
with no reference and does not block the submission.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from uuid import uuid4

from savebags.schemas.merchant import Merchant, VerificationStatus, check_transition
from savebags.schemas.verification import (
    DOCUMENT_SLOTS,
    REQUIRED_SLOTS,
    ContactInfo,
    DocumentRef,
    DraftDocument,
    Verification,
    VerificationDraft,
)
from savebags.services.document_storage import DocumentStorage, object_path
from savebags.services.errors import (
    IncompleteSubmission,
    InvalidTransition,
    NotFound,
    RemoteUnavailable,
    ValidationError,
)
from savebags.settings import get_settings
from savebags.stores.local_cache import (
    LocalCache,
    merchant_record,
    store_local_merchant,
    verification_draft,
    verification_record,
)
from savebags.stores.remote import RemoteStore

logger = logging.getLogger("uvicorn.error")

def check_merchant_invariant(merchant: Merchant) -> None:
    """A verified merchant must have an approved verification."""
    if merchant.verified and merchant.verification_status != VerificationStatus.APPROVED:
        raise RuntimeError(
            f"Merchant {merchant.id} is verified with status {merchant.verification_status.value}"
        )


@dataclass
class AttachResult:
    """Outcome of attaching one document. `error` is set instead of raising."""

    draft: VerificationDraft
    required_completed: int
    error: str | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class VerificationService:
    def __init__(
        self,
        remote: RemoteStore,
        cache: LocalCache,
        storage: DocumentStorage,
        *,
        bucket: str | None = None,
        max_document_bytes: int | None = None,
    ):
        settings = get_settings()
        self.remote = remote
        self.cache = cache
        self.storage = storage
        self.bucket = bucket or settings.storage_bucket
        self.max_document_bytes = max_document_bytes or settings.max_document_bytes

    # ============================================================
    # Merchant side
    # ============================================================

    async def get_verification(self, merchant_id: str) -> Verification | None:
        """Stored verification, remote first, local copy when the remote is down."""
        try:
            verification = await self.remote.verifications.get_mine(merchant_id)
        except RemoteUnavailable as e:
            logger.warning(f"[verification] remote lookup failed for {merchant_id}: {e}")
            return await self.cache.read(verification_record(merchant_id), None)
        return verification

    async def start_submission(self, merchant_id: str) -> VerificationDraft:
        """Current working draft, seeded from the stored verification if there is one.

        Has no side effects.
        """
        draft = await self.cache.read(verification_draft(merchant_id), None)
        verification = await self.get_verification(merchant_id)
        if draft is None:
            draft = VerificationDraft(merchant_id=merchant_id)
            if verification is not None:
                draft.contact = ContactInfo(
                    contact_name=verification.contact_name,
                    contact_phone=verification.contact_phone,
                    tax_id=verification.tax_id,
                    website=verification.website,
                )
        if verification is not None:
            draft.status = verification.status
            draft.rejection_reason = verification.rejection_reason
        return draft

    async def attach_document(
        self,
        merchant_id: str,
        slot: str,
        *,
        filename: str,
        payload: bytes,
        mime_type: str,
    ) -> AttachResult:
        draft = await self.start_submission(merchant_id)

        if slot not in DOCUMENT_SLOTS:
            return AttachResult(draft, draft.required_completed, error=f"Unknown document slot: {slot}")
        if len(payload) > self.max_document_bytes:
            limit_mb = self.max_document_bytes // (1024 * 1024)
            return AttachResult(draft, draft.required_completed, error=f"File exceeds {limit_mb} MB")
        if not payload:
            return AttachResult(draft, draft.required_completed, error="File is empty")

        draft.documents[slot] = DraftDocument.from_bytes(filename, payload, mime_type)
        await self.cache.write(verification_draft(merchant_id), draft)
        return AttachResult(draft, draft.required_completed)

    async def detach_document(self, merchant_id: str, slot: str) -> VerificationDraft:
        draft = await self.start_submission(merchant_id)
        if draft.documents.pop(slot, None) is not None:
            await self.cache.write(verification_draft(merchant_id), draft)
        return draft

    async def update_contact(self, merchant_id: str, contact: ContactInfo) -> VerificationDraft:
        draft = await self.start_submission(merchant_id)
        draft.contact = contact
        await self.cache.write(verification_draft(merchant_id), draft)
        return draft

    async def submit(self, merchant_id: str, contact: ContactInfo | None = None) -> Verification:
        """Upload the draft's documents and store a pending verification.

        Raises:
            IncompleteSubmission: Missing required documents or contact fields.
            InvalidTransition: The merchant is already approved.
            RemoteUnavailable: The record could not be stored (retryable).
        """
        draft = await self.start_submission(merchant_id)
        contact = contact or draft.contact

        missing_docs = [slot for slot in REQUIRED_SLOTS if slot not in draft.documents]
        missing_fields = [
            alias
            for alias, value in (
                ("contactName", contact.contact_name),
                ("contactPhone", contact.contact_phone),
                ("taxId", contact.tax_id),
            )
            if not value.strip()
        ]
        if missing_docs or missing_fields:
            raise IncompleteSubmission(
                "Verification is missing required information",
                detail={"missingDocuments": missing_docs, "missingFields": missing_fields},
            )

        existing = await self.remote.verifications.get_mine(merchant_id)
        current = existing.status if existing else VerificationStatus.DRAFT
        check_transition(current, VerificationStatus.PENDING)

        documents: dict[str, DocumentRef] = {}
        for slot, doc in draft.documents.items():
            path = object_path(merchant_id, slot, doc.name)
            try:
                reference = await self.storage.upload(self.bucket, path, doc.payload, doc.mime_type)
            except RemoteUnavailable as e:
                logger.warning(f"[verification] partial upload failure merchant={merchant_id} slot={slot}: {e}")
                reference = None
            documents[slot] = DocumentRef(name=doc.name, reference=reference, mime_type=doc.mime_type)

        verification = Verification(
            id=existing.id if existing else str(uuid4()),
            merchant_id=merchant_id,
            contact_name=contact.contact_name.strip(),
            contact_phone=contact.contact_phone.strip(),
            tax_id=contact.tax_id.strip(),
            website=contact.website,
            documents=documents,
            status=VerificationStatus.PENDING,
            submitted_at=_now(),
            reviewed_at=None,
            rejection_reason=None,
        )
        try:
            saved = await self.remote.verifications.submit(verification)
        except InvalidTransition:
            # The record was reviewed while uploading; drop objects it does not reference.
            await self._remove_objects(merchant_id, documents, keep=existing)
            raise

        await self.cache.write(verification_record(merchant_id), saved)
        await self._mirror_merchant(merchant_id, verified=False, status=VerificationStatus.PENDING)
        await self.cache.delete(verification_draft(merchant_id))
        if existing is not None:
            await self._remove_objects(merchant_id, existing.documents, keep=saved)

        failed = [slot for slot, doc in documents.items() if doc.reference is None]
        logger.info(
            f"[verification] submitted merchant={merchant_id} docs={len(documents)} failed_uploads={len(failed)}"
        )
        return saved

    async def _remove_objects(
        self,
        merchant_id: str,
        documents: dict[str, DocumentRef],
        *,
        keep: Verification | None,
    ) -> None:
        """Delete stored objects of `documents` that `keep` does not point at."""
        kept = set()
        if keep is not None:
            kept = {object_path(merchant_id, slot, doc.name) for slot, doc in keep.documents.items()}
        for slot, doc in documents.items():
            path = object_path(merchant_id, slot, doc.name)
            if doc.reference is None or path in kept:
                continue
            try:
                await self.storage.delete(self.bucket, path)
            except RemoteUnavailable as e:
                logger.warning(f"[verification] could not delete stale object {path}: {e}")

    # ============================================================
    # Admin side
    # ============================================================

    async def list_verifications(self, status: VerificationStatus | None = None) -> list[Verification]:
        return await self.remote.verifications.get_all(status)

    async def get_by_id(self, verification_id: str) -> Verification:
        verification = await self.remote.verifications.get(verification_id)
        if verification is None:
            raise NotFound("Verification not found", detail={"verificationId": verification_id})
        return verification

    async def approve(self, verification_id: str, merchant_id: str) -> Verification:
        """pending -> approved, merchant becomes verified. Idempotent once approved."""
        saved = await self.remote.verifications.approve(verification_id, merchant_id)
        await self.cache.write(verification_record(merchant_id), saved)
        await self._mirror_merchant(merchant_id, verified=True, status=VerificationStatus.APPROVED)
        logger.info(f"[verification] approved merchant={merchant_id}")
        return saved

    async def reject(self, verification_id: str, merchant_id: str, reason: str) -> Verification:
        """pending -> rejected with a reason shown to the merchant."""
        reason = reason.strip()
        if not reason:
            raise ValidationError("A rejection reason is required", detail={"field": "reason"})
        saved = await self.remote.verifications.reject(verification_id, merchant_id, reason)
        await self.cache.write(verification_record(merchant_id), saved)
        await self._mirror_merchant(merchant_id, verified=False, status=VerificationStatus.REJECTED)
        logger.info(f"[verification] rejected merchant={merchant_id} reason={reason!r}")
        return saved

    async def _mirror_merchant(self, merchant_id: str, *, verified: bool, status: VerificationStatus) -> None:
        async with self.cache.lock(merchant_record(merchant_id)):
            merchant = await self.cache.read(merchant_record(merchant_id), None)
            if merchant is None:
                try:
                    merchant = await self.remote.merchants.get(merchant_id)
                except RemoteUnavailable as e:
                    logger.warning(f"[verification] could not load merchant {merchant_id} for local mirror: {e}")
                    return
                if merchant is None:
                    return
            merchant = merchant.model_copy(update={"verified": verified, "verification_status": status})
            check_merchant_invariant(merchant)
            await store_local_merchant(self.cache, merchant)
