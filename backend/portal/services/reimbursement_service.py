"""
Reimbursement requests: client submission and correction, staff review
and the document checklist of each request.
"""
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from portal.core.exceptions import StorageError
from portal.core.logging import get_logger
from portal.models.audit import ReimbursementDecision, DecisionType
from portal.models.policy import Policy, PolicyStatus
from portal.models.product import RequiredDocument
from portal.models.profile import Profile, ProfileRole, STAFF_ROLES
from portal.models.reimbursement import ReimbursementRequest, ReimbursementDocument, ReimbursementStatus
from portal.services import reimbursement_rules as rules
from portal.services.reimbursement_rules import Action
from portal.services.storage_service import StorageService, REIMBURSEMENT_BUCKET

LOGGER = get_logger(__name__)


class DocumentUpload(NamedTuple):
    """A file attached by the client for one named document of the checklist."""
    document_name: str
    filename: str
    content: bytes
    content_type: Optional[str] = None


def can_view_request(request: ReimbursementRequest, policy: Policy, profile: Profile) -> bool:
    if profile.role in STAFF_ROLES:
        return True
    if profile.role == ProfileRole.AGENT:
        return policy is not None and policy.agent_id == profile.id
    return request.client_id == profile.id


def can_handle_documents(policy: Policy, profile: Profile) -> bool:
    """Staff, or the agent the policy is assigned to."""
    if profile.role in STAFF_ROLES:
        return True
    return profile.role == ProfileRole.AGENT and policy is not None and policy.agent_id == profile.id


class ReimbursementService:
    def __init__(self, db: AsyncSession, storage: StorageService = None):
        self.db = db
        self.storage = storage

    async def submit_request(
        self,
        client: Profile,
        policy_id: int,
        amount_requested: Any,
        uploads: List[DocumentUpload],
        event_date: date = None,
    ) -> ReimbursementRequest:
        """
        Create a request in PENDING status and store its documents.
        Every required document of the policy's product must be attached.
        """
        policy = await self._get_policy(policy_id)
        if not policy or policy.client_id != client.id:
            raise ValueError("Missing user or policy data.")
        if policy.status != PolicyStatus.ACTIVE:
            raise ValueError("Reimbursements can only be requested on active policies.")

        amount = rules.validate_requested_amount(amount_requested)
        self._check_uploads(uploads)
        required = await self._get_required_documents(policy.product_id)
        self._check_document_names(required, uploads)
        missing = rules.missing_required_documents(required, [u.document_name for u in uploads])
        if missing:
            raise ValueError(f"Missing required document: {missing[0]}")

        request = ReimbursementRequest(
            policy_id=policy.id,
            client_id=client.id,
            amount_requested=amount,
            event_date=event_date,
            request_date=datetime.now(timezone.utc),
            status=ReimbursementStatus.PENDING,
        )
        self.db.add(request)
        await self.db.commit()
        await self.db.refresh(request)

        try:
            documents = await self._store_uploads(request.id, uploads, client.id)
        except StorageError:
            # No documents means no request
            await self.db.delete(request)
            await self.db.commit()
            LOGGER.warning("Reimbursement request cancelled after upload failure", extra={"request_id": request.id})
            raise

        self.db.add_all(documents)
        await self.db.commit()
        await self.db.refresh(request)
        LOGGER.info(
            "Reimbursement request submitted",
            extra={"request_id": request.id, "policy_id": policy.id, "documents": len(documents)},
        )
        return request

    async def start_review(self, request_id: int, reviewer: Profile) -> ReimbursementRequest:
        request = await self._require_request(request_id)
        request.status = rules.next_status(request.status, Action.START_REVIEW)
        await self._log_decision(request.id, DecisionType.IN_REVIEW, None, reviewer.id)
        await self.db.commit()
        await self.db.refresh(request)
        self._log_transition(request, reviewer)
        return request

    async def approve(
        self, request_id: int, reviewer: Profile, amount_approved: Any, justification: str = None
    ) -> ReimbursementRequest:
        """
        Approve the request for a non-negative amount.
        Clears any previous rejection and records who approved it.
        """
        request = await self._require_request(request_id)
        target = rules.next_status(request.status, Action.APPROVE)
        amount = rules.validate_approved_amount(amount_approved)

        note = rules.decision_note(target, reviewer.email)
        if justification and justification.strip():
            note = f"{note} {justification.strip()}"

        request.status = target
        request.amount_approved = amount
        request.rejection_reasons = None
        request.rejection_comments = None
        request.admin_notes = rules.append_note(request.admin_notes, note)

        await self._log_decision(request.id, DecisionType.APPROVED, note, reviewer.id)
        await self.db.commit()
        await self.db.refresh(request)
        self._log_transition(request, reviewer)
        return request

    async def reject(
        self, request_id: int, reviewer: Profile, reasons: Iterable[str], comments: Dict[str, str] = None
    ) -> ReimbursementRequest:
        return await self._decline(request_id, reviewer, Action.REJECT, reasons, comments)

    async def request_more_info(
        self, request_id: int, reviewer: Profile, reasons: Iterable[str], comments: Dict[str, str] = None
    ) -> ReimbursementRequest:
        return await self._decline(request_id, reviewer, Action.REQUEST_MORE_INFO, reasons, comments)

    async def _decline(
        self,
        request_id: int,
        reviewer: Profile,
        action: Action,
        reasons: Iterable[str],
        comments: Optional[Dict[str, str]],
    ) -> ReimbursementRequest:
        request = await self._require_request(request_id)
        target = rules.next_status(request.status, action)
        tags, text = rules.build_rejection_comments(reasons, comments)

        request.status = target
        request.rejection_reasons = tags
        request.rejection_comments = text
        request.amount_approved = None
        request.admin_notes = rules.append_note(request.admin_notes, rules.decision_note(target, reviewer.email))

        decision = DecisionType.REJECTED if action == Action.REJECT else DecisionType.MORE_INFO_NEEDED
        await self._log_decision(request.id, decision, text, reviewer.id)
        await self.db.commit()
        await self.db.refresh(request)
        self._log_transition(request, reviewer)
        return request

    async def resubmit(
        self,
        request_id: int,
        client: Profile,
        amount_requested: Any,
        uploads: List[DocumentUpload] = None,
        document_ids_to_delete: Iterable[int] = (),
    ) -> ReimbursementRequest:
        """
        Client correction: replace or delete documents, update the amount and
        send the request back to PENDING with the rejection data cleared.
        """
        uploads = uploads or []
        request = await self._require_request(request_id)
        if request.client_id != client.id:
            raise PermissionError("Not authorized to edit this request")
        rules.next_status(request.status, Action.RESUBMIT)
        amount = rules.validate_requested_amount(amount_requested)
        self._check_uploads(uploads)

        current = await self.get_documents(request.id)
        delete_ids = set(document_ids_to_delete)
        unknown = delete_ids - {d.id for d in current}
        if unknown:
            raise ValueError(f"Documents not found on this request: {sorted(unknown)}")
        # A new file for a document name replaces the one already submitted
        replaced = {u.document_name for u in uploads}
        to_delete = [d for d in current if d.id in delete_ids or d.document_name in replaced]
        kept_names = [d.document_name for d in current if d not in to_delete]

        policy = await self._get_policy(request.policy_id)
        required = await self._get_required_documents(policy.product_id)
        self._check_document_names(required, uploads)
        missing = rules.missing_required_documents(required, kept_names + list(replaced))
        if missing:
            raise ValueError(f"Missing required document: {missing[0]}")

        old_paths = [d.file_url for d in to_delete]
        documents = await self._store_uploads(request.id, uploads, client.id)
        self.db.add_all(documents)
        for document in to_delete:
            await self.db.delete(document)

        request.amount_requested = amount
        request.status = ReimbursementStatus.PENDING
        request.rejection_reasons = None
        request.rejection_comments = None
        await self._log_decision(request.id, DecisionType.RESUBMITTED, None, client.id)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            await self._discard([d.file_url for d in documents])
            raise
        await self.db.refresh(request)

        # Rows are gone already; a failure here only leaves orphaned files
        await self._discard(old_paths)
        LOGGER.info(
            "Reimbursement request resubmitted",
            extra={"request_id": request.id, "added": len(documents), "deleted": len(to_delete)},
        )
        return request

    async def delete_document(self, document_id: int) -> None:
        """Remove a submitted document: the stored file first, then its row."""
        document = await self.get_document(document_id)
        if not document:
            raise ValueError("Document not found")
        await self.storage.remove(REIMBURSEMENT_BUCKET, [document.file_url])
        await self.db.delete(document)
        await self.db.commit()
        LOGGER.info(
            "Reimbursement document deleted",
            extra={"document_id": document_id, "request_id": document.reimbursement_request_id},
        )

    async def get_request(self, request_id: int) -> Optional[ReimbursementRequest]:
        result = await self.db.execute(select(ReimbursementRequest).where(ReimbursementRequest.id == request_id))
        return result.scalars().first()

    async def get_policy_for(self, request: ReimbursementRequest) -> Optional[Policy]:
        return await self._get_policy(request.policy_id)

    async def get_document(self, document_id: int) -> Optional[ReimbursementDocument]:
        result = await self.db.execute(select(ReimbursementDocument).where(ReimbursementDocument.id == document_id))
        return result.scalars().first()

    async def get_document_by_path(self, path: str) -> Optional[ReimbursementDocument]:
        result = await self.db.execute(select(ReimbursementDocument).where(ReimbursementDocument.file_url == path))
        return result.scalars().first()

    async def get_documents(self, request_id: int) -> List[ReimbursementDocument]:
        result = await self.db.execute(
            select(ReimbursementDocument)
            .where(ReimbursementDocument.reimbursement_request_id == request_id)
            .order_by(ReimbursementDocument.uploaded_at.desc(), ReimbursementDocument.id.desc())
        )
        return result.scalars().all()

    async def get_checklist(self, request: ReimbursementRequest) -> List[Dict[str, Any]]:
        """Required documents of the request's product and whether each was submitted."""
        policy = await self._get_policy(request.policy_id)
        if not policy:
            return []
        required = await self._get_required_documents(policy.product_id)
        submitted = {d.document_name for d in await self.get_documents(request.id)}
        return [
            {
                "document_name": doc.document_name,
                "is_required": doc.is_required,
                "description": doc.description,
                "submitted": doc.document_name in submitted,
            }
            for doc in required
        ]

    async def get_detail(self, request: ReimbursementRequest) -> Dict[str, Any]:
        policy = await self._get_policy(request.policy_id)
        client = await self.db.get(Profile, request.client_id)
        documents = []
        for document in await self.get_documents(request.id):
            documents.append(
                {
                    "id": document.id,
                    "reimbursement_request_id": document.reimbursement_request_id,
                    "document_name": document.document_name,
                    "file_url": self.storage.public_url(REIMBURSEMENT_BUCKET, document.file_url),
                    "uploaded_at": document.uploaded_at,
                    "status": document.status,
                    "admin_notes": document.admin_notes,
                    "uploaded_by": document.uploaded_by,
                }
            )
        return {
            "id": request.id,
            "policy_id": request.policy_id,
            "client_id": request.client_id,
            "request_date": request.request_date,
            "event_date": request.event_date,
            "status": request.status,
            "amount_requested": request.amount_requested,
            "amount_approved": request.amount_approved,
            "admin_notes": request.admin_notes,
            "rejection_reasons": request.rejection_reasons,
            "rejection_comments": request.rejection_comments,
            "policy_number": policy.policy_number if policy else None,
            "product_id": policy.product_id if policy else None,
            "client_name": client.full_name if client else None,
            "client_identification_number": client.identification_number if client else None,
            "documents": documents,
            "checklist": await self.get_checklist(request),
            "parsed_comments": rules.parse_rejection_comments(request.rejection_comments),
        }

    async def list_requests(
        self,
        profile: Profile,
        status: ReimbursementStatus = None,
        identification_prefix: str = None,
        open_only: bool = False,
    ) -> List[ReimbursementRequest]:
        """
        Requests visible to the profile, newest first.
        Staff see all, agents those on policies assigned to them, clients their own.
        """
        query = select(ReimbursementRequest).join(Policy, Policy.id == ReimbursementRequest.policy_id)
        if profile.role == ProfileRole.AGENT:
            query = query.where(Policy.agent_id == profile.id)
        elif profile.role not in STAFF_ROLES:
            query = query.where(ReimbursementRequest.client_id == profile.id)

        if status:
            query = query.where(ReimbursementRequest.status == status)
        if open_only:
            query = query.where(
                ReimbursementRequest.status.in_([ReimbursementStatus.PENDING, ReimbursementStatus.IN_REVIEW])
            )
        if identification_prefix:
            query = query.join(Profile, Profile.id == ReimbursementRequest.client_id).where(
                Profile.identification_number.startswith(identification_prefix, autoescape=True)
            )

        result = await self.db.execute(
            query.order_by(ReimbursementRequest.request_date.desc(), ReimbursementRequest.id.desc())
        )
        return result.scalars().all()

    async def get_decisions(self, request_id: int) -> List[ReimbursementDecision]:
        result = await self.db.execute(
            select(ReimbursementDecision)
            .where(ReimbursementDecision.request_id == request_id)
            .order_by(ReimbursementDecision.created_at, ReimbursementDecision.id)
        )
        return result.scalars().all()

    # Helper methods

    async def _require_request(self, request_id: int) -> ReimbursementRequest:
        request = await self.get_request(request_id)
        if not request:
            raise ValueError("Reimbursement request not found")
        return request

    async def _get_policy(self, policy_id: int) -> Optional[Policy]:
        result = await self.db.execute(select(Policy).where(Policy.id == policy_id))
        return result.scalars().first()

    async def _get_required_documents(self, product_id: int) -> List[RequiredDocument]:
        result = await self.db.execute(
            select(RequiredDocument)
            .where(RequiredDocument.product_id == product_id)
            .order_by(RequiredDocument.sort_order, RequiredDocument.id)
        )
        return result.scalars().all()

    async def _store_uploads(
        self, request_id: int, uploads: List[DocumentUpload], uploaded_by: int
    ) -> List[ReimbursementDocument]:
        """Upload every file; on failure remove the ones already stored and re-raise."""
        stored: List[str] = []
        documents = []
        stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        for position, upload in enumerate(uploads):
            path = f"{request_id}/{stamp}-{position}-{rules.sanitize_file_name(upload.filename)}"
            try:
                await self.storage.upload(REIMBURSEMENT_BUCKET, path, upload.content, upload.content_type)
            except StorageError as e:
                await self._discard(stored)
                raise StorageError(
                    f"Error uploading the file {upload.filename}: {e}", original_error=e
                )
            stored.append(path)
            documents.append(
                ReimbursementDocument(
                    reimbursement_request_id=request_id,
                    document_name=upload.document_name,
                    file_url=path,
                    uploaded_by=uploaded_by,
                )
            )
        return documents

    async def _discard(self, paths: List[str]) -> None:
        if not paths:
            return
        try:
            await self.storage.remove(REIMBURSEMENT_BUCKET, paths)
        except StorageError:
            LOGGER.error("Could not clean up uploaded files", extra={"paths": paths}, exc_info=True)

    @staticmethod
    def _check_uploads(uploads: List[DocumentUpload]) -> None:
        names = [u.document_name for u in uploads]
        if len(names) != len(set(names)):
            raise ValueError("Each document can only be attached once.")
        for upload in uploads:
            if not upload.content:
                raise ValueError(f"The file for {upload.document_name} is empty.")

    @staticmethod
    def _check_document_names(required: List[RequiredDocument], uploads: List[DocumentUpload]) -> None:
        unknown = rules.unknown_documents(required, [u.document_name for u in uploads])
        if unknown:
            raise ValueError(f"Unknown document: {unknown[0]}")

    async def _log_decision(self, request_id: int, decision: DecisionType, notes: Optional[str], decided_by: int):
        """Log a decision to the database."""
        self.db.add(
            ReimbursementDecision(
                request_id=request_id,
                decision=decision,
                notes=notes,
                decided_by=decided_by,
            )
        )

    @staticmethod
    def _log_transition(request: ReimbursementRequest, actor: Profile) -> None:
        LOGGER.info(
            "Reimbursement status changed",
            extra={"request_id": request.id, "status": request.status.value, "actor_id": actor.id},
        )
