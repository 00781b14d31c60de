"""Tests for ReimbursementService against an in-memory database and temp storage."""
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.future import select

from portal.core.exceptions import StorageError
from portal.models.audit import DecisionType
from portal.models.policy import PolicyStatus
from portal.models.reimbursement import ReimbursementRequest, ReimbursementStatus
from portal.services.reimbursement_service import DocumentUpload, ReimbursementService
from portal.services.storage_service import REIMBURSEMENT_BUCKET

from conftest import invoice_uploads, make_policy


@pytest.fixture
def service(db, storage):
    return ReimbursementService(db, storage)


@pytest.fixture
async def submitted(service, client_profile, active_policy):
    return await service.submit_request(client_profile, active_policy.id, "250.75", invoice_uploads())


class TestSubmit:
    async def test_creates_pending_request_with_documents(self, service, submitted, storage):
        assert submitted.status == ReimbursementStatus.PENDING
        assert submitted.amount_requested == 250.75
        documents = await service.get_documents(submitted.id)
        assert sorted(d.document_name for d in documents) == ["Medical invoice", "Medical report"]
        for document in documents:
            assert document.file_url.startswith(f"{submitted.id}/")
            assert storage.local_path(REIMBURSEMENT_BUCKET, document.file_url).is_file()

    async def test_missing_required_document(self, service, client_profile, active_policy):
        uploads = [DocumentUpload("Medical report", "report.pdf", b"data")]
        with pytest.raises(ValueError, match="Missing required document: Medical invoice"):
            await service.submit_request(client_profile, active_policy.id, 100, uploads)

    async def test_unknown_document_name(self, db, service, storage, client_profile, active_policy):
        uploads = invoice_uploads() + [DocumentUpload("Holiday photos", "beach.jpg", b"jpeg", "image/jpeg")]
        with pytest.raises(ValueError, match="Unknown document: Holiday photos"):
            await service.submit_request(client_profile, active_policy.id, 100, uploads)
        result = await db.execute(select(ReimbursementRequest))
        assert result.scalars().all() == []
        assert not (storage.root / REIMBURSEMENT_BUCKET).exists()

    async def test_optional_checklist_document_is_accepted(self, service, client_profile, active_policy):
        uploads = invoice_uploads() + [DocumentUpload("Prescription", "rx.pdf", b"%PDF-1.4 rx", "application/pdf")]
        request = await service.submit_request(client_profile, active_policy.id, 100, uploads)
        assert len(await service.get_documents(request.id)) == 3

    async def test_amount_must_be_positive(self, service, client_profile, active_policy):
        with pytest.raises(ValueError, match="greater than zero"):
            await service.submit_request(client_profile, active_policy.id, 0, invoice_uploads())

    async def test_policy_of_another_client(self, service, other_client, active_policy):
        with pytest.raises(ValueError, match="Missing user or policy data."):
            await service.submit_request(other_client, active_policy.id, 100, invoice_uploads())

    async def test_policy_must_be_active(self, db, service, client_profile, product):
        policy = await make_policy(db, client_profile, product, status=PolicyStatus.PENDING, number="POL-000009")
        with pytest.raises(ValueError, match="active policies"):
            await service.submit_request(client_profile, policy.id, 100, invoice_uploads())

    async def test_upload_failure_cancels_request(self, db, service, storage, client_profile, active_policy):
        storage.upload = AsyncMock(side_effect=StorageError("disk full"))
        with pytest.raises(StorageError, match="Error uploading the file invoice.pdf"):
            await service.submit_request(client_profile, active_policy.id, 100, invoice_uploads())
        result = await db.execute(select(ReimbursementRequest))
        assert result.scalars().all() == []

    async def test_sanitized_file_name(self, service, client_profile, active_policy):
        uploads = invoice_uploads()
        uploads[0] = uploads[0]._replace(filename="factura #1.pdf")
        request = await service.submit_request(client_profile, active_policy.id, 10, uploads)
        paths = [d.file_url for d in await service.get_documents(request.id)]
        assert any(p.endswith("-factura__1.pdf") for p in paths)


class TestReview:
    async def test_approve_negative_amount_rejected(self, service, submitted, admin):
        with pytest.raises(ValueError, match="The approved amount is not valid."):
            await service.approve(submitted.id, admin, -10)

    async def test_approve_clears_rejection_and_notes(self, service, submitted, admin, client_profile):
        await service.request_more_info(
            submitted.id, admin, ["illegible_document"], {"illegible_document": "Blurred invoice"}
        )
        await service.resubmit(submitted.id, client_profile, 250, [])
        approved = await service.approve(submitted.id, admin, "200", "Partial coverage.")
        assert approved.status == ReimbursementStatus.APPROVED
        assert approved.amount_approved == 200.0
        assert approved.rejection_reasons is None
        assert approved.rejection_comments is None
        assert "Approved by admin@example.com on " in approved.admin_notes
        assert approved.admin_notes.endswith("Partial coverage.")

    async def test_reject_requires_reason(self, service, submitted, admin):
        with pytest.raises(ValueError, match="At least one reason must be selected."):
            await service.reject(submitted.id, admin, [])

    async def test_reject_stores_reasons(self, service, submitted, admin):
        rejected = await service.reject(
            submitted.id, admin, ["missing_document", "out_of_coverage"], {"missing_document": "Lab results"}
        )
        assert rejected.status == ReimbursementStatus.REJECTED
        assert rejected.rejection_reasons == ["missing_document", "out_of_coverage"]
        assert rejected.rejection_comments == "Missing document(s): Lab results\nService/product out of coverage"
        assert rejected.amount_approved is None

    async def test_approved_is_terminal(self, service, submitted, admin):
        await service.approve(submitted.id, admin, 100)
        with pytest.raises(ValueError, match="Cannot reject"):
            await service.reject(submitted.id, admin, ["out_of_coverage"])

    async def test_start_review_and_decisions(self, service, submitted, agent, admin):
        await service.start_review(submitted.id, agent)
        await service.approve(submitted.id, admin, 100)
        decisions = await service.get_decisions(submitted.id)
        assert [d.decision for d in decisions] == [DecisionType.IN_REVIEW, DecisionType.APPROVED]


class TestResubmit:
    async def test_resubmit_clears_rejection_fields(self, service, submitted, admin, client_profile):
        await service.reject(submitted.id, admin, ["illegible_document"], {"illegible_document": "Blurred"})
        request = await service.resubmit(submitted.id, client_profile, "300", [])
        assert request.status == ReimbursementStatus.PENDING
        assert request.rejection_reasons is None
        assert request.rejection_comments is None
        assert request.amount_requested == 300.0

    async def test_new_file_replaces_document_with_same_name(
        self, service, storage, submitted, admin, client_profile
    ):
        await service.request_more_info(submitted.id, admin, ["out_of_coverage"])
        old = {d.document_name: d.file_url for d in await service.get_documents(submitted.id)}
        replacement = DocumentUpload("Medical invoice", "invoice-v2.pdf", b"%PDF-1.4 clearer", "application/pdf")

        await service.resubmit(submitted.id, client_profile, 250, [replacement])

        documents = {d.document_name: d.file_url for d in await service.get_documents(submitted.id)}
        assert documents["Medical report"] == old["Medical report"]
        assert documents["Medical invoice"].endswith("invoice-v2.pdf")
        assert not storage.local_path(REIMBURSEMENT_BUCKET, old["Medical invoice"]).exists()

    async def test_deleting_required_document_is_refused(self, service, submitted, admin, client_profile):
        await service.request_more_info(submitted.id, admin, ["out_of_coverage"])
        report = next(d for d in await service.get_documents(submitted.id) if d.document_name == "Medical report")
        with pytest.raises(ValueError, match="Missing required document: Medical report"):
            await service.resubmit(submitted.id, client_profile, 250, [], [report.id])

    async def test_unknown_document_id(self, service, submitted, client_profile):
        with pytest.raises(ValueError, match="Documents not found on this request"):
            await service.resubmit(submitted.id, client_profile, 250, [], [9999])

    async def test_unknown_document_name_on_resubmit(self, service, submitted, admin, client_profile):
        await service.request_more_info(submitted.id, admin, ["out_of_coverage"])
        extra = DocumentUpload("Selfie", "me.png", b"png", "image/png")
        with pytest.raises(ValueError, match="Unknown document: Selfie"):
            await service.resubmit(submitted.id, client_profile, 250, [extra])
        assert len(await service.get_documents(submitted.id)) == 2

    async def test_failed_commit_keeps_old_files(self, db, service, storage, submitted, admin, client_profile):
        await service.request_more_info(submitted.id, admin, ["out_of_coverage"])
        old_paths = sorted(d.file_url for d in await service.get_documents(submitted.id))
        replacement = DocumentUpload("Medical invoice", "invoice-v2.pdf", b"%PDF-1.4 clearer", "application/pdf")

        db.commit = AsyncMock(side_effect=RuntimeError("database is locked"))
        with pytest.raises(RuntimeError, match="database is locked"):
            await service.resubmit(submitted.id, client_profile, 250, [replacement])

        bucket = storage.root / REIMBURSEMENT_BUCKET
        on_disk = sorted(p.relative_to(bucket).as_posix() for p in bucket.rglob("*") if p.is_file())
        assert on_disk == old_paths

    async def test_only_owner_can_resubmit(self, service, submitted, other_client):
        with pytest.raises(PermissionError):
            await service.resubmit(submitted.id, other_client, 250, [])

    async def test_locked_while_in_review(self, service, submitted, agent, client_profile):
        await service.start_review(submitted.id, agent)
        with pytest.raises(ValueError, match="Cannot resubmit"):
            await service.resubmit(submitted.id, client_profile, 250, [])


class TestQueries:
    async def test_checklist(self, service, client_profile, active_policy):
        request = await service.submit_request(client_profile, active_policy.id, 10, invoice_uploads())
        checklist = await service.get_checklist(request)
        assert [(c["document_name"], c["is_required"], c["submitted"]) for c in checklist] == [
            ("Medical invoice", True, True),
            ("Medical report", True, True),
            ("Prescription", False, False),
        ]

    async def test_list_is_scoped_by_role(
        self, db, service, client_profile, other_client, agent, admin, product, active_policy
    ):
        other_policy = await make_policy(db, other_client, product, number="POL-000002")
        mine = await service.submit_request(client_profile, active_policy.id, 10, invoice_uploads())
        theirs = await service.submit_request(other_client, other_policy.id, 20, invoice_uploads())

        assert [r.id for r in await service.list_requests(client_profile)] == [mine.id]
        assert [r.id for r in await service.list_requests(agent)] == [mine.id]
        assert {r.id for r in await service.list_requests(admin)} == {mine.id, theirs.id}
        assert [r.id for r in await service.list_requests(admin, identification_prefix="E-")] == [theirs.id]

    async def test_open_only(self, service, submitted, agent, admin, client_profile, active_policy):
        done = await service.submit_request(client_profile, active_policy.id, 10, invoice_uploads())
        await service.approve(done.id, admin, 10)
        assert [r.id for r in await service.list_requests(agent, open_only=True)] == [submitted.id]

    async def test_delete_document_removes_file_then_row(self, service, storage, submitted):
        document = (await service.get_documents(submitted.id))[0]
        await service.delete_document(document.id)
        assert await service.get_document(document.id) is None
        assert not storage.local_path(REIMBURSEMENT_BUCKET, document.file_url).exists()

    async def test_delete_document_keeps_row_when_storage_fails(self, service, storage, submitted):
        document = (await service.get_documents(submitted.id))[0]
        storage.remove = AsyncMock(side_effect=StorageError("Delete failed: boom"))
        with pytest.raises(StorageError):
            await service.delete_document(document.id)
        assert await service.get_document(document.id) is not None

    async def test_detail(self, service, submitted, admin):
        await service.reject(submitted.id, admin, ["missing_document"], {"missing_document": "Lab results"})
        detail = await service.get_detail(submitted)
        assert detail["policy_number"] == "POL-000001"
        assert detail["client_identification_number"] == "V-301"
        assert detail["parsed_comments"] == {"missing_document": "Lab results"}
        assert all(d["file_url"].startswith("/api/v1/files/reimbursement-docs/") for d in detail["documents"])
