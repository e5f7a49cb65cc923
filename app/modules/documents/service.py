from fastapi import UploadFile
from supabase import Client
from app.config.settings import settings
from app.core.errors import APIError, DatabaseError, NotFoundError, ServerError, StorageError, ValidationError
from app.modules.clients.service import ensure_client_in_organization
from app.modules.documents.extraction import DocumentExtractor
from app.modules.documents.pdf_extract import PDFExtractionError, extract_text_from_pdf, truncate_text
from app.modules.documents.schemas import ALLOWED_MIME_TYPES, DOCUMENT_TYPES
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import logging
import re
import time

logger = logging.getLogger(__name__)

SIGNED_URL_TTL_SECONDS = 3600
MIN_TEXT_LENGTH = 50
MAX_PROMPT_TEXT_LENGTH = 8000


def build_storage_path(client_id: str, name: str, filename: Optional[str], now_ms: Optional[int] = None) -> str:
    """Object key ``{client_id}/{epoch_ms}-{sanitized name}.{ext}``"""
    base = re.split(r"[\\/]", filename or "")[-1]
    ext = re.sub(r"[^A-Za-z0-9]", "", base.rsplit(".", 1)[-1]) if "." in base else ""
    ext = ext or "pdf"
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{client_id}/{timestamp}-{re.sub(r'[^a-zA-Z0-9]', '_', name)}.{ext}"


class DocumentService:
    def __init__(
        self,
        supabase: Client,
        extractor_factory: Optional[Callable[[], DocumentExtractor]] = None
    ):
        self.supabase = supabase
        self.bucket = settings.storage_bucket
        self.extractor_factory = extractor_factory or DocumentExtractor

    @property
    def storage(self):
        return self.supabase.storage.from_(self.bucket)

    async def upload_document(
        self,
        file: UploadFile,
        client_id: str,
        name: str,
        document_type: str,
        organization_id: str,
        user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Store the file in the bucket, then record it; the object is removed if the insert fails"""
        if document_type not in DOCUMENT_TYPES:
            raise ValidationError("Invalid document type", {"allowed": list(DOCUMENT_TYPES)})

        ensure_client_in_organization(self.supabase, client_id, organization_id)

        content = await file.read()
        if len(content) > settings.max_upload_bytes:
            raise ValidationError("File size exceeds 10MB limit")
        mime_type = file.content_type or ""
        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError("Invalid file type. Allowed: PDF, JPEG, PNG, GIF, DOC, DOCX")

        storage_path = build_storage_path(client_id, name, file.filename)
        try:
            self.storage.upload(
                storage_path,
                content,
                file_options={"content-type": mime_type, "upsert": "false"}
            )
        except Exception as e:
            logger.error(f"Storage upload error: {e}")
            raise StorageError(str(e))

        try:
            result = self.supabase.table("documents").insert({
                "client_id": client_id,
                "name": name,
                "type": document_type,
                "storage_path": storage_path,
                "file_size": len(content),
                "mime_type": mime_type,
                "uploaded_by": user_id,
            }).execute()
            if not result.data:
                raise RuntimeError("Failed to create document record")
        except Exception as e:
            logger.error(f"Document insert failed, removing {storage_path}: {e}")
            try:
                self.storage.remove([storage_path])
            except Exception as cleanup_error:
                logger.warning(f"Failed to remove orphaned upload {storage_path}: {cleanup_error}")
            raise DatabaseError(str(e))

        logger.info(f"Uploaded document {result.data[0]['id']} for client {client_id}")
        return result.data[0]

    def list_documents(self, client_id: str, organization_id: str) -> List[Dict[str, Any]]:
        """Documents for a client, newest first"""
        ensure_client_in_organization(self.supabase, client_id, organization_id)
        try:
            result = self.supabase.table("documents")\
                .select("*")\
                .eq("client_id", client_id)\
                .order("created_at", desc=True)\
                .execute()
        except Exception as e:
            logger.error(f"Error listing documents for client {client_id}: {e}")
            raise DatabaseError(str(e))
        return result.data or []

    def get_document(self, document_id: str, organization_id: str, columns: str = "*") -> Dict[str, Any]:
        """Document row, 404 unless its client belongs to the organization"""
        select = columns if columns == "*" or "client_id" in columns else f"{columns}, client_id"
        try:
            result = self.supabase.table("documents")\
                .select(select)\
                .eq("id", document_id)\
                .maybe_single()\
                .execute()
        except Exception as e:
            logger.error(f"Error fetching document {document_id}: {e}")
            raise DatabaseError(str(e))
        if result is None or not result.data:
            raise NotFoundError("Document not found")
        try:
            ensure_client_in_organization(self.supabase, result.data["client_id"], organization_id)
        except NotFoundError:
            raise NotFoundError("Document not found")
        return result.data

    def get_document_with_url(self, document_id: str, organization_id: str) -> Dict[str, Any]:
        document = self.get_document(document_id, organization_id)
        try:
            signed = self.storage.create_signed_url(document["storage_path"], SIGNED_URL_TTL_SECONDS)
        except Exception as e:
            logger.error(f"Failed to sign URL for document {document_id}: {e}")
            raise StorageError(str(e))
        # storage3 has returned both spellings across releases
        download_url = signed.get("signedUrl") or signed.get("signedURL")
        return {**document, "download_url": download_url}

    def delete_document(self, document_id: str, organization_id: str) -> None:
        document = self.get_document(document_id, organization_id, columns="id, storage_path")
        try:
            self.storage.remove([document["storage_path"]])
        except Exception as e:
            logger.error(f"Storage delete error for {document['storage_path']}: {e}")
        try:
            self.supabase.table("documents").delete().eq("id", document_id).execute()
        except Exception as e:
            logger.error(f"Error deleting document {document_id}: {e}")
            raise DatabaseError(str(e))

    def get_extraction(self, document_id: str, organization_id: str) -> Dict[str, Any]:
        document = self.get_document(
            document_id, organization_id,
            columns="id, extraction_status, extracted_data, extracted_at, extraction_error"
        )
        return {
            "document_id": document["id"],
            "status": document.get("extraction_status"),
            "extracted_data": document.get("extracted_data"),
            "extracted_at": document.get("extracted_at"),
            "error": document.get("extraction_error"),
        }

    async def extract_document(self, document_id: str, organization_id: str) -> Dict[str, Any]:
        """
        Run AI extraction on a PDF document.

        Status moves pending -> processing -> completed, or to failed with the
        reason recorded in extraction_error.
        """
        if not settings.extraction_enabled:
            raise ServerError("AI extraction service not configured")

        document = self.get_document(document_id, organization_id)

        if document.get("mime_type") != "application/pdf":
            raise APIError(422, "INVALID_TYPE", "Only PDF documents can be extracted")

        if document.get("extraction_status") == "completed":
            return {
                "success": True,
                "message": "Already extracted",
                "extractedData": document.get("extracted_data"),
            }

        self._set_extraction(document_id, {"extraction_status": "processing", "extraction_error": None})

        try:
            pdf_bytes = self.storage.download(document["storage_path"])
        except Exception as e:
            logger.error(f"Failed to download {document['storage_path']}: {e}")
            pdf_bytes = None
        if not pdf_bytes:
            self._fail(document_id, "Failed to download document from storage")
            raise StorageError("Failed to download document")

        try:
            pdf_text = extract_text_from_pdf(pdf_bytes).text
        except PDFExtractionError as e:
            self._fail(document_id, e.message)
            raise APIError(422, "EXTRACTION_ERROR", e.message)

        if len(pdf_text.strip()) < MIN_TEXT_LENGTH:
            self._fail(document_id, "Insufficient text content. Is this a scanned document?")
            raise APIError(422, "NO_TEXT", "No extractable text found in PDF")

        try:
            extractor = self.extractor_factory()
            extraction = await extractor.extract_financial_data(
                truncate_text(pdf_text, MAX_PROMPT_TEXT_LENGTH), document["type"]
            )
        except Exception as e:
            message = str(e) or "AI extraction failed"
            logger.error(f"AI extraction failed for document {document_id}: {message}")
            self._fail(document_id, message)
            raise APIError(500, "AI_ERROR", message)

        try:
            self.supabase.table("documents").update({
                "extraction_status": "completed",
                "extracted_data": extraction,
                "extracted_at": datetime.now(timezone.utc).isoformat(),
                "extraction_error": None,
            }).eq("id", document_id).execute()
        except Exception as e:
            logger.error(f"Failed to save extraction result for {document_id}: {e}")
            raise DatabaseError("Failed to save extraction result")

        logger.info(f"Extracted document {document_id} (confidence {extraction.get('confidence')})")
        return {"success": True, "documentId": document_id, "extractedData": extraction}

    def _fail(self, document_id: str, reason: str) -> None:
        self._set_extraction(document_id, {"extraction_status": "failed", "extraction_error": reason})

    def _set_extraction(self, document_id: str, update_data: Dict[str, Any]) -> None:
        try:
            self.supabase.table("documents").update(update_data).eq("id", document_id).execute()
        except Exception as e:
            logger.error(f"Failed to update extraction status for {document_id}: {e}")
