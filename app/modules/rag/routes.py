from fastapi import APIRouter, Depends, Query
from app.core.dependencies import get_current_user
from app.core.errors import APIError, NotFoundError
from app.core.retry import RetryError
from app.modules.rag.base_provider import RAGAPIError
from app.modules.rag.service import RAGService, get_rag_service
from typing import Dict
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rag"])


def _upstream_error(error: Exception, not_found_message: str) -> APIError:
    cause = error.last_error if isinstance(error, RetryError) else error
    if isinstance(cause, RAGAPIError) and cause.status_code == 404:
        return NotFoundError(not_found_message)
    logger.error(f"RAG API request failed: {error}")
    return APIError(500, "INTERNAL_ERROR", str(error) or "Unknown error")


@router.get("/sources/{chunk_id}")
async def get_source(
    chunk_id: str,
    user: Dict = Depends(get_current_user),
    rag: RAGService = Depends(get_rag_service)
):
    """Detailed information about a cited source chunk"""
    try:
        source = await rag.get_source(chunk_id)
    except Exception as e:
        raise _upstream_error(e, "Source not found")
    return source.to_json_dict()


@router.get("/statutes/{section}")
async def get_statute(
    section: str,
    user: Dict = Depends(get_current_user),
    rag: RAGService = Depends(get_rag_service)
):
    """Statute with implementing rules, cases and TAAs"""
    try:
        statute = await rag.get_statute(section)
    except Exception as e:
        raise _upstream_error(e, "Statute not found")
    return statute.to_json_dict()


@router.get("/graph/{doc_id}/related")
async def get_related_documents(
    doc_id: str,
    user: Dict = Depends(get_current_user),
    rag: RAGService = Depends(get_rag_service)
):
    """Documents related through the citation graph"""
    try:
        related = await rag.get_related_docs(doc_id)
    except Exception as e:
        raise _upstream_error(e, "Document not found")
    return related.to_json_dict()


def _forms_provider(rag: RAGService, state: str):
    provider = rag.registry.get_provider(state)
    if not provider.capabilities.has_tax_forms:
        raise APIError(404, "NOT_SUPPORTED", f"Tax forms not available for state: {state}")
    return provider


@router.get("/forms")
async def list_forms(
    state: str = Query("UT"),
    rag: RAGService = Depends(get_rag_service)
):
    """List tax forms published for a state"""
    provider = _forms_provider(rag, state)
    try:
        forms = await provider.list_forms()
    except NotImplementedError:
        raise APIError(501, "NOT_IMPLEMENTED", "Forms not implemented for this provider")
    return {"forms": [f.to_json_dict() for f in forms], "stateCode": state}


@router.get("/forms/{form_number}")
async def get_form(
    form_number: str,
    state: str = Query("UT"),
    rag: RAGService = Depends(get_rag_service)
):
    """Details for a single tax form"""
    provider = _forms_provider(rag, state)
    try:
        form = await provider.get_form_info(form_number)
    except NotImplementedError:
        raise APIError(501, "NOT_IMPLEMENTED", "Forms not implemented for this provider")
    if form is None:
        raise APIError(404, "NOT_FOUND", f"Form not found: {form_number}")
    return form.to_json_dict()


@router.get("/rag/providers")
async def list_providers(
    user: Dict = Depends(get_current_user),
    rag: RAGService = Depends(get_rag_service)
):
    """States with a dedicated RAG backend, their capabilities and health"""
    registry = rag.registry
    health = {h["stateCode"]: h for h in await registry.check_all_health()}
    return {
        "defaultState": registry.get_default_provider().state_code,
        "providers": [
            {
                "stateCode": code,
                "stateName": provider.state_name,
                "capabilities": provider.capabilities.to_dict(),
                "health": health.get(code),
            }
            for code, provider in registry.providers.items()
        ],
    }
