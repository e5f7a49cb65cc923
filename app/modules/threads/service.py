from supabase import Client
from app.core.errors import DatabaseError, NotFoundError
from app.core.pagination import Pagination
from app.modules.clients.service import ensure_client_in_organization
from app.modules.threads.schemas import MessageCreate, ThreadCreate
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


def touch_thread(supabase: Client, thread_id: str) -> None:
    """Bump updated_at so the thread sorts first; failures are logged only"""
    try:
        supabase.table("threads")\
            .update({"updated_at": datetime.now(timezone.utc).isoformat()})\
            .eq("id", thread_id)\
            .execute()
    except Exception as e:
        logger.warning(f"Failed to touch thread {thread_id}: {e}")


class ThreadService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def list_threads(self, user_id: str, pagination: Pagination, client_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            query = self.supabase.table("threads")\
                .select("*, clients(name)", count="exact")\
                .eq("user_id", user_id)
            if client_id:
                query = query.eq("client_id", client_id)
            result = query.order("updated_at", desc=True)\
                .range(pagination.start, pagination.end)\
                .execute()
        except Exception as e:
            logger.error(f"Error listing threads: {e}")
            raise DatabaseError(str(e))
        return pagination.wrap(result.data or [], result.count)

    def create_thread(self, thread_data: ThreadCreate, user_id: str, organization_id: str) -> Dict[str, Any]:
        client_id = str(thread_data.client_id)
        ensure_client_in_organization(self.supabase, client_id, organization_id)
        try:
            result = self.supabase.table("threads").insert({
                "client_id": client_id,
                "user_id": user_id,
                "title": thread_data.title,
            }).execute()
        except Exception as e:
            logger.error(f"Error creating thread: {e}")
            raise DatabaseError(str(e))
        if not result.data:
            raise DatabaseError("Failed to create thread")
        return result.data[0]

    def get_thread(self, thread_id: str, user_id: str, columns: str = "*, clients(name, state, tax_year, filing_status)") -> Dict[str, Any]:
        """Thread owned by the user, with client context embedded"""
        try:
            result = self.supabase.table("threads")\
                .select(columns)\
                .eq("id", thread_id)\
                .eq("user_id", user_id)\
                .maybe_single()\
                .execute()
        except Exception as e:
            logger.error(f"Error fetching thread {thread_id}: {e}")
            raise DatabaseError(str(e))
        if result is None or not result.data:
            raise NotFoundError("Thread not found")
        return result.data

    def delete_thread(self, thread_id: str, user_id: str) -> None:
        self.get_thread(thread_id, user_id, columns="id")
        try:
            self.supabase.table("threads")\
                .delete()\
                .eq("id", thread_id)\
                .eq("user_id", user_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error deleting thread {thread_id}: {e}")
            raise DatabaseError(str(e))

    def list_messages(self, thread_id: str, user_id: str, pagination: Pagination) -> Dict[str, Any]:
        """Messages in conversation order"""
        self.get_thread(thread_id, user_id, columns="id")
        try:
            result = self.supabase.table("messages")\
                .select("*", count="exact")\
                .eq("thread_id", thread_id)\
                .order("created_at")\
                .range(pagination.start, pagination.end)\
                .execute()
        except Exception as e:
            logger.error(f"Error listing messages for thread {thread_id}: {e}")
            raise DatabaseError(str(e))
        return pagination.wrap(result.data or [], result.count)

    def create_message(self, thread_id: str, message_data: MessageCreate, user_id: str) -> Dict[str, Any]:
        self.get_thread(thread_id, user_id, columns="id")
        message = self.save_message(thread_id, message_data.role, message_data.content)
        touch_thread(self.supabase, thread_id)
        return message

    def save_message(
        self,
        thread_id: str,
        role: str,
        content: str,
        citations: Optional[List[Dict[str, Any]]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Insert a message row without ownership checks"""
        row: Dict[str, Any] = {"thread_id": thread_id, "role": role, "content": content}
        if citations is not None:
            row["citations"] = citations
        if metadata is not None:
            row["metadata"] = metadata
        try:
            result = self.supabase.table("messages").insert(row).execute()
        except Exception as e:
            logger.error(f"Error saving {role} message in thread {thread_id}: {e}")
            raise DatabaseError(str(e))
        if not result.data:
            raise DatabaseError("Failed to save message")
        return result.data[0]
