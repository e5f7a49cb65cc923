from supabase import Client
from app.core.errors import DatabaseError, NotFoundError
from app.core.pagination import Pagination
from app.modules.clients.service import ensure_client_in_organization
from app.modules.tasks.schemas import TERMINAL_STATUSES, TaskCreate, TaskUpdate
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def list_tasks(
        self,
        user_id: str,
        pagination: Pagination,
        client_id: Optional[str] = None,
        status: Optional[str] = None
    ) -> Dict[str, Any]:
        try:
            query = self.supabase.table("tasks")\
                .select("*, clients(name)", count="exact")\
                .eq("user_id", user_id)
            if client_id:
                query = query.eq("client_id", client_id)
            if status:
                query = query.eq("status", status)
            result = query.order("created_at", desc=True)\
                .range(pagination.start, pagination.end)\
                .execute()
        except Exception as e:
            logger.error(f"Error listing tasks: {e}")
            raise DatabaseError(str(e))
        return pagination.wrap(result.data or [], result.count)

    def create_task(self, task_data: TaskCreate, user_id: str, organization_id: str) -> Dict[str, Any]:
        """Create a task in progress at its first step"""
        client_id = str(task_data.client_id) if task_data.client_id else None
        if client_id:
            ensure_client_in_organization(self.supabase, client_id, organization_id)
        try:
            result = self.supabase.table("tasks").insert({
                "user_id": user_id,
                "client_id": client_id,
                "thread_id": str(task_data.thread_id) if task_data.thread_id else None,
                "title": task_data.title,
                "steps": [step.model_dump() for step in task_data.steps or []],
                "attached_file": task_data.attached_file,
                "status": "in_progress",
                "current_step": 0,
            }).execute()
        except Exception as e:
            logger.error(f"Error creating task: {e}")
            raise DatabaseError(str(e))
        if not result.data:
            raise DatabaseError("Failed to create task")
        return result.data[0]

    def get_task(self, task_id: str, user_id: str) -> Dict[str, Any]:
        try:
            result = self.supabase.table("tasks")\
                .select("*, clients(name)")\
                .eq("id", task_id)\
                .eq("user_id", user_id)\
                .maybe_single()\
                .execute()
        except Exception as e:
            logger.error(f"Error fetching task {task_id}: {e}")
            raise DatabaseError(str(e))
        if result is None or not result.data:
            raise NotFoundError("Task not found")
        return result.data

    def update_task(self, task_id: str, task_data: TaskUpdate, user_id: str) -> Dict[str, Any]:
        provided = task_data.model_dump(exclude_unset=True)
        update_data = {k: v for k, v in provided.items() if v is not None}
        if update_data.get("status") in TERMINAL_STATUSES:
            update_data["completed_at"] = datetime.now(timezone.utc).isoformat()
        if not update_data:
            return self.get_task(task_id, user_id)
        try:
            result = self.supabase.table("tasks")\
                .update(update_data)\
                .eq("id", task_id)\
                .eq("user_id", user_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error updating task {task_id}: {e}")
            raise DatabaseError(str(e))
        if not result.data:
            raise NotFoundError("Task not found")
        return result.data[0]

    def delete_task(self, task_id: str, user_id: str) -> None:
        self.get_task(task_id, user_id)
        try:
            self.supabase.table("tasks")\
                .delete()\
                .eq("id", task_id)\
                .eq("user_id", user_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error deleting task {task_id}: {e}")
            raise DatabaseError(str(e))
