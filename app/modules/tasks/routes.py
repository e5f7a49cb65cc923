from fastapi import APIRouter, Depends, Query, Response
from app.core.dependencies import get_current_user, get_organization_id
from app.core.pagination import Pagination, pagination
from app.core.rate_limit import rate_limit, standard_limiter
from app.database.supabase_client import get_supabase
from app.modules.tasks.schemas import TaskCreate, TaskListResponse, TaskResponse, TaskStatus, TaskUpdate
from app.modules.tasks.service import TaskService
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/tasks", tags=["tasks"])


def get_task_service(supabase: Client = Depends(get_supabase)) -> TaskService:
    return TaskService(supabase)


@router.get("", response_model=TaskListResponse, dependencies=[Depends(rate_limit(standard_limiter))])
async def list_tasks(
    client_id: Optional[str] = Query(None, alias="clientId"),
    status: Optional[TaskStatus] = None,
    page: Pagination = Depends(pagination()),
    user: Dict = Depends(get_current_user),
    service: TaskService = Depends(get_task_service)
):
    """List the caller's tasks, newest first"""
    return service.list_tasks(user["id"], page, client_id=client_id, status=status)


@router.post("", response_model=TaskResponse, status_code=201, dependencies=[Depends(rate_limit(standard_limiter))])
async def create_task(
    task_data: TaskCreate,
    user: Dict = Depends(get_current_user),
    organization_id: str = Depends(get_organization_id),
    service: TaskService = Depends(get_task_service)
):
    """Create a task"""
    return service.create_task(task_data, user["id"], organization_id)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    user: Dict = Depends(get_current_user),
    service: TaskService = Depends(get_task_service)
):
    """Get task by ID"""
    return service.get_task(task_id, user["id"])


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    task_data: TaskUpdate,
    user: Dict = Depends(get_current_user),
    service: TaskService = Depends(get_task_service)
):
    """Update task progress"""
    return service.update_task(task_id, task_data, user["id"])


@router.delete("/{task_id}", status_code=204)
async def delete_task(
    task_id: str,
    user: Dict = Depends(get_current_user),
    service: TaskService = Depends(get_task_service)
):
    """Delete task"""
    service.delete_task(task_id, user["id"])
    return Response(status_code=204)
