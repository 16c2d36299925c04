from fastapi import APIRouter, Query, Response, status

from tasklist.core.deps import CurrentUserDep, DbDep
from tasklist.core.errors import TaskNotFound, payload_error_code
from tasklist.models import TaskCreate, TaskPage, TaskResponse, TaskUpdate
from tasklist.services.task_service import TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
@payload_error_code("INVALID_TASK_PAYLOAD")
async def create_task(task_data: TaskCreate, current_user: CurrentUserDep, db: DbDep):
    """Create a new task for the authenticated user"""
    return await TaskService.create_task(current_user.user_id, task_data, db)


@router.get("", response_model=TaskPage)
async def list_tasks(
    current_user: CurrentUserDep,
    db: DbDep,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100, alias="pageSize"),
    done: bool | None = None,
):
    return await TaskService.list_tasks(current_user.user_id, db, page, page_size, done)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, current_user: CurrentUserDep, db: DbDep):
    """Get a specific task by ID"""
    task = await TaskService.get_task(current_user.user_id, task_id, db)
    if not task:
        raise TaskNotFound(f"task {task_id} not found for {current_user.user_id}")
    return task


@router.put("/{task_id}", response_model=TaskResponse)
@payload_error_code("INVALID_TASK_PAYLOAD")
async def update_task(
    task_id: str, task_data: TaskUpdate, current_user: CurrentUserDep, db: DbDep
):
    task = await TaskService.update_task(current_user.user_id, task_id, task_data, db)
    if not task:
        raise TaskNotFound(f"task {task_id} not found for {current_user.user_id}")
    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: str, current_user: CurrentUserDep, db: DbDep):
    """Delete a task"""
    if not await TaskService.delete_task(current_user.user_id, task_id, db):
        raise TaskNotFound(f"task {task_id} not found for {current_user.user_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
