from datetime import datetime, timezone

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from tasklist.models import Task, TaskCreate, TaskPage, TaskResponse, TaskUpdate


class TaskService:
    """Task CRUD. Every query is scoped to the owning user id."""

    @staticmethod
    async def create_task(user_id: str, task_data: TaskCreate, db: AsyncSession):
        task = Task.model_validate(task_data, update={"user_id": user_id})
        db.add(task)
        await db.commit()
        await db.refresh(task)
        return task

    @staticmethod
    async def list_tasks(
        user_id: str,
        db: AsyncSession,
        page: int = 1,
        page_size: int = 20,
        done: bool | None = None,
    ) -> TaskPage:
        query = select(Task).where(Task.user_id == user_id)
        if done is not None:
            query = query.where(Task.done == done)
        # fetch one extra row to know whether another page exists
        query = (
            query.order_by(Task.created_at.desc(), Task.id)
            .offset((page - 1) * page_size)
            .limit(page_size + 1)
        )

        result = await db.exec(query)
        tasks = result.all()
        return TaskPage(
            items=[TaskResponse.model_validate(t) for t in tasks[:page_size]],
            page=page,
            page_size=page_size,
            has_more=len(tasks) > page_size,
        )

    @staticmethod
    async def get_task(user_id: str, task_id: str, db: AsyncSession):
        result = await db.exec(
            select(Task).where(Task.id == task_id, Task.user_id == user_id)
        )
        return result.first()

    @staticmethod
    async def update_task(
        user_id: str, task_id: str, task_data: TaskUpdate, db: AsyncSession
    ):
        task = await TaskService.get_task(user_id, task_id, db)
        if not task:
            return None
        update_data = task_data.model_dump(exclude_unset=True, exclude_none=True)
        task.sqlmodel_update(update_data)
        task.updated_at = datetime.now(timezone.utc)
        await db.commit()
        await db.refresh(task)
        return task

    @staticmethod
    async def delete_task(user_id: str, task_id: str, db: AsyncSession):
        task = await TaskService.get_task(user_id, task_id, db)
        if not task:
            return False
        await db.delete(task)
        await db.commit()
        return True
