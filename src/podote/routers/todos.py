from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from ..auth import get_user_id_dependency
from ..schemas import TodoContentUpdate, TodoCreate, TodoDoneUpdate, TodoOut, TodoReorder
from ..service import TodoService, get_todo_service

router = APIRouter(
    prefix="/api/v1/todos",
    tags=["todos"],
)

current_user_id = get_user_id_dependency()


def _get_service(service: TodoService = Depends(get_todo_service)) -> TodoService:
    """
    Dependency wrapper for the service to keep signatures clean.
    """
    return service


def _out(item) -> Optional[TodoOut]:
    return None if item is None else TodoOut(**item)


def _out_list(items) -> List[TodoOut]:
    return [TodoOut(**it) for it in items]


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TodoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a new Todo ranked above the user's current active todos.",
)
def create_todo(
    payload: TodoCreate,
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> TodoOut:
    """
    Create a new Todo.
    """
    return TodoOut(**service.create(user_id, payload.content))


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=List[TodoOut],
    summary="List Todos",
    description="List the user's active todos, highest rank first.",
)
def list_todos(
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> List[TodoOut]:
    return _out_list(service.list_active(user_id))


# PUBLIC_INTERFACE
@router.get(
    "/trash",
    response_model=List[TodoOut],
    summary="List Trash",
    description="List the user's removed todos, most recently removed first.",
)
def list_trash(
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> List[TodoOut]:
    return _out_list(service.list_trash(user_id))


# PUBLIC_INTERFACE
@router.put(
    "/order",
    response_model=List[TodoOut],
    summary="Reorder Todos",
    description=(
        "Assign new ranks to several todos at once. The whole batch applies atomically; "
        "ids that do not belong to the user are ignored. Returns the full active list."
    ),
    responses={422: {"description": "Duplicate ids or ranks in the request"}},
)
def reorder_todos(
    payload: TodoReorder,
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> List[TodoOut]:
    pairs = [(item.id, item.order_key) for item in payload.items]
    return _out_list(service.reorder(user_id, pairs))


# PUBLIC_INTERFACE
@router.post(
    "/normalize",
    response_model=List[TodoOut],
    summary="Normalize Ranks",
    description="Renumber active todos to a contiguous sequence keeping the current order.",
)
def normalize_todos(
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> List[TodoOut]:
    return _out_list(service.normalize(user_id))


# PUBLIC_INTERFACE
@router.get(
    "/trash/{todo_id}",
    response_model=Optional[TodoOut],
    summary="Get Trashed Todo",
    description="Get a single removed Todo by ID, or null.",
)
def get_trashed_todo(
    todo_id: str,
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> Optional[TodoOut]:
    return _out(service.get_trashed_by_id(user_id, todo_id))


# PUBLIC_INTERFACE
@router.post(
    "/trash/{todo_id}/restore",
    response_model=Optional[TodoOut],
    summary="Restore Todo",
    description="Move a removed Todo back to the active list. Returns it, or null if it was not in the trash.",
)
def restore_todo(
    todo_id: str,
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> Optional[TodoOut]:
    return _out(service.restore(user_id, todo_id))


# PUBLIC_INTERFACE
@router.delete(
    "/trash/{todo_id}",
    response_model=List[TodoOut],
    summary="Purge Todo",
    description="Permanently delete one removed Todo. Returns the remaining trash.",
)
def purge_todo(
    todo_id: str,
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> List[TodoOut]:
    return _out_list(service.purge_one(user_id, todo_id))


# PUBLIC_INTERFACE
@router.delete(
    "/trash",
    response_model=List[TodoOut],
    summary="Empty Trash",
    description="Permanently delete every removed Todo. Returns the remaining (empty) trash.",
)
def empty_trash(
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> List[TodoOut]:
    return _out_list(service.purge_all_trash(user_id))


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=Optional[TodoOut],
    summary="Get Todo",
    description="Get a single active Todo by ID, or null.",
)
def get_todo(
    todo_id: str,
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> Optional[TodoOut]:
    """
    Retrieve a single active Todo. Unknown and foreign ids both yield null.
    """
    return _out(service.get_active_by_id(user_id, todo_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}/content",
    response_model=Optional[TodoOut],
    summary="Update Content",
    description="Replace the content of an active Todo. Returns the updated Todo, or null.",
)
def update_content(
    todo_id: str,
    payload: TodoContentUpdate,
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> Optional[TodoOut]:
    return _out(service.update_content(user_id, todo_id, payload.content))


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}/done",
    response_model=Optional[TodoOut],
    summary="Update Done",
    description="Set the completion flag of an active Todo. Returns the updated Todo, or null.",
)
def update_done(
    todo_id: str,
    payload: TodoDoneUpdate,
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> Optional[TodoOut]:
    return _out(service.update_done(user_id, todo_id, payload.done))


# PUBLIC_INTERFACE
@router.post(
    "/{todo_id}/remove",
    response_model=Optional[TodoOut],
    summary="Remove Todo",
    description="Move an active Todo to the trash. Returns the removed Todo, or null.",
)
def remove_todo(
    todo_id: str,
    user_id: str = Depends(current_user_id),
    service: TodoService = Depends(_get_service),
) -> Optional[TodoOut]:
    return _out(service.remove(user_id, todo_id))
