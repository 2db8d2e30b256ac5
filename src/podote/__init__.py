"""
Podote todo backend package.

Per-user ordered todo lists with a trash. The FastAPI application lives in
podote.main; the operations it exposes are implemented by
podote.service.TodoService on top of a podote.repositories.Repository.
"""
