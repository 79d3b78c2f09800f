"""User router."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.user import CreateUserRequest, GetUserRequest, User
from ..services.catalog_service import CatalogService

router = APIRouter(prefix="/v1/user", tags=["user"], responses=PROBLEM_RESPONSES)

DB_DEPENDENCY = Depends(get_db)


@router.post("/create", response_model=User)
async def create_user(
    request: CreateUserRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Register a user; the email must be unused."""
    user = await CatalogService(db).create_user(request)
    return JSONResponse(status_code=200, content=User.model_validate(user).model_dump(mode="json"))


@router.post("/get", response_model=User)
async def get_user(
    request: GetUserRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Get a user by ID."""
    user = await CatalogService(db).get_user(request.user_id)
    return JSONResponse(status_code=200, content=User.model_validate(user).model_dump(mode="json"))
