from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User as UserModel
from app.schemas.common import MessageResponse
from app.schemas.labels import CategoryCreate, CategoryEnvelope, CategoryList, CategoryUpdate
from app.services import labels as label_service
from app.services.labels import CATEGORY

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=CategoryList)
async def list_categories(
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    categories = await label_service.list_labels(db, current_user.user_id, CATEGORY)
    return {"categories": categories}


@router.post("", response_model=CategoryEnvelope, status_code=status.HTTP_201_CREATED)
async def create_category(
    data: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    category = await label_service.create_label(db, current_user.user_id, CATEGORY, data)
    return {"category": category, "message": "Category created successfully"}


@router.patch("/{category_id}", response_model=CategoryEnvelope)
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    category = await label_service.update_label(db, current_user.user_id, CATEGORY, category_id, data)
    return {"category": category, "message": "Category updated successfully"}


@router.delete("/{category_id}", response_model=MessageResponse)
async def delete_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    await label_service.delete_label(db, current_user.user_id, CATEGORY, category_id)
    return {"message": "Category deleted successfully"}
