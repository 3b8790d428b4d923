from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User as UserModel
from app.schemas.common import MessageResponse
from app.schemas.labels import TagCreate, TagEnvelope, TagList, TagUpdate
from app.services import labels as label_service
from app.services.labels import TAG

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("", response_model=TagList)
async def list_tags(
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    tags = await label_service.list_labels(db, current_user.user_id, TAG)
    return {"tags": tags}


@router.post("", response_model=TagEnvelope, status_code=status.HTTP_201_CREATED)
async def create_tag(
    data: TagCreate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    tag = await label_service.create_label(db, current_user.user_id, TAG, data)
    return {"tag": tag, "message": "Tag created successfully"}


@router.patch("/{tag_id}", response_model=TagEnvelope)
async def update_tag(
    tag_id: int,
    data: TagUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    tag = await label_service.update_label(db, current_user.user_id, TAG, tag_id, data)
    return {"tag": tag, "message": "Tag updated successfully"}


@router.delete("/{tag_id}", response_model=MessageResponse)
async def delete_tag(
    tag_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    await label_service.delete_label(db, current_user.user_id, TAG, tag_id)
    return {"message": "Tag deleted successfully"}
