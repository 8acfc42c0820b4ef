from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import Category as CategoryModel, RecurringTaskItem, Task as TaskModel, User
from ..schemas.category import Category as CategorySchema, CategoryCreate, CategoryUpdate
from .auth import get_current_user

router = APIRouter()


def _get_category(db: Session, category_id: str, user: User) -> CategoryModel:
    category = (
        db.query(CategoryModel)
        .filter(CategoryModel.id == category_id, CategoryModel.user_id == user.id)
        .first()
    )
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


@router.get("", response_model=List[CategorySchema])
def get_categories(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return (
        db.query(CategoryModel)
        .filter(CategoryModel.user_id == current_user.id)
        .order_by(CategoryModel.name.asc())
        .all()
    )


@router.post("", response_model=CategorySchema, status_code=status.HTTP_201_CREATED)
def create_category(
    category: CategoryCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    db_category = CategoryModel(user_id=current_user.id, **category.model_dump())
    db.add(db_category)
    db.commit()
    db.refresh(db_category)
    return db_category


@router.put("/{category_id}", response_model=CategorySchema)
def update_category(
    category_id: str,
    category_update: CategoryUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    category = _get_category(db, category_id, current_user)

    for field, value in category_update.model_dump(exclude_unset=True).items():
        setattr(category, field, value)
    category.updated_at = datetime.utcnow()

    db.commit()
    db.refresh(category)
    return category


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a category. Tasks that used it keep existing without one."""
    category = _get_category(db, category_id, current_user)
    for model in (TaskModel, RecurringTaskItem):
        db.query(model).filter(model.category_id == category.id).update(
            {model.category_id: None}, synchronize_session=False
        )
    db.delete(category)
    db.commit()
