"""
Blog draft endpoints
"""
from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.orm import Session
from typing import List

from draftwise.api.auth import get_current_user_from_token
from draftwise.database import get_db
from draftwise.models.database import Blog, User
from draftwise.schemas.requests import CreateBlogRequest
from draftwise.schemas.responses import BlogResponse

router = APIRouter()


@router.post("", response_model=BlogResponse)
def create_blog(
    request: CreateBlogRequest,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    """Start a blog draft that enrichment results are stored on"""
    blog = Blog(
        created_by=current_user.id,
        topic_keyword=request.topic_keyword.strip(),
        urls=[u.strip() for u in request.urls if u.strip()],
        status="draft",
    )
    db.add(blog)
    db.commit()
    db.refresh(blog)
    return blog


@router.get("", response_model=List[BlogResponse])
def list_blogs(
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    return db.query(Blog).filter(Blog.created_by == current_user.id).order_by(Blog.created_at.desc()).all()


@router.get("/{blog_id}", response_model=BlogResponse)
def get_blog(
    blog_id: int,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    blog = db.query(Blog).filter(Blog.id == blog_id, Blog.created_by == current_user.id).first()
    if not blog:
        raise HTTPException(status_code=404, detail="Blog not found")
    return blog
