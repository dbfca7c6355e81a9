from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from suprss.core.database import get_db
from suprss.core.auth import get_current_user
from suprss.models.user import User
from suprss.schemas.discussion import Comment as CommentSchema, CommentUpdate
from suprss.services.discussion import DiscussionService

router = APIRouter()


@router.put("/{comment_id}", response_model=CommentSchema)
def edit_comment(
    comment_id: int,
    payload: CommentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Edit a comment. Only its author may do so."""
    return DiscussionService(db).edit_comment(current_user.id, comment_id, payload.content)


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    DiscussionService(db).delete_comment(current_user.id, comment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
