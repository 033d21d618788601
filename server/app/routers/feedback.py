from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth import get_current_user
from app.db import get_db
from app.feedback import schemas
from app.feedback.service import (
    DuplicateFeedbackError,
    FeedbackNotFoundError,
    InvalidFeedbackError,
    create_feedback,
    delete_feedback,
    feedback_response,
    list_project_feedback,
    update_feedback,
)
from app.ledger.service import ProjectNotFoundError
from app.models import User


router = APIRouter(prefix="/api/feedback", tags=["feedback"])


@router.post("", response_model=schemas.FeedbackEnvelope, status_code=status.HTTP_201_CREATED)
def submit_feedback(
    payload: schemas.FeedbackCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        feedback = create_feedback(
            db,
            tenant_id=current_user.tenant_id,
            user_id=current_user.id,
            project_id=payload.project_id,
            client_id=payload.client_id,
            rating=payload.rating,
            comments=payload.comments,
        )
        db.commit()
    except (ProjectNotFoundError, FeedbackNotFoundError) as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidFeedbackError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    except (DuplicateFeedbackError, IntegrityError):
        db.rollback()
        raise HTTPException(status_code=409, detail="Feedback has already been submitted for this project.")

    db.refresh(feedback)
    return schemas.FeedbackEnvelope(message="Feedback submitted successfully.", feedback=feedback_response(feedback))


@router.get("/projects/{project_id}", response_model=schemas.ProjectFeedbackResponse)
def project_feedback(
    project_id: int,
    order: schemas.FeedbackOrder = "newest",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        project, rows = list_project_feedback(db, tenant_id=current_user.tenant_id, project_id=project_id, order=order)
    except ProjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    if not rows:
        raise HTTPException(status_code=404, detail=f"No feedback found for project ID {project_id}.")
    return schemas.ProjectFeedbackResponse(
        message="Feedback retrieved successfully.",
        project_id=project.id,
        project_name=project.name,
        feedback=[feedback_response(row) for row in rows],
    )


@router.put("/{feedback_id}", response_model=schemas.FeedbackEnvelope)
def edit_feedback(
    feedback_id: int,
    payload: schemas.FeedbackUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        feedback = update_feedback(
            db,
            tenant_id=current_user.tenant_id,
            user=current_user,
            feedback_id=feedback_id,
            rating=payload.rating,
            comments=payload.comments,
        )
        db.commit()
    except InvalidFeedbackError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    except FeedbackNotFoundError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc))

    db.refresh(feedback)
    return schemas.FeedbackEnvelope(message="Feedback updated successfully.", feedback=feedback_response(feedback))


@router.delete("/{feedback_id}")
def remove_feedback(
    feedback_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        delete_feedback(db, tenant_id=current_user.tenant_id, user=current_user, feedback_id=feedback_id)
        db.commit()
    except FeedbackNotFoundError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc))
    return {"message": "Feedback deleted successfully."}
