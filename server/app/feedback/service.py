import logging
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from app.ledger.service import get_project
from app.models import Client, Feedback, Project, User

from . import schemas


logger = logging.getLogger(__name__)


class FeedbackError(ValueError):
    pass


class InvalidFeedbackError(FeedbackError):
    pass


class DuplicateFeedbackError(FeedbackError):
    pass


class FeedbackNotFoundError(FeedbackError):
    pass


def _validate_rating(rating: Optional[int]) -> None:
    if rating is None or isinstance(rating, bool) or not 1 <= rating <= 5:
        raise InvalidFeedbackError("Rating must be between 1 and 5.")


def feedback_response(feedback: Feedback) -> schemas.FeedbackResponse:
    client = feedback.client
    return schemas.FeedbackResponse(
        feedback_id=feedback.id,
        project_id=feedback.project_id,
        rating=feedback.rating,
        comments=feedback.comments,
        created_at=feedback.created_at,
        client_id=client.id,
        company_name=client.company_name,
        contact_person=client.contact_person,
        client_email=client.email,
    )


def create_feedback(
    db: Session,
    *,
    tenant_id: int,
    user_id: int | None,
    project_id: int,
    rating: int,
    client_id: Optional[int] = None,
    comments: Optional[str] = None,
) -> Feedback:
    """Record one rating per (project, client). Without ``client_id`` the project's own client is used."""
    _validate_rating(rating)
    project = get_project(db, tenant_id=tenant_id, project_id=project_id)

    client_id = client_id or project.client_id
    client = db.query(Client).filter(Client.id == client_id, Client.tenant_id == tenant_id).first()
    if not client:
        raise FeedbackNotFoundError(f"Client with ID {client_id} not found in your tenancy.")

    existing = (
        db.query(Feedback.id)
        .filter(Feedback.project_id == project.id, Feedback.client_id == client.id)
        .first()
    )
    if existing:
        raise DuplicateFeedbackError("Feedback has already been submitted for this project.")

    feedback = Feedback(
        tenant_id=tenant_id,
        project_id=project.id,
        client_id=client.id,
        user_id=user_id,
        rating=rating,
        comments=comments,
    )
    feedback.client = client
    db.add(feedback)
    db.flush()
    logger.info("Feedback recorded: tenant_id=%s project_id=%s client_id=%s rating=%s", tenant_id, project.id, client.id, rating)
    return feedback


def _get_editable_feedback(db: Session, *, tenant_id: int, user: User, feedback_id: int, verb: str) -> Feedback:
    feedback = (
        db.query(Feedback)
        .options(selectinload(Feedback.client))
        .filter(Feedback.id == feedback_id, Feedback.tenant_id == tenant_id)
        .first()
    )
    if not feedback or (not user.is_admin and feedback.user_id != user.id):
        raise FeedbackNotFoundError(f"Feedback not found or you do not have permission to {verb} it.")
    return feedback


def update_feedback(
    db: Session,
    *,
    tenant_id: int,
    user: User,
    feedback_id: int,
    rating: Optional[int] = None,
    comments: Optional[str] = None,
) -> Feedback:
    if rating is not None:
        _validate_rating(rating)
    feedback = _get_editable_feedback(db, tenant_id=tenant_id, user=user, feedback_id=feedback_id, verb="edit")
    if rating is not None:
        feedback.rating = rating
    if comments is not None:
        feedback.comments = comments
    return feedback


def delete_feedback(db: Session, *, tenant_id: int, user: User, feedback_id: int) -> None:
    feedback = _get_editable_feedback(db, tenant_id=tenant_id, user=user, feedback_id=feedback_id, verb="delete")
    db.delete(feedback)


def list_project_feedback(
    db: Session,
    *,
    tenant_id: int,
    project_id: int,
    order: str = "newest",
) -> tuple[Project, list[Feedback]]:
    project = get_project(db, tenant_id=tenant_id, project_id=project_id)
    query = (
        db.query(Feedback)
        .options(selectinload(Feedback.client))
        .filter(Feedback.tenant_id == tenant_id, Feedback.project_id == project.id)
    )
    if order == "top":
        query = query.order_by(Feedback.rating.desc(), Feedback.id.desc())
    elif order == "low":
        query = query.order_by(Feedback.rating.asc(), Feedback.id.desc())
    else:
        query = query.order_by(Feedback.created_at.desc(), Feedback.id.desc())
    return project, query.all()
