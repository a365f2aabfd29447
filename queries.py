from sqlalchemy.orm import Session, selectinload
from models import AIRequest, DetectionObject, User
from typing import Iterable

def save_request(db: Session, request_id: str, user_id: str, file_name: str, download_url: str,
                 created_at: str, session_id: str | None = None, status: str = "pending",
                 visualizations: list[str] | None = None,
                 processing_start_time=None, processing_end_time=None):
    row = AIRequest(
        id=request_id,
        user_id=user_id,
        file_name=file_name,
        download_url=download_url,
        created_at=created_at,
        session_id=session_id,
        status=status,
        visualizations=visualizations or [],
        processing_start_time=processing_start_time,
        processing_end_time=processing_end_time,
    )
    db.add(row)
    db.commit()

def save_detection(db: Session, request_id: str, kind: str, confidence: float, box, label: str | None = None):
    obj = DetectionObject(request_id=request_id, kind=kind, confidence=confidence, box=str(list(box)), label=label)
    db.add(obj)
    db.commit()

def get_user(db: Session, username: str) -> User | None:
    return db.query(User).filter_by(username=username).first()

def create_user(db: Session, username: str, password_hash: str) -> None:
    user = User(username=username, password=password_hash)
    db.add(user)
    db.commit()

def get_user_requests(db: Session, user_id: str) -> list[AIRequest]:
    # ISO strings of one format sort chronologically
    return (
        db.query(AIRequest)
        .options(selectinload(AIRequest.detections))
        .filter(AIRequest.user_id == user_id)
        .order_by(AIRequest.created_at.desc())
        .all()
    )

def get_request(db: Session, request_id: str, user_id: str) -> AIRequest | None:
    return db.query(AIRequest).filter_by(id=request_id, user_id=user_id).first()

def delete_request(db: Session, request_id: str, user_id: str) -> bool:
    owned = db.query(AIRequest.id).filter_by(id=request_id, user_id=user_id).first()
    if not owned:
        return False

    # First delete associated detection objects
    db.query(DetectionObject).filter_by(request_id=request_id).delete()

    # Then delete the request itself
    db.query(AIRequest).filter_by(id=request_id, user_id=user_id).delete()

    db.commit()
    return True

def delete_requests_batch(db: Session, request_ids: Iterable[str], user_id: str) -> int:
    """
    Delete many requests in one transaction: either every owned id goes or none does.
    Ids that belong to another user are left untouched.
    """
    ids = list(request_ids)
    if not ids:
        return 0
    try:
        owned = [
            row.id for row in
            db.query(AIRequest.id).filter(AIRequest.user_id == user_id, AIRequest.id.in_(ids)).all()
        ]
        if owned:
            db.query(DetectionObject).filter(
                DetectionObject.request_id.in_(owned)
            ).delete(synchronize_session=False)
            db.query(AIRequest).filter(
                AIRequest.user_id == user_id, AIRequest.id.in_(owned)
            ).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return len(owned)
