from sqlalchemy import Column, String, DateTime, Float, Integer, ForeignKey, JSON
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()

class User(Base):
    __tablename__ = "users"
    username = Column(String, primary_key=True)
    password = Column(String, nullable=False)

class AIRequest(Base):
    __tablename__ = "ai_requests"
    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.username"), index=True, nullable=False)
    file_name = Column(String, nullable=False)
    download_url = Column(String)
    # ISO-8601 string, written once at submission
    created_at = Column(String, index=True, nullable=False)
    processing_start_time = Column(DateTime, nullable=True)
    processing_end_time = Column(DateTime, nullable=True)
    status = Column(String, default="pending")
    session_id = Column(String, nullable=True)
    visualizations = Column(JSON, default=list)

    detections = relationship(
        "DetectionObject",
        cascade="all, delete-orphan",
        order_by="DetectionObject.id",
    )

class DetectionObject(Base):
    __tablename__ = "detection_objects"
    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(String, ForeignKey("ai_requests.id"), index=True)
    kind = Column(String, nullable=False)  # "apple" | "tree"
    label = Column(String, nullable=True)
    confidence = Column(Float)
    box = Column(String)
