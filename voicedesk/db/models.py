"""Database models."""
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Call(Base):
    """Call metadata model."""

    __tablename__ = "calls"

    id = Column(Integer, primary_key=True, index=True)
    call_sid = Column(String, unique=True, index=True, nullable=False)
    stream_sid = Column(String, nullable=True)
    from_number = Column(String, nullable=True)
    to_number = Column(String, nullable=True)
    status = Column(String, default="in_progress", nullable=False)  # in_progress, completed, failed, transferred
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    duration = Column(Integer, nullable=True)  # seconds
    transferred_to = Column(String, nullable=True)

    # Relationships
    transcripts = relationship(
        "Transcript", back_populates="call", cascade="all, delete-orphan",
        order_by="Transcript.sequence_number",
    )


class Transcript(Base):
    """One utterance in a call transcript."""

    __tablename__ = "transcripts"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(Integer, ForeignKey("calls.id"), nullable=False, index=True)
    speaker = Column(String, nullable=False)  # user, agent, system
    agent_name = Column(String, nullable=True)
    text = Column(Text, nullable=False)
    sequence_number = Column(Integer, nullable=False)
    event_type = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    call = relationship("Call", back_populates="transcripts")


class Callback(Base):
    """Callback request taken by the receptionist."""

    __tablename__ = "callbacks"

    id = Column(Integer, primary_key=True, index=True)
    reference_number = Column(String, unique=True, index=True, nullable=False)
    call_id = Column(Integer, ForeignKey("calls.id"), nullable=True)
    caller_name = Column(String, nullable=False)
    caller_phone = Column(String, nullable=False)
    preferred_time = Column(String, nullable=True)
    reason = Column(Text, nullable=True)
    priority = Column(String, default="normal", nullable=False)
    status = Column(String, default="pending", nullable=False)  # pending, completed, cancelled
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Message(Base):
    """Message left for an employee or department."""

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    reference_number = Column(String, unique=True, index=True, nullable=False)
    call_id = Column(Integer, ForeignKey("calls.id"), nullable=True)
    recipient_name = Column(String, nullable=False)
    caller_name = Column(String, nullable=False)
    caller_phone = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    urgent = Column(Boolean, default=False, nullable=False)
    priority = Column(String, default="normal", nullable=False)  # normal, urgent
    status = Column(String, default="unread", nullable=False)  # unread, read, archived
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
