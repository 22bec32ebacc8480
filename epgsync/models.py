"""
SQLAlchemy ORM Models for EPG Sync Service

This module defines the database models for channels and programs.
"""
from datetime import datetime, timezone
from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class Channel(Base):
    """Channel row registered for a TV input"""
    __tablename__ = "channels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    input_id: Mapped[str] = mapped_column(String, nullable=False)
    feed_id: Mapped[str] = mapped_column(String, nullable=False)
    display_number: Mapped[str] = mapped_column(String, nullable=False)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    original_network_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    transport_stream_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    service_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    internal_provider_data: Mapped[str | None] = mapped_column(String, nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("input_id", "feed_id", name="uq_channel_input_feed"),
        Index("idx_channels_input_number", "input_id", "display_number"),
    )

    def __repr__(self) -> str:
        return f"<Channel(id={self.id}, number={self.display_number}, name={self.display_name})>"


class Program(Base):
    """Program row; the integer id is the stable program identity"""
    __tablename__ = "programs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("channels.id", ondelete="CASCADE"),
        nullable=False
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_rating: Mapped[str | None] = mapped_column(String, nullable=True)
    canonical_genre: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    poster_art_uri: Mapped[str | None] = mapped_column(String, nullable=True)
    internal_provider_data: Mapped[str | None] = mapped_column(String, nullable=True)
    start_time_utc_millis: Mapped[int] = mapped_column(BigInteger, nullable=False)
    end_time_utc_millis: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("idx_programs_channel_time", "channel_id", "start_time_utc_millis"),
    )

    def __repr__(self) -> str:
        return f"<Program(id={self.id}, title={self.title}, channel={self.channel_id})>"
