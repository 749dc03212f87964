from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class DesignRecord(Base):
    """Latest saved design per project."""
    __tablename__ = "design_records"

    id = Column(Integer, primary_key=True)
    project_id = Column(String(128), nullable=False, unique=True, index=True)
    payload = Column(Text, nullable=False)
    compressed = Column(Boolean, default=False)
    checksum = Column(String(64), nullable=False)
    version = Column(String(16), nullable=False, default="1.0")
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class DesignBackup(Base):
    """Uncompressed copies written before each save; newest first on restore."""
    __tablename__ = "design_backups"

    id = Column(Integer, primary_key=True)
    project_id = Column(String(128), nullable=False, index=True)
    payload = Column(Text, nullable=False)
    checksum = Column(String(64), nullable=False)
    size = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
