from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class ChangeSetRow(Base):
    __tablename__ = "change_sets"

    id = Column(String(64), primary_key=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False, default="")
    status = Column(String(16), nullable=False, default="open")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ComponentRow(Base):
    __tablename__ = "components"

    id = Column(String(64), primary_key=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    # Change set the component was created in, or "head" once applied.
    change_set_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    schema_doc = Column(JSON, nullable=False)


class AttributeVersionRow(Base):
    """Append-only; a row is never updated after insert."""

    __tablename__ = "attribute_versions"
    __table_args__ = (
        UniqueConstraint("component_id", "change_set_id", "version", name="uq_attribute_version"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(64), nullable=False, index=True)
    system_id = Column(String(64), nullable=True)
    change_set_id = Column(String(64), nullable=False, index=True)
    component_id = Column(String(64), nullable=False, index=True)
    attribute = Column(String(255), nullable=False)
    version = Column(Integer, nullable=False)
    value = Column(JSON, nullable=True)
    tombstone = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ResourceRow(Base):
    __tablename__ = "resources"

    workspace_id = Column(String(64), primary_key=True)
    component_id = Column(String(64), primary_key=True)
    status = Column(String(16), nullable=False)
    payload = Column(JSON, nullable=True)
    message = Column(String, nullable=True)
    logs = Column(JSON, nullable=False, default=list)
    last_synced = Column(String(64), nullable=False)
