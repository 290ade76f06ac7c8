import datetime
from typing import Any, Dict

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, LargeBinary, String, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator, VARCHAR

Base = declarative_base()

def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)

class JSONVariant(TypeDecorator):
    """
    Dynamically abstracts JSON column typing to support both PostgreSQL JSONB and SQLite VARCHAR serialization.
    """
    impl = VARCHAR
    cache_ok = True

    def load_dialect_impl(self, dialect: Any) -> Any:
        """
        Provisions the appropriate SQL type descriptor based on the active database engine dialect.

        Args:
            dialect (Any): The active SQLAlchemy execution dialect.

        Returns:
            Any: The dialect-specific column type implementation.
        """
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(VARCHAR())

    def process_bind_param(self, value: Dict[str, Any], dialect: Any) -> Any:
        if value is None:
            return value
        if dialect.name == 'postgresql':
            return value
        import json
        return json.dumps(value)

    def process_result_value(self, value: Any, dialect: Any) -> Dict[str, Any]:
        if value is None:
            return None
        if dialect.name == 'postgresql':
            return value
        import json
        return json.loads(value)

class LayerAttribute(Base):
    """
    Named JSON attribute attached to a layer. The 'metadata' attribute is the layer's registration.
    """
    __tablename__ = 'layer_attributes'

    id = Column(Integer, primary_key=True, autoincrement=True)
    layer_name = Column(String(255), nullable=False)
    zoom = Column(Integer, nullable=False, default=0)
    name = Column(String(255), nullable=False)
    value = Column(JSONVariant, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint('layer_name', 'zoom', 'name', name='uq_layer_attribute'),
    )

class TileEntry(Base):
    """
    One storage row per (layer, index identifier). The payload holds every
    (key, tile) record whose key maps to that identifier.
    """
    __tablename__ = 'tiles'

    id = Column(Integer, primary_key=True, autoincrement=True)
    layer_name = Column(String(255), nullable=False)
    zoom = Column(Integer, nullable=False, default=0)
    index_id = Column(BigInteger, nullable=False)
    payload = Column(LargeBinary, nullable=False)

    __table_args__ = (
        UniqueConstraint('layer_name', 'zoom', 'index_id', name='uq_tile_index'),
        Index('ix_tiles_layer_index', 'layer_name', 'zoom', 'index_id'),
    )

class PendingOperation(Base):
    """
    Marker left by a multi-step layer operation until its last step completes.
    """
    __tablename__ = 'pending_operations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    layer_name = Column(String(255), nullable=False)
    zoom = Column(Integer, nullable=False, default=0)
    operation = Column(String(50), nullable=False)
    temp_name = Column(String(255), nullable=False)
    stage = Column(String(50), nullable=False)
    details = Column(JSONVariant)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint('layer_name', 'zoom', 'operation', name='uq_pending_operation'),
    )
