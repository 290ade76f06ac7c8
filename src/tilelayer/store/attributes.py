import logging
from typing import Any, List, Union

from sqlalchemy import delete, select

from tilelayer.exceptions import AlreadyExistsError, LayerNotFoundError
from .client import StoreClient
from .metadata import LayerId, LayerMetadata, as_layer_id
from .models import LayerAttribute

log = logging.getLogger(__name__)

METADATA_ATTRIBUTE = "metadata"

class AttributeStore:
    """
    Durable registry of layer metadata and auxiliary named attributes.

    Every layer operation resolves its metadata here before touching tile records.
    """

    def __init__(self, client: StoreClient):
        self.client = client

    @staticmethod
    def _layer_filter(stmt, layer_id: LayerId):
        return stmt.where(LayerAttribute.layer_name == layer_id.name, LayerAttribute.zoom == layer_id.zoom)

    def read_attribute(self, layer: Union[LayerId, str], name: str) -> Any:
        """
        Fetches one named attribute of a layer.

        Raises:
            LayerNotFoundError: If the layer has no attribute with that name.
        """
        layer_id = as_layer_id(layer)
        with self.client.SessionLocal() as session:
            stmt = self._layer_filter(select(LayerAttribute.value), layer_id).where(LayerAttribute.name == name)
            value = session.execute(stmt).scalar_one_or_none()
        if value is None:
            raise LayerNotFoundError(layer_id)
        return value

    def write_attribute(self, layer: Union[LayerId, str], name: str, value: Any) -> None:
        """Inserts or replaces a named JSON attribute of a layer."""
        layer_id = as_layer_id(layer)
        with self.client.SessionLocal() as session:
            stmt = self._layer_filter(select(LayerAttribute), layer_id).where(LayerAttribute.name == name)
            attribute = session.execute(stmt).scalar_one_or_none()
            if attribute is None:
                session.add(LayerAttribute(layer_name=layer_id.name, zoom=layer_id.zoom, name=name, value=value))
            else:
                attribute.value = value
            session.commit()

    def available_attributes(self, layer: Union[LayerId, str]) -> List[str]:
        layer_id = as_layer_id(layer)
        with self.client.SessionLocal() as session:
            stmt = self._layer_filter(select(LayerAttribute.name), layer_id).order_by(LayerAttribute.name)
            return list(session.execute(stmt).scalars())

    def layer_exists(self, layer: Union[LayerId, str]) -> bool:
        return METADATA_ATTRIBUTE in self.available_attributes(layer)

    def register(self, layer: Union[LayerId, str], metadata: LayerMetadata, overwrite: bool = False) -> None:
        """
        Records the metadata of a new layer.

        Args:
            layer (Union[LayerId, str]): Target layer.
            metadata (LayerMetadata): Layer description.
            overwrite (bool): Replace metadata that is already registered.

        Raises:
            AlreadyExistsError: If the layer is registered and overwrite is False.
        """
        layer_id = as_layer_id(layer)
        if not overwrite and self.layer_exists(layer_id):
            raise AlreadyExistsError(layer_id)
        self.write_attribute(layer_id, METADATA_ATTRIBUTE, metadata.to_dict())
        log.debug(f"Registered metadata for layer {layer_id}")

    def update(self, layer: Union[LayerId, str], metadata: LayerMetadata) -> None:
        """Replaces the metadata of a registered layer."""
        layer_id = as_layer_id(layer)
        if not self.layer_exists(layer_id):
            raise LayerNotFoundError(layer_id)
        self.write_attribute(layer_id, METADATA_ATTRIBUTE, metadata.to_dict())

    def lookup(self, layer: Union[LayerId, str]) -> LayerMetadata:
        """
        Raises:
            LayerNotFoundError: If the layer is not registered.
        """
        return LayerMetadata.from_dict(self.read_attribute(layer, METADATA_ATTRIBUTE))

    def delete(self, layer: Union[LayerId, str]) -> None:
        """Removes every attribute of a layer. Missing layers are ignored."""
        layer_id = as_layer_id(layer)
        with self.client.SessionLocal() as session:
            session.execute(self._layer_filter(delete(LayerAttribute), layer_id))
            session.commit()

    def list(self) -> List[LayerId]:
        """Every registered layer, sorted by name then zoom."""
        with self.client.SessionLocal() as session:
            stmt = (
                select(LayerAttribute.layer_name, LayerAttribute.zoom)
                .where(LayerAttribute.name == METADATA_ATTRIBUTE)
                .order_by(LayerAttribute.layer_name, LayerAttribute.zoom)
            )
            return [LayerId(row.layer_name, row.zoom) for row in session.execute(stmt)]
