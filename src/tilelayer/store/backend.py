import logging
from typing import Iterable, Iterator, Optional, Tuple

from sqlalchemy import delete, func, select

from .client import StoreClient
from .metadata import LayerId
from .models import TileEntry

log = logging.getLogger(__name__)

class TileBackend:
    """
    Sorted key/value access to the tile table, scoped per layer.

    Every mutation commits in its own session, so one payload write is the unit of
    visible change.
    """

    def __init__(self, client: StoreClient, scan_page_size: int = 500):
        """
        Args:
            client (StoreClient): Connection holder.
            scan_page_size (int): Rows fetched per page during range scans.
        """
        self.client = client
        self.scan_page_size = scan_page_size

    @staticmethod
    def _layer_filter(stmt, layer_id: LayerId):
        return stmt.where(TileEntry.layer_name == layer_id.name, TileEntry.zoom == layer_id.zoom)

    def get(self, layer_id: LayerId, index_id: int) -> Optional[bytes]:
        """
        Fetches the payload stored under one index identifier.

        Returns:
            Optional[bytes]: The payload, or None when the identifier is empty.
        """
        with self.client.SessionLocal() as session:
            stmt = self._layer_filter(select(TileEntry.payload), layer_id).where(TileEntry.index_id == index_id)
            return session.execute(stmt).scalar_one_or_none()

    def range_scan(
        self,
        layer_id: LayerId,
        lo: Optional[int] = None,
        hi: Optional[int] = None
    ) -> Iterator[Tuple[int, bytes]]:
        """
        Streams (index_id, payload) pairs with lo <= index_id <= hi in identifier order.

        Pages are read in separate sessions, keyed on the last identifier seen, so no
        cursor stays open while the caller processes rows.

        Args:
            layer_id (LayerId): Target layer.
            lo (Optional[int]): Inclusive lower identifier, None for unbounded.
            hi (Optional[int]): Inclusive upper identifier, None for unbounded.
        """
        last: Optional[int] = None
        while True:
            stmt = self._layer_filter(select(TileEntry.index_id, TileEntry.payload), layer_id)
            if last is not None:
                stmt = stmt.where(TileEntry.index_id > last)
            elif lo is not None:
                stmt = stmt.where(TileEntry.index_id >= lo)
            if hi is not None:
                stmt = stmt.where(TileEntry.index_id <= hi)
            stmt = stmt.order_by(TileEntry.index_id).limit(self.scan_page_size)

            with self.client.SessionLocal() as session:
                rows = session.execute(stmt).all()

            for row in rows:
                yield row.index_id, row.payload

            if len(rows) < self.scan_page_size:
                return
            last = rows[-1].index_id

    def _upsert(self, session, layer_id: LayerId, index_id: int, payload: bytes) -> None:
        stmt = self._layer_filter(select(TileEntry), layer_id).where(TileEntry.index_id == index_id)
        entry = session.execute(stmt).scalar_one_or_none()
        if entry is None:
            session.add(TileEntry(
                layer_name=layer_id.name,
                zoom=layer_id.zoom,
                index_id=index_id,
                payload=payload
            ))
            session.flush()
        else:
            entry.payload = payload

    def put(self, layer_id: LayerId, index_id: int, payload: bytes) -> None:
        """Inserts or replaces the payload stored under one index identifier."""
        with self.client.SessionLocal() as session:
            self._upsert(session, layer_id, index_id, payload)
            session.commit()

    def put_many(self, layer_id: LayerId, items: Iterable[Tuple[int, bytes]], batch_size: int = 500) -> int:
        """
        Performs a memory-safe bulk upsert of payloads.

        Args:
            layer_id (LayerId): Target layer.
            items (Iterable[Tuple[int, bytes]]): (index_id, payload) pairs.
            batch_size (int): The maximum number of payloads to hold in a session before committing.

        Returns:
            int: The total number of payloads written.
        """
        total_written = 0
        pending = 0

        with self.client.SessionLocal() as session:
            for index_id, payload in items:
                self._upsert(session, layer_id, index_id, payload)
                pending += 1

                if pending >= batch_size:
                    session.commit()
                    total_written += pending
                    pending = 0

            if pending:
                session.commit()
                total_written += pending

        return total_written

    def delete(self, layer_id: LayerId, index_id: int) -> None:
        with self.client.SessionLocal() as session:
            session.execute(self._layer_filter(delete(TileEntry), layer_id).where(TileEntry.index_id == index_id))
            session.commit()

    def delete_range(self, layer_id: LayerId, lo: int, hi: int) -> int:
        """Deletes every payload with lo <= index_id <= hi and returns how many were removed."""
        with self.client.SessionLocal() as session:
            stmt = self._layer_filter(delete(TileEntry), layer_id).where(
                TileEntry.index_id >= lo, TileEntry.index_id <= hi
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount

    def delete_layer(self, layer_id: LayerId) -> int:
        """Deletes every payload of a layer and returns how many were removed."""
        with self.client.SessionLocal() as session:
            result = session.execute(self._layer_filter(delete(TileEntry), layer_id))
            session.commit()
            return result.rowcount

    def count(self, layer_id: LayerId) -> int:
        with self.client.SessionLocal() as session:
            stmt = self._layer_filter(select(func.count(TileEntry.id)), layer_id)
            return session.execute(stmt).scalar_one()

    def index_bounds(self, layer_id: LayerId) -> Optional[Tuple[int, int]]:
        """Smallest and largest stored identifier, or None for an empty layer."""
        with self.client.SessionLocal() as session:
            stmt = self._layer_filter(select(func.min(TileEntry.index_id), func.max(TileEntry.index_id)), layer_id)
            lo, hi = session.execute(stmt).one()
        return None if lo is None else (lo, hi)
