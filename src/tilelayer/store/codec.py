# src/tilelayer/store/codec.py

"""
Serialization of the (key, tile) records sharing one index identifier.

A payload is a compressed numpy archive: a 'keys' array of JSON strings and one
'tile_<n>' array per record. Nothing is pickled.
"""

import io
import json
import logging
from typing import List, Sequence, Tuple

import numpy as np

from tilelayer.keys import Key, key_from_dict, key_to_dict

log = logging.getLogger(__name__)

__all__ = [
    "encode_records",
    "decode_records"
]

Record = Tuple[Key, np.ndarray]

def encode_records(records: Sequence[Record]) -> bytes:
    """Pack records into one payload."""
    keys = np.array([json.dumps(key_to_dict(key), sort_keys=True) for key, _ in records], dtype=str)
    arrays = {f"tile_{i}": np.asarray(tile) for i, (_, tile) in enumerate(records)}

    buffer = io.BytesIO()
    np.savez_compressed(buffer, keys=keys, **arrays)
    return buffer.getvalue()

def decode_records(payload: bytes, key_type: str) -> List[Record]:
    """Unpack a payload produced by encode_records."""
    with np.load(io.BytesIO(payload), allow_pickle=False) as archive:
        keys = [key_from_dict(json.loads(str(k)), key_type) for k in archive["keys"]]
        return [(key, archive[f"tile_{i}"]) for i, key in enumerate(keys)]
