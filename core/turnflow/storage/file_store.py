"""
JSON file repositories.

Layout under the storage root (``get_storage_path()`` unless given):
  {base_path}/
    ├── sessions/{session_id}.json
    ├── turns/{turn_id}.json
    ├── flows/{flow_id}.json
    ├── if_nodes/{flow_id}/{node_id}.json
    └── data_store_nodes/{flow_id}/{node_id}.json

Writes go through a temp file + rename, so a record is either the old or
the new version, never a torn one. Detail rows are written in the local or
cloud encoding (see ``turnflow.storage.codec``) and read back in either.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel

from turnflow.config import get_storage_path
from turnflow.graph.conditions import IfNodeDetail
from turnflow.graph.data_store import DataStoreNodeDetail
from turnflow.graph.edge import FlowSpec
from turnflow.schemas.base import NodeDetail
from turnflow.schemas.session import Session
from turnflow.schemas.turn import Turn
from turnflow.storage.codec import Encoding, decode_detail, encode_detail
from turnflow.utils.io import atomic_write

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
D = TypeVar("D", bound=NodeDetail)


class _JsonRecordStore(Generic[M]):
    """One JSON file per record, keyed by id."""

    model: type[M]
    directory: str

    def __init__(self, base_path: Path | None = None):
        self.base_path = Path(base_path) if base_path is not None else get_storage_path()
        self.records_dir = self.base_path / self.directory

    def _path(self, record_id: str) -> Path:
        return self.records_dir / f"{record_id}.json"

    async def get(self, record_id: str) -> M | None:
        def _read():
            path = self._path(record_id)
            if not path.exists():
                return None
            return self.model.model_validate_json(path.read_text(encoding="utf-8"))

        return await asyncio.to_thread(_read)

    async def _save(self, record_id: str, record: M) -> None:
        def _write():
            path = self._path(record_id)
            path.parent.mkdir(parents=True, exist_ok=True)
            with atomic_write(path) as f:
                f.write(record.model_dump_json(by_alias=True, indent=2))

        await asyncio.to_thread(_write)
        logger.debug(f"Saved {self.directory} record {record_id}")

    async def delete(self, record_id: str) -> bool:
        def _delete():
            path = self._path(record_id)
            if not path.exists():
                return False
            path.unlink()
            return True

        return await asyncio.to_thread(_delete)


class FileSessionRepository(_JsonRecordStore[Session]):
    model = Session
    directory = "sessions"

    async def save(self, session: Session) -> None:
        await self._save(session.id, session)


class FileTurnRepository(_JsonRecordStore[Turn]):
    model = Turn
    directory = "turns"

    async def save(self, turn: Turn) -> None:
        await self._save(turn.id, turn)


class FileFlowRepository(_JsonRecordStore[FlowSpec]):
    model = FlowSpec
    directory = "flows"

    async def save(self, flow: FlowSpec) -> None:
        await self._save(flow.id, flow)


class _DetailRowStore(Generic[D]):
    """Detail rows stored per flow, keyed by ``(flow_id, node_id)``."""

    model: type[D]
    directory: str

    def __init__(self, base_path: Path | None = None, encoding: Encoding = "local"):
        self.base_path = Path(base_path) if base_path is not None else get_storage_path()
        self.rows_dir = self.base_path / self.directory
        self.encoding = encoding

    def _path(self, flow_id: str, node_id: str) -> Path:
        return self.rows_dir / flow_id / f"{node_id}.json"

    def _read_row(self, path: Path) -> D:
        return decode_detail(self.model, json.loads(path.read_text(encoding="utf-8")))

    async def get(self, flow_id: str, node_id: str) -> D | None:
        def _read():
            path = self._path(flow_id, node_id)
            if not path.exists():
                return None
            return self._read_row(path)

        return await asyncio.to_thread(_read)

    async def get_all_by_flow(self, flow_id: str) -> list[D]:
        def _scan():
            flow_dir = self.rows_dir / flow_id
            if not flow_dir.exists():
                return []
            return [self._read_row(path) for path in sorted(flow_dir.glob("*.json"))]

        return await asyncio.to_thread(_scan)

    async def save(self, node: D) -> None:
        def _write():
            path = self._path(node.flow_id, node.id)
            path.parent.mkdir(parents=True, exist_ok=True)
            with atomic_write(path) as f:
                json.dump(encode_detail(node, self.encoding), f, indent=2)

        await asyncio.to_thread(_write)
        logger.debug(f"Saved {self.directory} row {node.flow_id}/{node.id}")

    async def delete(self, flow_id: str, node_id: str) -> bool:
        def _delete():
            path = self._path(flow_id, node_id)
            if not path.exists():
                return False
            path.unlink()
            return True

        return await asyncio.to_thread(_delete)


class FileIfNodeRepository(_DetailRowStore[IfNodeDetail]):
    model = IfNodeDetail
    directory = "if_nodes"


class FileDataStoreNodeRepository(_DetailRowStore[DataStoreNodeDetail]):
    model = DataStoreNodeDetail
    directory = "data_store_nodes"
