"""Repository contracts, JSON file stores and the detail-row codec."""

from turnflow.storage.codec import decode_detail, encode_detail, to_cloud_json, to_local_row
from turnflow.storage.file_store import (
    FileDataStoreNodeRepository,
    FileFlowRepository,
    FileIfNodeRepository,
    FileSessionRepository,
    FileTurnRepository,
)
from turnflow.storage.repositories import (
    AgentRepository,
    DataStoreNodeRepository,
    FlowRepository,
    IfNodeRepository,
    SessionRepository,
    TurnRepository,
)

__all__ = [
    "AgentRepository",
    "DataStoreNodeRepository",
    "FileDataStoreNodeRepository",
    "FileFlowRepository",
    "FileIfNodeRepository",
    "FileSessionRepository",
    "FileTurnRepository",
    "FlowRepository",
    "IfNodeRepository",
    "SessionRepository",
    "TurnRepository",
    "decode_detail",
    "encode_detail",
    "to_cloud_json",
    "to_local_row",
]
