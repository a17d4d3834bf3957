"""Editing core: graph model, undo history, synchronization and execution status."""

from blockflow.editor.catalog import BlockCatalog, UnknownBlockError
from blockflow.editor.graph_model import Edge, GraphModel, Node
from blockflow.editor.history import CommandHistory
from blockflow.editor.session import EditorSession
from blockflow.editor.sync import GraphSyncEngine, SyncError

__all__ = [
    "BlockCatalog",
    "CommandHistory",
    "Edge",
    "EditorSession",
    "GraphModel",
    "GraphSyncEngine",
    "Node",
    "SyncError",
    "UnknownBlockError",
]
