"""
Folder hierarchy reconstruction.

Turns a flat, unordered set of folder entities into a forest keyed by folder
ID and computes materialized paths against it.

Invariants:
    - Every input folder appears exactly once in the forest
    - No node appears in its own ancestor chain, even for cyclic input
    - A folder whose parent is not in the input becomes a local root
    - Linking gives the same tree for any input order
    - Path queries are only valid on a full hierarchy, never a subtree

How to change safely:
    - Keep construction iterative; deep drives must not hit the recursion limit
    - Keep path, entity ID path and tx ID path in the same shape
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from .entities import ArFSFileOrFolderEntity
from .errors import HierarchyUsageError, NotFoundError
from .types import ROOT_FOLDER_ID, FolderID

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class FolderTreeNode:
    """One folder in the hierarchy.

    Attributes:
        folder_id: ID of the folder
        parent: Parent node, None for a root of the forest
        children: Child nodes in linking order
    """

    folder_id: FolderID
    parent: Optional[FolderTreeNode] = None
    children: List[FolderTreeNode] = field(default_factory=list)

    def __repr__(self) -> str:
        parent_id = self.parent.folder_id if self.parent else None
        return f"FolderTreeNode(folder_id={self.folder_id!r}, parent={parent_id!r}, children={len(self.children)})"


class FolderHierarchy:
    """Forest of folders with path computation.

    Example:
        >>> hierarchy = FolderHierarchy.new_from_entities(folders)
        >>> hierarchy.path_to_folder_id(folder_id)
        '/Documents/Taxes/'
    """

    def __init__(
        self,
        nodes: Dict[FolderID, FolderTreeNode],
        entities: Dict[FolderID, ArFSFileOrFolderEntity],
        scoped_root: Optional[FolderID] = None,
    ) -> None:
        self._nodes = nodes
        self._entities = entities
        self._scoped_root = scoped_root
        self._roots = [node for node in nodes.values() if node.parent is None]

    @classmethod
    def new_from_entities(cls, entities: Iterable[ArFSFileOrFolderEntity]) -> FolderHierarchy:
        """Build a hierarchy from folder entities.

        Parents are resolved from the given entities only. Walking up from
        each unlinked folder, the chain stops at an already linked folder, a
        missing parent, or a folder already in the chain (a cycle). The chain
        is then linked top-down; its top becomes a local root unless its
        parent is already linked.

        Args:
            entities: Folder entities, latest revisions, in any order

        Returns:
            The full hierarchy
        """
        entity_map: Dict[FolderID, ArFSFileOrFolderEntity] = {e.entity_id: e for e in entities}
        nodes: Dict[FolderID, FolderTreeNode] = {}

        for entity in entity_map.values():
            if entity.entity_id in nodes:
                continue

            chain: List[ArFSFileOrFolderEntity] = []
            in_progress: set[FolderID] = set()
            current: Optional[ArFSFileOrFolderEntity] = entity
            while (
                current is not None
                and current.entity_id not in nodes
                and current.entity_id not in in_progress
            ):
                chain.append(current)
                in_progress.add(current.entity_id)
                parent_id = current.parent_folder_id
                current = entity_map.get(parent_id) if parent_id else None

            for link in reversed(chain):
                parent_node = nodes.get(link.parent_folder_id) if link.parent_folder_id else None
                node = FolderTreeNode(folder_id=link.entity_id, parent=parent_node)
                if parent_node is not None:
                    parent_node.children.append(node)
                elif link.parent_folder_id in in_progress:
                    logger.warning(
                        "Folder cycle detected, promoting folder to local root",
                        extra={"folder_id": link.entity_id, "parent_folder_id": link.parent_folder_id},
                    )
                nodes[link.entity_id] = node

        hierarchy = cls(nodes, entity_map)
        logger.debug(
            "Folder hierarchy built",
            extra={"folder_count": len(nodes), "root_count": len(hierarchy._roots)},
        )
        return hierarchy

    @property
    def roots(self) -> List[FolderTreeNode]:
        return list(self._roots)

    @property
    def is_subtree(self) -> bool:
        return self._scoped_root is not None

    def __contains__(self, folder_id: object) -> bool:
        return folder_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, folder_id: FolderID) -> FolderTreeNode:
        try:
            return self._nodes[folder_id]
        except KeyError:
            raise NotFoundError(
                f"Folder {folder_id} is not in the hierarchy",
                entity_type="folder",
                entity_id=folder_id,
            ) from None

    def all_folder_ids(self) -> List[FolderID]:
        return list(self._nodes)

    def sub_tree_of(self, folder_id: FolderID) -> FolderHierarchy:
        """Hierarchy of a folder and all of its descendants.

        The result has its own node objects, with the given folder as its
        only root. Path queries on it raise HierarchyUsageError.

        Raises:
            NotFoundError: If the folder is not in this hierarchy
        """
        start = self.node(folder_id)
        new_root = FolderTreeNode(folder_id=start.folder_id)
        nodes: Dict[FolderID, FolderTreeNode] = {new_root.folder_id: new_root}

        queue = deque([(start, new_root)])
        while queue:
            original, copy = queue.popleft()
            for child in original.children:
                child_copy = FolderTreeNode(folder_id=child.folder_id, parent=copy)
                copy.children.append(child_copy)
                nodes[child.folder_id] = child_copy
                queue.append((child, child_copy))

        entities = {fid: self._entities[fid] for fid in nodes if fid in self._entities}
        return FolderHierarchy(nodes, entities, scoped_root=folder_id)

    # Paths

    def path_to_folder_id(self, folder_id: FolderID) -> str:
        """Name path from the drive root, e.g. "/A/B/". The root folder is "/"."""
        return self._path(folder_id, lambda entity: entity.name)

    def entity_path_to_folder_id(self, folder_id: FolderID) -> str:
        """Folder ID path from the drive root, same shape as path_to_folder_id()."""
        return self._path(folder_id, lambda entity: entity.entity_id)

    def tx_path_to_folder_id(self, folder_id: FolderID) -> str:
        """Transaction ID path from the drive root, same shape as path_to_folder_id()."""
        return self._path(folder_id, lambda entity: entity.tx_id)

    def _path(
        self,
        folder_id: FolderID,
        segment: Callable[[ArFSFileOrFolderEntity], str],
    ) -> str:
        if self._scoped_root is not None:
            raise HierarchyUsageError(
                "Paths cannot be computed on a subtree; use the full drive hierarchy",
                folder_id=self._scoped_root,
            )
        if folder_id == ROOT_FOLDER_ID:
            return "/"

        segments: List[str] = []
        node: Optional[FolderTreeNode] = self.node(folder_id)
        while node is not None:
            entity = self._entities[node.folder_id]
            # The drive root folder is "/"; orphaned local roots keep their own segment
            if node.parent is None and entity.parent_folder_id is None:
                break
            segments.append(segment(entity))
            node = node.parent

        if not segments:
            return "/"
        return "/" + "/".join(reversed(segments)) + "/"

