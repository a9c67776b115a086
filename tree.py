import logging
import random
import uuid
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

ROOT_NAME = "Root"
MISSING_NAME = "No name"


class TreeError(Exception):
    pass


class NodeNotFoundError(TreeError):
    def __init__(self, node_id):
        super().__init__(f"Node {node_id} not found")
        self.node_id = node_id


class RootExistsError(TreeError):
    def __init__(self, root_id):
        super().__init__(f"A root already exists ({root_id})")
        self.root_id = root_id


class InvalidTreeError(TreeError):
    pass


@dataclass
class NodeRecord:
    id: str
    name: Optional[str] = None
    is_root: bool = False
    parent_id: Optional[str] = None

    @property
    def display_name(self):
        return self.name if self.name is not None else MISSING_NAME


def new_id():
    return str(uuid.uuid4())


class Tree:
    # Only parent ids are stored; children are derived from them
    def __init__(self, records=None, rng=None, id_factory=new_id, strip_demoted_name=True):
        self.nodes: Dict[str, NodeRecord] = {}
        for record in records or []:
            self.nodes[record.id] = record
        self.rng = rng or random.Random()
        self.id_factory = id_factory
        self.strip_demoted_name = strip_demoted_name

    def __len__(self):
        return len(self.nodes)

    def __contains__(self, node_id):
        return node_id in self.nodes

    # --- Queries ---
    def get(self, node_id) -> NodeRecord:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise NodeNotFoundError(node_id) from None

    def root(self) -> Optional[NodeRecord]:
        for record in self.nodes.values():
            if record.is_root:
                return record
        return None

    def children(self, node_id) -> List[NodeRecord]:
        return [r for r in self.nodes.values() if r.parent_id == node_id]

    def parent(self, node_id) -> Optional[NodeRecord]:
        parent_id = self.get(node_id).parent_id
        return self.nodes.get(parent_id) if parent_id is not None else None

    def _child_index(self):
        index = defaultdict(list)
        for record in self.nodes.values():
            if record.parent_id is not None:
                index[record.parent_id].append(record)
        return index

    def subtree_ids(self, node_id, index=None) -> List[str]:
        """Ids of the node and all of its descendants, the node first."""
        self.get(node_id)
        if index is None:
            index = self._child_index()
        ids = [node_id]
        seen = {node_id}
        i = 0
        while i < len(ids):
            for child in index.get(ids[i], ()):
                if child.id not in seen:
                    seen.add(child.id)
                    ids.append(child.id)
            i += 1
        return ids

    def walk(self):
        """Yield every node with parents ahead of their children.

        Nodes whose parent is missing start their own subtree; nodes caught
        in a cycle are never reached.
        """
        index = self._child_index()
        tops = [r for r in self.nodes.values() if r.parent_id is None or r.parent_id not in self.nodes]
        tops.sort(key=lambda r: not r.is_root)
        for top in tops:
            for node_id in self.subtree_ids(top.id, index):
                yield self.nodes[node_id]

    def nested(self, node_id=None):
        if node_id is None:
            root = self.root()
            if root is None:
                return None
            node_id = root.id
        return self._nested(self.get(node_id), self._child_index(), set())

    def _nested(self, record, index, seen):
        seen.add(record.id)
        return {
            "id": record.id,
            "name": record.name,
            "is_root": record.is_root,
            "children": [
                self._nested(child, index, seen)
                for child in index.get(record.id, ())
                if child.id not in seen
            ],
        }

    def check(self):
        roots = [r.id for r in self.nodes.values() if r.is_root]
        if len(roots) > 1:
            raise InvalidTreeError(f"Multiple roots: {', '.join(roots)}")
        for record in self.nodes.values():
            if record.parent_id is None:
                continue
            if record.parent_id not in self.nodes:
                raise InvalidTreeError(f"Node {record.id} points at missing parent {record.parent_id}")
            if record.is_root:
                raise InvalidTreeError(f"Root {record.id} has a parent")
        reachable = sum(1 for _ in self.walk())
        if reachable != len(self.nodes):
            raise InvalidTreeError("Tree contains a cycle")

    def snapshot(self):
        return {node_id: replace(record) for node_id, record in self.nodes.items()}

    # --- Mutations ---
    def _label(self):
        return str(self.rng.randint(1, 9))

    def _make(self, **fields):
        record = NodeRecord(id=self.id_factory(), **fields)
        self.nodes[record.id] = record
        return record

    def create_root(self) -> NodeRecord:
        existing = self.root()
        if existing is not None:
            raise RootExistsError(existing.id)
        root = self._make(name=ROOT_NAME, is_root=True)
        logger.debug("Created root %s", root.id)
        return root

    def add_child(self, parent_id) -> NodeRecord:
        self.get(parent_id)
        child = self._make(name=self._label(), parent_id=parent_id)
        logger.debug("Added child %s under %s", child.id, parent_id)
        return child

    def promote_to_root(self, node_id) -> Optional[NodeRecord]:
        # Only the current root can be promoted; anything else is a no-op
        old_root = self.get(node_id)
        if not old_root.is_root:
            return None
        new_root = self._make(name=f"R{self._label()}")
        old_root.is_root = False
        if self.strip_demoted_name and old_root.name:
            old_root.name = old_root.name[1:]
        new_root.is_root = True
        old_root.parent_id = new_root.id
        logger.debug("Promoted %s to root above %s", new_root.id, old_root.id)
        return new_root

    def delete_node(self, node_id) -> List[str]:
        removed = self.subtree_ids(node_id)
        for removed_id in removed:
            del self.nodes[removed_id]
        return removed

    def restart(self):
        count = len(self.nodes)
        self.nodes.clear()
        return count

    def rename(self, node_id, name) -> NodeRecord:
        record = self.get(node_id)
        record.name = name
        return record
