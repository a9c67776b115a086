import logging
import random
from dataclasses import replace

from sqlalchemy.exc import SQLAlchemyError

import models
from database import STRIP_DEMOTED_NAME
from tree import InvalidTreeError, NodeRecord, Tree, new_id

logger = logging.getLogger(__name__)


def to_record(row):
    return NodeRecord(id=row.id, name=row.name, is_root=bool(row.is_root), parent_id=row.parent_id)


class TreeRepository:
    # Saving is best-effort: a failed commit is rolled back, logged and dropped
    def __init__(self, db, rng=None, id_factory=new_id, strip_demoted_name=STRIP_DEMOTED_NAME):
        self.db = db
        self.rng = rng or random.Random()
        self.id_factory = id_factory
        self.strip_demoted_name = strip_demoted_name
        self.saved = True

    def load(self) -> Tree:
        rows = self.db.query(models.Node).order_by(models.Node.id).all()
        return Tree(
            [to_record(row) for row in rows],
            rng=self.rng,
            id_factory=self.id_factory,
            strip_demoted_name=self.strip_demoted_name,
        )

    def count(self):
        return self.db.query(models.Node).count()

    # --- Mutations ---
    def create_root(self):
        return self._apply(lambda tree: tree.create_root())

    def add_child(self, parent_id):
        return self._apply(lambda tree: tree.add_child(parent_id))

    def promote_to_root(self, node_id):
        return self._apply(lambda tree: tree.promote_to_root(node_id))

    def delete_node(self, node_id):
        return self._apply(lambda tree: tree.delete_node(node_id))

    def restart(self):
        return self._apply(lambda tree: tree.restart())

    def rename(self, node_id, name):
        return self._apply(lambda tree: tree.rename(node_id, name))

    def replace_all(self, records):
        """Swap the stored tree for ``records``.

        The incoming nodes are validated first; an invalid snapshot raises
        ``InvalidTreeError`` and leaves storage untouched.
        """
        records = list(records)
        seen = set()
        duplicates = []
        for record in records:
            if record.id in seen and record.id not in duplicates:
                duplicates.append(record.id)
            seen.add(record.id)
        if duplicates:
            raise InvalidTreeError(f"Duplicate id: {', '.join(duplicates)}")
        incoming = Tree(records)
        incoming.check()

        def swap(tree):
            tree.restart()
            for record in incoming.walk():
                tree.nodes[record.id] = replace(record)
            return len(tree)

        return self._apply(swap)

    # --- Saving ---
    def _apply(self, mutate):
        tree = self.load()
        before = tree.snapshot()
        result = mutate(tree)
        self.saved = self._save(before, tree)
        return result

    def _save(self, before, tree):
        after = tree.nodes
        created = [record for record in tree.walk() if record.id not in before]
        changed = [record for node_id, record in after.items() if node_id in before and record != before[node_id]]
        removed = [node_id for node_id in before if node_id not in after]
        if not (created or changed or removed):
            return True

        try:
            # New rows go in first so updated rows can point at them
            for record in created:
                self.db.add(
                    models.Node(id=record.id, name=record.name, is_root=record.is_root, parent_id=record.parent_id)
                )
            self.db.flush()

            if changed:
                rows = {
                    row.id: row
                    for row in self.db.query(models.Node).filter(models.Node.id.in_([r.id for r in changed]))
                }
                for record in changed:
                    row = rows[record.id]
                    row.name = record.name
                    row.is_root = record.is_root
                    row.parent_id = record.parent_id
                self.db.flush()

            if removed:
                self.db.query(models.Node).filter(models.Node.id.in_(removed)).delete(synchronize_session=False)

            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Tree change was not saved: %s", exc)
            return False

        logger.info("Saved tree change: %d created, %d updated, %d deleted", len(created), len(changed), len(removed))
        return True
