"""Document store used for job and media-item records.

Each write is an independent upsert; there is no transactional coupling
between collections. ``JsonDocumentStore`` keeps one JSON file per collection
and replaces it atomically on every write.
"""

import copy
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

Document = Dict[str, Any]
Filter = Callable[[Document], bool]


class DocumentNotFound(KeyError):
    pass


class InMemoryDocumentStore:
    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._lock = threading.RLock()

    def _collection(self, name: str) -> Dict[str, Document]:
        return self._collections.setdefault(name, {})

    def insert(self, collection: str, doc: Document) -> Document:
        if "id" not in doc:
            raise ValueError("Document requires an 'id' field")
        with self._lock:
            self._collection(collection)[doc["id"]] = copy.deepcopy(doc)
            self._flush(collection)
        return copy.deepcopy(doc)

    def update(self, collection: str, doc_id: str, fields: Document) -> Document:
        """Shallow-merges ``fields`` into the stored document."""
        with self._lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                raise DocumentNotFound(f"{collection}/{doc_id}")
            docs[doc_id].update(copy.deepcopy(fields))
            self._flush(collection)
            return copy.deepcopy(docs[doc_id])

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def find(self, collection: str, where: Optional[Filter] = None) -> List[Document]:
        with self._lock:
            docs = list(self._collection(collection).values())
            return [copy.deepcopy(d) for d in docs if where is None or where(d)]

    def _flush(self, collection: str) -> None:
        pass


class JsonDocumentStore(InMemoryDocumentStore):
    def __init__(self, root: Path):
        super().__init__()
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        for path in sorted(self.root.glob("*.json")):
            with open(path, "r", encoding="utf-8") as f:
                docs = json.load(f) or []
            self._collections[path.stem] = {d["id"]: d for d in docs}

    def _flush(self, collection: str) -> None:
        target = self.root / f"{collection}.json"
        docs = list(self._collections.get(collection, {}).values())
        fd, tmp_name = tempfile.mkstemp(dir=str(self.root), prefix=f".{collection}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(docs, f, indent=2)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
