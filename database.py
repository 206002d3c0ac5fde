"""
Persistence adapters.

The rest of the application only talks to a Store: list / get / add / update /
delete on a named collection, plus a couple of scalar settings. Two backends
are available and picked at startup (see build_store):

- LocalStore: everything in one dict, optionally mirrored to a JSON file
- MongoStore: one MongoDB collection per name, settings in "settings"

Writes are last-write-wins; there is no transaction across collections.
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from copy import deepcopy
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient
from pymongo.errors import PyMongoError

import config
from errors import StorageError

logger = logging.getLogger(__name__)

ARTICLES = "articles"
TABLES = "tables"
PAYMENTS = "payments"
EMPLOYEES = "employees"
ACTIVITY_LOGS = "activity_logs"
COLLECTIONS = (ARTICLES, TABLES, PAYMENTS, EMPLOYEES, ACTIVITY_LOGS)

SETTING_MODE = "mode"
SETTING_STOCK_SNAPSHOT = "stock_snapshot"
SETTING_ACCESS_CODES = "access_codes"


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    """
    Turn a raw MongoDB document into the shape the services read: `_id`
    becomes a string `id`, and ObjectIds found at the top level, in lists, or
    in dicts inside lists (one level deep) become strings.
    """
    if not doc:
        return doc
    doc["id"] = str(doc.pop("_id"))
    # Convert nested ObjectIds if any
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
        if isinstance(v, list):
            new_list = []
            for item in v:
                if isinstance(item, dict):
                    item = {ik: str(iv) if isinstance(iv, ObjectId) else iv for ik, iv in item.items()}
                elif isinstance(item, ObjectId):
                    item = str(item)
                new_list.append(item)
            doc[k] = new_list
    return doc


def _clean(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k not in ("id", "_id")}


def _matches(doc: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    return all(doc.get(k) == v for k, v in (filters or {}).items())


class Store:
    """Interface every backend implements."""

    name = "abstract"

    def list(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        raise NotImplementedError

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> bool:
        raise NotImplementedError

    def get_setting(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set_setting(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def status(self) -> Dict[str, Any]:
        return {"backend": self.name, "collections": list(COLLECTIONS)}


class LocalStore(Store):
    """
    In-process store. With a path, the whole content is rewritten to that
    JSON file after every write and read back on construction.
    """

    name = "local"

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {c: {} for c in COLLECTIONS}
        self._settings: Dict[str, Any] = {}
        # request handlers run in a threadpool; every read and write goes through this
        self._lock = threading.RLock()
        if self.path is not None and self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("cannot read local store %s: %s", self.path, e)
            raise StorageError() from e
        for name, docs in raw.get("collections", {}).items():
            self._collections[name] = {d["id"]: _clean(d) for d in docs if "id" in d}
        self._settings = raw.get("settings", {})
        logger.info("loaded local store from %s", self.path)

    def _flush(self) -> None:
        """Rewrite the JSON file. Caller holds the lock."""
        if self.path is None:
            return
        payload = {
            "collections": {
                name: [dict(doc, id=doc_id) for doc_id, doc in docs.items()]
                for name, docs in self._collections.items()
            },
            "settings": self._settings,
        }
        text = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.path.parent, prefix=self.path.name + ".", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(text)
            os.replace(tmp_name, self.path)
        except OSError as e:
            logger.error("cannot write local store %s: %s", self.path, e)
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError() from e

    def _collection(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def list(self, collection, filters=None):
        with self._lock:
            return [
                dict(deepcopy(doc), id=doc_id)
                for doc_id, doc in self._collection(collection).items()
                if _matches(doc, filters)
            ]

    def get(self, collection, doc_id):
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            if doc is None:
                return None
            return dict(deepcopy(doc), id=doc_id)

    def add(self, collection, data):
        doc_id = str(ObjectId())
        doc = _clean(deepcopy(data))
        doc.setdefault("created_at", datetime.now().isoformat())
        with self._lock:
            self._collection(collection)[doc_id] = doc
            self._flush()
        return doc_id

    def update(self, collection, doc_id, data):
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            if doc is None:
                return False
            doc.update(_clean(deepcopy(data)))
            self._flush()
        return True

    def delete(self, collection, doc_id):
        with self._lock:
            if self._collection(collection).pop(doc_id, None) is None:
                return False
            self._flush()
        return True

    def get_setting(self, key, default=None):
        with self._lock:
            return deepcopy(self._settings.get(key, default))

    def set_setting(self, key, value):
        with self._lock:
            self._settings[key] = deepcopy(value)
            self._flush()

    def status(self):
        with self._lock:
            collections = sorted(self._collections)
        return {
            "backend": self.name,
            "path": str(self.path) if self.path else None,
            "collections": collections,
        }


class MongoStore(Store):
    """MongoDB backend. Document ids are ObjectId hex strings."""

    name = "mongo"

    def __init__(self, url: Optional[str] = None, database: Optional[str] = None, client: Optional[MongoClient] = None):
        self.client = client or MongoClient(url, serverSelectionTimeoutMS=5000)
        self.db = self.client[database or config.DATABASE_NAME]

    @contextmanager
    def _guard(self, op: str, collection: str):
        try:
            yield
        except PyMongoError as e:
            logger.error("mongo %s on %s failed: %s", op, collection, e)
            raise StorageError() from e

    @staticmethod
    def _oid(doc_id: str) -> Optional[ObjectId]:
        try:
            return ObjectId(str(doc_id))
        except (InvalidId, TypeError):
            return None

    def list(self, collection, filters=None):
        with self._guard("find", collection):
            return [serialize_doc(d) for d in self.db[collection].find(filters or {})]

    def get(self, collection, doc_id):
        oid = self._oid(doc_id)
        if oid is None:
            return None
        with self._guard("find_one", collection):
            doc = self.db[collection].find_one({"_id": oid})
        return serialize_doc(doc) if doc else None

    def add(self, collection, data):
        doc = _clean(data)
        now = datetime.now()
        doc.setdefault("created_at", now)
        doc["updated_at"] = now
        with self._guard("insert_one", collection):
            result = self.db[collection].insert_one(doc)
        return str(result.inserted_id)

    def update(self, collection, doc_id, data):
        oid = self._oid(doc_id)
        if oid is None:
            return False
        patch = dict(_clean(data), updated_at=datetime.now())
        with self._guard("update_one", collection):
            result = self.db[collection].update_one({"_id": oid}, {"$set": patch})
        return result.matched_count > 0

    def delete(self, collection, doc_id):
        oid = self._oid(doc_id)
        if oid is None:
            return False
        with self._guard("delete_one", collection):
            result = self.db[collection].delete_one({"_id": oid})
        return result.deleted_count > 0

    def get_setting(self, key, default=None):
        with self._guard("find_one", "settings"):
            doc = self.db["settings"].find_one({"_id": key})
        return doc["value"] if doc else default

    def set_setting(self, key, value):
        with self._guard("update_one", "settings"):
            self.db["settings"].update_one({"_id": key}, {"$set": {"value": value}}, upsert=True)

    def status(self):
        with self._guard("list_collection_names", "*"):
            collections = self.db.list_collection_names()
        return {"backend": self.name, "database": self.db.name, "collections": collections}


def build_store() -> Store:
    if config.STORAGE_BACKEND == "mongo":
        if not config.DATABASE_URL:
            raise RuntimeError("STORAGE_BACKEND=mongo requires DATABASE_URL")
        logger.info("using MongoDB database %s", config.DATABASE_NAME)
        return MongoStore(config.DATABASE_URL, config.DATABASE_NAME)
    if config.STORAGE_BACKEND != "local":
        raise RuntimeError(f"Unknown STORAGE_BACKEND: {config.STORAGE_BACKEND}")
    logger.info("using local store %s", config.LOCAL_STORE_PATH or "(memory)")
    return LocalStore(config.LOCAL_STORE_PATH or None)
