"""In-memory stand-ins for Motor and the model providers."""
from contextlib import asynccontextmanager
from types import SimpleNamespace

from bson import ObjectId

from mongolingo.core.exceptions import DatabaseConnectionError, RateLimitError
from mongolingo.services.llm.providers import ModelProvider

def _matches(doc, query):
    """Equality plus the handful of operators the tests use."""
    for key, condition in (query or {}).items():
        value = doc.get(key)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            for op, operand in condition.items():
                if op == "$gt" and not (value is not None and value > operand):
                    return False
                if op == "$lt" and not (value is not None and value < operand):
                    return False
                if op == "$in" and value not in operand:
                    return False
        elif value != condition:
            return False
    return True

class FakeCursor:
    """Motor cursor over an in-memory list."""

    def __init__(self, documents):
        self._documents = list(documents)
        self.skipped = 0
        self.limited = None
        self.sorted_by = None

    def skip(self, n):
        self.skipped = n
        return self

    def limit(self, n):
        self.limited = n
        return self

    def sort(self, sort_list):
        self.sorted_by = sort_list
        return self

    def _results(self):
        documents = list(self._documents)
        for field, direction in reversed(self.sorted_by or []):
            documents.sort(key=lambda d: d.get(field), reverse=direction == -1)
        documents = documents[self.skipped:]
        if self.limited:
            documents = documents[:self.limited]
        return documents

    async def to_list(self, length=None):
        results = self._results()
        return results[:length] if length else results

    def __aiter__(self):
        self._iter = iter(self._results())
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration

class FakeCollection:
    """In-memory stand-in for AsyncIOMotorCollection."""

    def __init__(self, name, documents=None, indexes=None, fail_with=None):
        self.name = name
        self.documents = list(documents or [])
        self.indexes = indexes or {"_id_": {"key": [("_id", 1)]}}
        self.fail_with = fail_with
        self.calls = []
        self.last_cursor = None

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def find(self, filter_query=None, projection=None):
        self._check()
        self.calls.append(("find", filter_query, projection))
        matched = [doc for doc in self.documents if _matches(doc, filter_query)]
        if projection:
            included = {k for k, v in projection.items() if v}
            if included:
                matched = [{k: v for k, v in doc.items() if k in included or (k == "_id" and projection.get("_id", 1))} for doc in matched]
        self.last_cursor = FakeCursor(matched)
        return self.last_cursor

    def aggregate(self, pipeline):
        self._check()
        self.calls.append(("aggregate", pipeline))
        return FakeCursor(self.documents)

    async def count_documents(self, filter_query):
        self._check()
        return len([doc for doc in self.documents if _matches(doc, filter_query)])

    async def index_information(self):
        self._check()
        return self.indexes

    async def insert_many(self, documents):
        self._check()
        ids = []
        for doc in documents:
            doc.setdefault("_id", ObjectId())
            self.documents.append(doc)
            ids.append(doc["_id"])
        self.calls.append(("insert_many", documents))
        return SimpleNamespace(inserted_ids=ids)

    async def update_many(self, filter_query, update):
        self._check()
        self.calls.append(("update_many", filter_query, update))
        matched = [doc for doc in self.documents if _matches(doc, filter_query)]
        for doc in matched:
            doc.update(update.get("$set", {}))
        return SimpleNamespace(matched_count=len(matched), modified_count=len(matched), upserted_id=None)

    async def delete_many(self, filter_query):
        self._check()
        self.calls.append(("delete_many", filter_query))
        kept = [doc for doc in self.documents if not _matches(doc, filter_query)]
        deleted = len(self.documents) - len(kept)
        self.documents = kept
        return SimpleNamespace(deleted_count=deleted)

class FakeDatabase:
    """In-memory stand-in for AsyncIOMotorDatabase."""

    def __init__(self, name="shop"):
        self.name = name
        self.collections = {}

    def add(self, collection):
        self.collections[collection.name] = collection
        return collection

    async def list_collection_names(self):
        return list(self.collections)

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

class FakeConnector:
    """Replaces open_database; counts connections opened and closed."""

    def __init__(self, db, reachable=True):
        self.db = db
        self.reachable = reachable
        self.opened = 0
        self.closed = 0

    def __call__(self, descriptor):
        return self._open(descriptor)

    @asynccontextmanager
    async def _open(self, descriptor):
        if not self.reachable:
            raise DatabaseConnectionError("Cannot connect to MongoDB: connection refused")
        self.opened += 1
        try:
            yield self.db
        finally:
            self.closed += 1

class ScriptedProvider(ModelProvider):
    """Provider that replays a script of completions and errors."""

    def __init__(self, name, script, healthy=True, timeout=5.0):
        super().__init__(model=f"{name}-test", timeout=timeout)
        self.name = name
        self.script = list(script)
        self.healthy = healthy
        self.calls = 0

    async def health_check(self):
        return self.healthy

    async def generate(self, prompt, temperature=0.1, max_output_tokens=800):
        self.calls += 1
        self.last_prompt = prompt
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        return step

def rate_limited(name):
    return RateLimitError(name, "429 Too Many Requests")

