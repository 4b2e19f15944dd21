"""BSON helper utilities."""
import json
import re
from datetime import datetime, date
from typing import Any

import bson
from bson import ObjectId
from bson.dbref import DBRef

OBJECT_ID_PATTERN = re.compile(r"^[a-fA-F0-9]{24}$")

class BSONEncoder(json.JSONEncoder):
    """JSON encoder that handles BSON types like ObjectId and datetime.

    Types without a dedicated rendering fall back to their string form.
    """
    def default(self, obj):
        if isinstance(obj, ObjectId):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, bson.Decimal128):
            return float(obj.to_decimal())
        if isinstance(obj, bson.Binary):
            return obj.hex()
        if isinstance(obj, bson.Regex):
            return {"$regex": obj.pattern}
        if isinstance(obj, bson.Timestamp):
            return {"t": obj.time, "i": obj.inc}
        if isinstance(obj, (bson.MaxKey, bson.MinKey)):
            return type(obj).__name__
        if isinstance(obj, DBRef):
            ref = {"$ref": obj.collection, "$id": obj.id}
            if obj.database:
                ref["$db"] = obj.database
            return ref
        if isinstance(obj, (set, tuple)):
            return list(obj)
        return str(obj)

def to_json_safe(data: Any) -> Any:
    """Convert BSON data (documents, lists, scalars) to a JSON-serializable structure."""
    return json.loads(json.dumps(data, cls=BSONEncoder))

def looks_like_object_id(value: Any) -> bool:
    """True for 24-character hex strings that can be turned into an ObjectId."""
    return isinstance(value, str) and bool(OBJECT_ID_PATTERN.match(value))
