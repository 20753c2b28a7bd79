"""
In-Memory Document Store

Process-local implementation of DocumentStoreInterface for tests and
local development (STORE_BACKEND=memory). It understands the subset of
MongoDB query, update and aggregation semantics the repository emits:

- filters: equality (null matches missing), $eq $ne $gt $gte $lt $lte
  $in $nin $exists $regex/$options, $and $or $nor, dotted paths
- updates: $set $unset $inc $push ($each) $addToSet $pull
- stages: Match Facet Sort Skip Limit Count AddFields, raw $addFields/$set
  $project $unset
- expressions: $ceil $divide $add $subtract $multiply $cond $gt $gte $lt
  $lte $eq $ne $min $max $ifNull $literal

Comparisons follow BSON type ordering (null sorts before numbers).
"""

import copy
import logging
import math
import operator
import re
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId

from ..errors import BatchInsertFailed, DuplicateRecord
from .base import DocumentStoreInterface, WriteResult, stamp_new_document, stamp_update
from .pipeline import (
    AddFields,
    Count,
    Facet,
    Limit,
    Match,
    RawStage,
    Skip,
    Sort,
    Stage,
)

logger = logging.getLogger(__name__)

_MISSING = object()


# ===== Field access =====

def get_path(document: Any, path: str) -> Any:
    """Resolve a dotted path; returns _MISSING when absent."""
    current = document
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _set_path(document: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def _unset_path(document: Dict[str, Any], path: str) -> None:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        current = current.get(part)
        if not isinstance(current, dict):
            return
    current.pop(parts[-1], None)


# ===== BSON ordering =====

def _type_rank(value: Any) -> int:
    if value is None or value is _MISSING:
        return 1
    if isinstance(value, bool):
        return 8
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, str):
        return 3
    if isinstance(value, dict):
        return 4
    if isinstance(value, list):
        return 5
    if isinstance(value, bytes):
        return 6
    if isinstance(value, ObjectId):
        return 7
    if isinstance(value, datetime):
        return 9
    return 12


def sort_key(value: Any) -> Tuple[int, Any]:
    rank = _type_rank(value)
    if rank == 1:
        return rank, 0
    if rank in (4, 5):
        return rank, str(value)
    return rank, value


# ===== Query matching =====

_REGEX_FLAGS = {"i": re.IGNORECASE, "s": re.DOTALL, "m": re.MULTILINE, "x": re.VERBOSE}

_COMPARISONS: Dict[str, Callable[[Any, Any], bool]] = {
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
}


def _candidates(value: Any) -> List[Any]:
    # array fields match when the array itself or any element matches
    if isinstance(value, list):
        return [value, *value]
    return [value]


def _equals(value: Any, expected: Any) -> bool:
    if expected is None:
        return value is _MISSING or value is None
    if value is _MISSING:
        return False
    return any(candidate == expected for candidate in _candidates(value))


def _regex_match(value: Any, pattern: Any, options: str = "") -> bool:
    if value is _MISSING:
        return False
    if not isinstance(pattern, re.Pattern):
        flags = 0
        for option in options:
            flags |= _REGEX_FLAGS.get(option, 0)
        pattern = re.compile(pattern, flags)
    return any(
        isinstance(candidate, str) and pattern.search(candidate) is not None
        for candidate in _candidates(value)
    )


def _is_operator_dict(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(key.startswith("$") for key in value)


def _apply_operator(op: str, operand: Any, value: Any, options: str) -> bool:
    if op == "$eq":
        return _equals(value, operand)
    if op == "$ne":
        return not _equals(value, operand)
    if op in _COMPARISONS:
        if value is _MISSING:
            return False
        compare = _COMPARISONS[op]
        return any(
            _type_rank(candidate) == _type_rank(operand) and compare(candidate, operand)
            for candidate in _candidates(value)
        )
    if op == "$in":
        return any(_equals(value, item) for item in operand)
    if op == "$nin":
        return not any(_equals(value, item) for item in operand)
    if op == "$exists":
        return (value is not _MISSING) == bool(operand)
    if op == "$regex":
        return _regex_match(value, operand, options)
    raise NotImplementedError(f"In-memory store does not support query operator {op}")


def _match_value(value: Any, condition: Any) -> bool:
    if isinstance(condition, re.Pattern):
        return _regex_match(value, condition)
    if _is_operator_dict(condition):
        options = condition.get("$options", "")
        return all(
            _apply_operator(op, operand, value, options)
            for op, operand in condition.items()
            if op != "$options"
        )
    return _equals(value, condition)


def matches(document: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    """Evaluate a MongoDB query filter against one document."""
    for key, condition in filter.items():
        if key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
        elif key == "$nor":
            if any(matches(document, sub) for sub in condition):
                return False
        elif not _match_value(get_path(document, key), condition):
            return False
    return True


# ===== Updates =====

def apply_update(document: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of the document with an operator-style update applied."""
    result = copy.deepcopy(document)
    for op, fields in update.items():
        for path, value in fields.items():
            current = get_path(result, path)
            if op == "$set":
                _set_path(result, path, copy.deepcopy(value))
            elif op == "$unset":
                _unset_path(result, path)
            elif op == "$inc":
                _set_path(result, path, (0 if current is _MISSING else current) + value)
            elif op in ("$push", "$addToSet"):
                array = [] if current is _MISSING else current
                if not isinstance(array, list):
                    raise ValueError(f"Cannot {op} to non-array field '{path}'")
                items = value["$each"] if isinstance(value, dict) and "$each" in value else [value]
                for item in items:
                    if op == "$push" or item not in array:
                        array.append(copy.deepcopy(item))
                _set_path(result, path, array)
            elif op == "$pull":
                if isinstance(current, list):
                    _set_path(result, path, [item for item in current if not _pull_matches(item, value)])
            else:
                raise NotImplementedError(f"In-memory store does not support update operator {op}")
    return result


def _pull_matches(item: Any, condition: Any) -> bool:
    if _is_operator_dict(condition):
        return _match_value(item, condition)
    if isinstance(condition, dict) and isinstance(item, dict):
        return matches(item, condition)
    return item == condition


# ===== Expressions =====

def _truthy(value: Any) -> bool:
    if value is None or value is _MISSING or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0
    return True


def _null(value: Any) -> bool:
    return value is None or value is _MISSING


def _arithmetic(op: str, values: List[Any]) -> Any:
    if any(_null(value) for value in values):
        return None
    if op == "$add":
        return sum(values)
    if op == "$multiply":
        return math.prod(values)
    if op == "$subtract":
        return values[0] - values[1]
    if values[1] == 0:
        raise ValueError("can't $divide by zero")
    return values[0] / values[1]


def evaluate(expression: Any, document: Dict[str, Any]) -> Any:
    """Evaluate an aggregation expression against one document."""
    if isinstance(expression, str) and expression.startswith("$"):
        value = get_path(document, expression[1:])
        return None if value is _MISSING else value
    if isinstance(expression, list):
        return [evaluate(item, document) for item in expression]
    if isinstance(expression, dict):
        if len(expression) == 1:
            op, args = next(iter(expression.items()))
            if op.startswith("$"):
                return _evaluate_operator(op, args, document)
        return {key: evaluate(value, document) for key, value in expression.items()}
    return expression


def _evaluate_operator(op: str, args: Any, document: Dict[str, Any]) -> Any:
    if op == "$literal":
        return args
    if op == "$cond":
        if isinstance(args, dict):
            condition, then, otherwise = args["if"], args["then"], args["else"]
        else:
            condition, then, otherwise = args
        branch = then if _truthy(evaluate(condition, document)) else otherwise
        return evaluate(branch, document)
    if op == "$ifNull":
        for value in evaluate(args, document):
            if not _null(value):
                return value
        return None

    values = evaluate(args, document)
    if op in ("$gt", "$gte", "$lt", "$lte"):
        left, right = values
        return _COMPARISONS[op](sort_key(left), sort_key(right))
    if op == "$eq":
        left, right = values
        return sort_key(left) == sort_key(right)
    if op == "$ne":
        left, right = values
        return sort_key(left) != sort_key(right)
    if op == "$ceil":
        if _null(values):
            return None
        return float(math.ceil(values)) if isinstance(values, float) else math.ceil(values)
    if op in ("$add", "$subtract", "$multiply", "$divide"):
        return _arithmetic(op, values)
    if op in ("$min", "$max"):
        present = [value for value in values if not _null(value)]
        if not present:
            return None
        pick = min if op == "$min" else max
        return pick(present, key=sort_key)
    raise NotImplementedError(f"In-memory store does not support expression operator {op}")


# ===== Store =====

class InMemoryDocumentStore(DocumentStoreInterface):
    """
    Process-local document store.

    A lock makes every single-document read-modify-write atomic, which is
    the guarantee the repository expects from a real store. Unique indexes
    are enforced on insert and update.
    """

    def __init__(self, name: str = "documents"):
        self.name = name
        self._documents: List[Dict[str, Any]] = []
        self._unique_indexes: List[List[str]] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._documents)

    def _violates_unique(
        self,
        candidate: Dict[str, Any],
        ignore_id: Any = None,
        pool: Optional[List[Dict[str, Any]]] = None,
    ) -> bool:
        pool = self._documents if pool is None else pool
        for fields in self._unique_indexes:
            key = [get_path(candidate, field) for field in fields]
            if all(value is _MISSING for value in key):
                continue
            for existing in pool:
                if existing["_id"] == ignore_id:
                    continue
                if [get_path(existing, field) for field in fields] == key:
                    return True
        return False

    def _prepare(self, document: Dict[str, Any]) -> Dict[str, Any]:
        stored = stamp_new_document(copy.deepcopy(document))
        stored.setdefault("_id", ObjectId())
        return stored

    def insert_one(self, document: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            stored = self._prepare(document)
            if self._violates_unique(stored):
                raise DuplicateRecord()
            self._documents.append(stored)
            return copy.deepcopy(stored)

    def insert_many(self, documents: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        # all-or-nothing: nothing is written when any record is rejected
        with self._lock:
            prepared = [self._prepare(document) for document in documents]
            staged: List[Dict[str, Any]] = []
            failed = 0
            for stored in prepared:
                if self._violates_unique(stored, pool=self._documents + staged):
                    failed += 1
                else:
                    staged.append(stored)
            if failed:
                logger.warning(f"[collection:{self.name}] insert_many rejected {failed}/{len(prepared)} documents")
                raise BatchInsertFailed(
                    f"{failed} of {len(prepared)} documents rejected",
                    failed_count=failed,
                )
            self._documents.extend(staged)
            return copy.deepcopy(staged)

    def find_one(self, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            for document in self._documents:
                if matches(document, filter):
                    return copy.deepcopy(document)
            return None

    def find(self, filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(d) for d in self._documents if matches(d, filter)]

    def count_documents(self, filter: Dict[str, Any]) -> int:
        with self._lock:
            return sum(1 for d in self._documents if matches(d, filter))

    def find_one_and_update(
        self,
        filter: Dict[str, Any],
        update: Dict[str, Any],
        return_updated: bool = True,
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            for index, document in enumerate(self._documents):
                if not matches(document, filter):
                    continue
                updated = apply_update(document, stamp_update(update))
                if self._violates_unique(updated, ignore_id=document["_id"]):
                    raise DuplicateRecord()
                self._documents[index] = updated
                return copy.deepcopy(updated if return_updated else document)
            return None

    def update_many(self, filter: Dict[str, Any], update: Dict[str, Any]) -> WriteResult:
        with self._lock:
            stamped = stamp_update(update)
            matched = 0
            modified = 0
            for index, document in enumerate(self._documents):
                if not matches(document, filter):
                    continue
                matched += 1
                updated = apply_update(document, stamped)
                if updated != document:
                    modified += 1
                self._documents[index] = updated
            return WriteResult(matched_count=matched, modified_count=modified)

    def aggregate(self, pipeline: Sequence[Stage]) -> List[Dict[str, Any]]:
        with self._lock:
            documents = copy.deepcopy(self._documents)
        return self._run(pipeline, documents)

    def create_index(self, keys: List[tuple], unique: bool = False) -> str:
        fields = [field for field, _ in keys]
        with self._lock:
            if unique and fields not in self._unique_indexes:
                self._unique_indexes.append(fields)
        return "_".join(f"{field}_{direction}" for field, direction in keys)

    def clear(self) -> None:
        """Drop every document (indexes are kept)."""
        with self._lock:
            self._documents.clear()

    # ----- pipeline evaluation -----

    def _run(self, pipeline: Sequence[Stage], documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for stage in pipeline:
            documents = self._apply_stage(stage, documents)
        return documents

    def _apply_stage(self, stage: Stage, documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if isinstance(stage, Match):
            return [d for d in documents if matches(d, stage.filter)]
        if isinstance(stage, Facet):
            return [{
                name: self._run(branch, documents)
                for name, branch in stage.branches.items()
            }]
        if isinstance(stage, Sort):
            ordered = list(documents)
            for field, direction in reversed(list(stage.keys.items())):
                ordered.sort(key=lambda d: sort_key(get_path(d, field)), reverse=direction == -1)
            return ordered
        if isinstance(stage, Skip):
            return documents[stage.count:]
        if isinstance(stage, Limit):
            return documents[:stage.count]
        if isinstance(stage, Count):
            return [{stage.field: len(documents)}] if documents else []
        if isinstance(stage, AddFields):
            # every expression sees the incoming document, not sibling fields
            return [
                {**d, **{name: evaluate(expr, d) for name, expr in stage.fields.items()}}
                for d in documents
            ]
        if isinstance(stage, RawStage):
            return self._apply_raw(stage, documents)
        raise NotImplementedError(f"In-memory store does not support stage {stage!r}")

    def _apply_raw(self, stage: RawStage, documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        op = stage.operator
        args = stage.spec[op]
        if op in ("$addFields", "$set"):
            return self._apply_stage(AddFields(args), documents)
        if op == "$match":
            return self._apply_stage(Match(args), documents)
        if op == "$unset":
            fields = [args] if isinstance(args, str) else list(args)
            projected = copy.deepcopy(documents)
            for document in projected:
                for field in fields:
                    _unset_path(document, field)
            return projected
        if op == "$project":
            return [self._project(d, args) for d in documents]
        raise NotImplementedError(f"In-memory store does not support stage {op}")

    @staticmethod
    def _project(document: Dict[str, Any], spec: Dict[str, Any]) -> Dict[str, Any]:
        excluded = {field for field, flag in spec.items() if flag in (0, False)}
        included = {field: flag for field, flag in spec.items() if field not in excluded}
        if not included:
            return {key: value for key, value in document.items() if key not in excluded}
        projected: Dict[str, Any] = {}
        if "_id" not in excluded and "_id" in document:
            projected["_id"] = document["_id"]
        for field, flag in included.items():
            if flag in (1, True):
                value = get_path(document, field)
                if value is not _MISSING:
                    _set_path(projected, field, value)
            else:
                _set_path(projected, field, evaluate(flag, document))
        return projected
