# conftest.py
"""
pytest 공용 픽스처

실제 Firestore 대신 메모리 기반 FakeFirestore를 create_app에 주입합니다.
서비스가 사용하는 범위(문서 CRUD, where/order_by/limit/start_after, collection_group,
WriteBatch, ArrayUnion/ArrayRemove/Increment, SERVER_TIMESTAMP, on_snapshot)만 흉내 냅니다.
"""
import copy
import uuid
from datetime import datetime, timedelta, timezone
from functools import cmp_to_key
from unittest.mock import MagicMock

import pytest
from flask_jwt_extended import create_access_token
from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore_v1.transforms import ArrayRemove, ArrayUnion, Increment, SERVER_TIMESTAMP

from snapgram import create_app
from snapgram.api.chats.services import MessagingService
from snapgram.api.posts.services import PostService
from snapgram.api.users.services import UserService


# =====================================================================================
# FakeFirestore
# =====================================================================================
class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None

    def get(self, field):
        return (self._data or {}).get(field)


class FakeWatch:
    def __init__(self, db, query, callback):
        self._db = db
        self._query = query
        self._callback = callback
        self.active = True

    def notify(self):
        if self.active:
            self._callback(list(self._query.stream()), [], self._db.now())

    def unsubscribe(self):
        if self.active:
            self.active = False
            self._db.watches.remove(self)


class FakeQuery:
    def __init__(self, db, path, filters=None, orders=None, limit_count=None, cursor=None, all_descendants=False):
        self._db = db
        self._path = path
        self._all_descendants = all_descendants
        self._filters = filters or []
        self._orders = orders or []
        self._limit = limit_count
        self._cursor = cursor

    def _copy(self, **changes):
        state = dict(filters=list(self._filters), orders=list(self._orders),
                     limit_count=self._limit, cursor=self._cursor,
                     all_descendants=self._all_descendants)
        state.update(changes)
        return FakeQuery(self._db, self._path, **state)

    def where(self, field_path=None, op_string=None, value=None, *, filter=None):
        if filter is not None:
            field_path, op_string, value = filter.field_path, filter.op_string, filter.value
        return self._copy(filters=self._filters + [(field_path, op_string, value)])

    def order_by(self, field_path, direction='ASCENDING'):
        return self._copy(orders=self._orders + [(field_path, direction)])

    def limit(self, count):
        return self._copy(limit_count=count)

    def start_after(self, snapshot):
        return self._copy(cursor=snapshot)

    def on_snapshot(self, callback):
        watch = FakeWatch(self._db, self, callback)
        self._db.watches.append(watch)
        watch.notify()
        return watch

    def get(self):
        return list(self.stream())

    def _matches(self, data):
        for field, op, value in self._filters:
            if field not in data:
                return False
            actual = data[field]
            if op == '==' and not actual == value:
                return False
            if op == '<' and not actual < value:
                return False
            if op == '<=' and not actual <= value:
                return False
            if op == '>' and not actual > value:
                return False
            if op == '>=' and not actual >= value:
                return False
            if op == 'in' and actual not in value:
                return False
            if op == 'array_contains' and value not in (actual or []):
                return False
        return all(data.get(field) is not None for field, _ in self._orders)

    def _compare(self, a, b):
        """(doc_id, data) 쌍 비교. 마지막 정렬 방향으로 문서 ID를 보조 키로 씁니다."""
        direction = 'ASCENDING'
        for field, direction in self._orders:
            left, right = a[1][field], b[1][field]
            if left != right:
                result = -1 if left < right else 1
                return -result if direction == 'DESCENDING' else result
        if a[0] == b[0]:
            return 0
        result = -1 if a[0] < b[0] else 1
        return -result if direction == 'DESCENDING' else result

    def stream(self):
        if self._all_descendants:
            found = self._db.documents_in_group(self._path[-1])
        else:
            found = self._db.documents_in(self._path)
        rows = [(path[-1], data, path) for path, data in found if self._matches(data)]
        rows.sort(key=cmp_to_key(self._compare))
        if self._cursor is not None:
            pivot = (self._cursor.id, self._cursor.to_dict())
            rows = [row for row in rows if self._compare(row, pivot) > 0]
        if self._limit is not None:
            rows = rows[:self._limit]
        for _, data, path in rows:
            yield FakeSnapshot(FakeDocumentReference(self._db, path), copy.deepcopy(data))


class FakeCollectionReference(FakeQuery):
    def __init__(self, db, path):
        super().__init__(db, path)
        self.id = path[-1]

    @property
    def parent(self):
        return FakeDocumentReference(self._db, self._path[:-1]) if len(self._path) > 1 else None

    def document(self, document_id=None):
        return FakeDocumentReference(self._db, self._path + (document_id or uuid.uuid4().hex[:20],))


class FakeDocumentReference:
    def __init__(self, db, path):
        self._db = db
        self.path = path
        self.id = path[-1]

    def __eq__(self, other):
        return isinstance(other, FakeDocumentReference) and other.path == self.path

    def __hash__(self):
        return hash(self.path)

    @property
    def parent(self):
        return FakeCollectionReference(self._db, self.path[:-1])

    def collection(self, name):
        return FakeCollectionReference(self._db, self.path + (name,))

    def get(self):
        return FakeSnapshot(self, copy.deepcopy(self._db.store.get(self.path)))

    def set(self, data, merge=False):
        batch = self._db.batch()
        batch.set(self, data, merge=merge)
        batch.commit()

    def update(self, data):
        batch = self._db.batch()
        batch.update(self, data)
        batch.commit()

    def delete(self):
        batch = self._db.batch()
        batch.delete(self)
        batch.commit()


class FakeWriteBatch:
    """커밋 시점에 모든 쓰기를 복사본에 적용한 뒤 한꺼번에 교체합니다. 하나라도 실패하면 아무것도 반영되지 않습니다."""
    def __init__(self, db):
        self._db = db
        self._writes = []

    def set(self, reference, data, merge=False):
        self._writes.append(('set', reference.path, _detach(data), merge))

    def update(self, reference, data):
        self._writes.append(('update', reference.path, _detach(data), False))

    def delete(self, reference):
        self._writes.append(('delete', reference.path, None, False))

    def commit(self):
        if self._db.fail_next_commit is not None:
            error, self._db.fail_next_commit = self._db.fail_next_commit, None
            raise error

        store = copy.deepcopy(self._db.store)
        timestamp = self._db.now()
        for kind, path, data, merge in self._writes:
            if kind == 'delete':
                store.pop(path, None)
            elif kind == 'update':
                if path not in store:
                    raise gcp_exceptions.NotFound(f"No document to update: {'/'.join(path)}")
                store[path] = _apply(store[path], data, timestamp, merge=True)
            else:
                base = store.get(path, {}) if merge else {}
                store[path] = _apply(base, data, timestamp, merge=merge)
        self._db.store = store
        self._writes = []
        for watch in list(self._db.watches):
            watch.notify()


def _detach(value):
    """dict/list만 복사합니다. SERVER_TIMESTAMP 같은 sentinel은 동일 객체를 유지해야 합니다."""
    if isinstance(value, dict):
        return {k: _detach(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_detach(v) for v in value]
    return value


def _resolve(value, existing, timestamp):
    if value is SERVER_TIMESTAMP:
        return timestamp
    if isinstance(value, ArrayUnion):
        merged = list(existing) if isinstance(existing, list) else []
        merged.extend(v for v in value.values if v not in merged)
        return merged
    if isinstance(value, ArrayRemove):
        return [v for v in (existing if isinstance(existing, list) else []) if v not in value.values]
    if isinstance(value, Increment):
        return (existing or 0) + value.value
    if isinstance(value, dict):
        return {k: _resolve(v, None, timestamp) for k, v in value.items()}
    return value


def _apply(base, data, timestamp, merge):
    result = copy.deepcopy(base)
    for key, value in data.items():
        existing = result.get(key)
        if merge and isinstance(value, dict) and isinstance(existing, dict):
            result[key] = _apply(existing, value, timestamp, merge=True)
        else:
            result[key] = _resolve(value, existing, timestamp)
    return result


class FakeFirestore:
    """경로 튜플(예: ('chats', chat_id, 'messages', message_id))을 키로 쓰는 메모리 저장소."""
    def __init__(self):
        self.store = {}
        self.watches = []
        self.fail_next_commit = None
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self):
        # 서버 타임스탬프는 커밋마다 1초씩 증가해 순서가 항상 구분됩니다.
        self._clock += timedelta(seconds=1)
        return self._clock

    def collection(self, name):
        return FakeCollectionReference(self, (name,))

    def collection_group(self, collection_id):
        return FakeQuery(self, (collection_id,), all_descendants=True)

    def batch(self):
        return FakeWriteBatch(self)

    def documents_in(self, collection_path):
        depth = len(collection_path) + 1
        for path, data in self.store.items():
            if len(path) == depth and path[:-1] == collection_path:
                yield path, data

    def documents_in_group(self, collection_id):
        for path, data in self.store.items():
            if len(path) % 2 == 0 and path[-2] == collection_id:
                yield path, data


# =====================================================================================
# 픽스처
# =====================================================================================
@pytest.fixture
def fake_db():
    return FakeFirestore()


@pytest.fixture
def fake_bucket():
    bucket = MagicMock()

    def make_blob(name):
        blob = MagicMock()
        blob.public_url = f"https://storage.googleapis.com/snapgram-test.appspot.com/{name}"
        return blob

    bucket.blob.side_effect = make_blob
    return bucket


@pytest.fixture
def app(fake_db, fake_bucket):
    return create_app('testing', db=fake_db, bucket=fake_bucket)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    def _headers(uid):
        with app.app_context():
            token = create_access_token(identity=uid)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def user_service(fake_db):
    return UserService(db=fake_db)


@pytest.fixture
def post_service(fake_db):
    return PostService(db=fake_db)


@pytest.fixture
def messaging_service(fake_db):
    return MessagingService(db=fake_db)


@pytest.fixture
def make_user(user_service):
    """uid와 사용자명으로 프로필을 바로 만들어 주는 헬퍼"""
    def _make(username, uid=None):
        return user_service.create_profile(uid or f"uid-{username.lower()}", username)
    return _make
