"""Shared fixtures: an in-memory Firestore and fake Auth, Storage, Gemini and book search."""

import copy
import itertools
import operator
from datetime import datetime, timezone

import pytest
from firebase_admin import auth, firestore
from google.api_core.exceptions import NotFound

from config import Config
from readingmemory import create_app

_OPERATORS = {
    '==': operator.eq,
    '!=': operator.ne,
    '<': operator.lt,
    '<=': operator.le,
    '>': operator.gt,
    '>=': operator.ge,
    'in': lambda value, options: value in options,
}

_MISSING = object()


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)

    def get(self, field):
        return (self._data or {}).get(field)


class FakeDocument:
    def __init__(self, db, path):
        self._db = db
        self.path = path
        self.id = path.rsplit('/', 1)[-1]

    def collection(self, name):
        return FakeCollection(self._db, f'{self.path}/{name}')

    def collections(self):
        prefix = self.path + '/'
        names = sorted({
            p[len(prefix):].split('/', 1)[0]
            for p in self._db.docs
            if p.startswith(prefix)
        })
        return [self.collection(name) for name in names]

    def get(self):
        return FakeSnapshot(self, self._db.docs.get(self.path))

    def set(self, data, merge=False):
        current = self._db.docs.get(self.path) if merge else None
        self._db.docs[self.path] = self._db.apply(current or {}, data)

    def update(self, data):
        if self.path not in self._db.docs:
            raise NotFound(f'No document to update: {self.path}')
        self._db.docs[self.path] = self._db.apply(self._db.docs[self.path], data)

    def delete(self):
        self._db.docs.pop(self.path, None)


class FakeQuery:
    def __init__(self, db, path, filters=(), orders=(), start=None, end=None, after=None, limit_to=None):
        self._db = db
        self._path = path
        self._filters = tuple(filters)
        self._orders = tuple(orders)
        self._start = start
        self._end = end
        self._after = after
        self._limit = limit_to

    def _copy(self, **changes):
        state = dict(filters=self._filters, orders=self._orders, start=self._start, end=self._end,
                     after=self._after, limit_to=self._limit)
        state.update(changes)
        return FakeQuery(self._db, self._path, **state)

    def where(self, field, op, value):
        return self._copy(filters=self._filters + ((field, op, value),))

    def order_by(self, field, direction=firestore.Query.ASCENDING):
        return self._copy(orders=self._orders + ((field, direction),))

    def start_at(self, values):
        return self._copy(start=values)

    def end_at(self, values):
        return self._copy(end=values)

    def start_after(self, snapshot):
        return self._copy(after=snapshot.id)

    def limit(self, count):
        return self._copy(limit_to=count)

    def _documents(self):
        prefix = self._path + '/'
        for path in sorted(self._db.docs):
            if path.startswith(prefix) and '/' not in path[len(prefix):]:
                yield FakeDocument(self._db, path), self._db.docs[path]

    def stream(self):
        rows = []
        for ref, data in self._documents():
            if all(self._matches(data, f) for f in self._filters):
                if all(field in data for field, _ in self._orders):
                    rows.append((ref, data))

        for field, direction in reversed(self._orders):
            rows.sort(key=lambda row: row[1][field], reverse=direction == firestore.Query.DESCENDING)

        if self._orders:
            field, direction = self._orders[0]
            descending = direction == firestore.Query.DESCENDING
            if self._start is not None:
                bound = self._start[field]
                rows = [r for r in rows if (r[1][field] <= bound if descending else r[1][field] >= bound)]
            if self._end is not None:
                bound = self._end[field]
                rows = [r for r in rows if (r[1][field] >= bound if descending else r[1][field] <= bound)]

        if self._after is not None:
            ids = [ref.id for ref, _ in rows]
            if self._after in ids:
                rows = rows[ids.index(self._after) + 1:]

        if self._limit is not None:
            rows = rows[:self._limit]

        self._db.query_count += 1
        return iter([FakeSnapshot(ref, copy.deepcopy(data)) for ref, data in rows])

    def get(self):
        return list(self.stream())

    @staticmethod
    def _matches(data, condition):
        field, op, value = condition
        current = data.get(field, _MISSING)
        if current is _MISSING:
            return False
        try:
            return _OPERATORS[op](current, value)
        except TypeError:
            return False


class FakeCollection(FakeQuery):
    def __init__(self, db, path):
        super().__init__(db, path)
        self.id = path.rsplit('/', 1)[-1]

    def document(self, document_id=None):
        if document_id is None:
            document_id = f'auto{next(self._db.ids):04d}'
        return FakeDocument(self._db, f'{self._path}/{document_id}')

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return None, ref


class FakeBatch:
    def __init__(self):
        self._ops = []

    def set(self, ref, data, merge=False):
        self._ops.append(lambda: ref.set(data, merge=merge))

    def update(self, ref, data):
        self._ops.append(lambda: ref.update(data))

    def delete(self, ref):
        self._ops.append(ref.delete)

    def commit(self):
        for op in self._ops:
            op()
        self._ops = []


class FakeFirestore:
    """Enough of ``google.cloud.firestore.Client`` for the app and the callables."""

    def __init__(self):
        self.docs = {}
        self.ids = itertools.count(1)
        self.query_count = 0
        self.clock = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def collection(self, name):
        return FakeCollection(self, name)

    def batch(self):
        return FakeBatch()

    def apply(self, current, data):
        result = copy.deepcopy(current)
        for key, value in data.items():
            if value is firestore.SERVER_TIMESTAMP:
                result[key] = self.clock
            elif isinstance(value, firestore.Increment):
                result[key] = (result.get(key) or 0) + value.value
            else:
                result[key] = copy.deepcopy(value)
        return result

    def put(self, path, data):
        """Store ``data`` at ``path`` as-is (test setup helper)."""
        self.docs[path] = copy.deepcopy(data)

    def data(self, path):
        return self.docs.get(path)


class FakeAuth:
    def __init__(self, tokens=None):
        self.tokens = tokens or {}
        self.deleted = []

    def verify_id_token(self, token):
        if token == 'provider-down':
            raise RuntimeError('identity provider unavailable')
        if token not in self.tokens:
            raise auth.InvalidIdTokenError('Token rejected')
        return self.tokens[token]

    def delete_user(self, uid):
        self.deleted.append(uid)


class FakeBlob:
    def __init__(self, bucket, name):
        self.bucket = bucket
        self.name = name
        self.metadata = None
        self.cache_control = None

    def upload_from_string(self, data, content_type=None):
        self.bucket.uploads[self.name] = {
            'data': data,
            'contentType': content_type,
            'metadata': self.metadata,
            'cacheControl': self.cache_control,
        }
        if self.name not in self.bucket.names:
            self.bucket.names.append(self.name)

    def delete(self):
        if self.name not in self.bucket.names:
            raise NotFound(f'No such object: {self.name}')
        self.bucket.names.remove(self.name)


class FakeBucket:
    def __init__(self, names=(), name='reading-memory.appspot.com'):
        self.name = name
        self.names = list(names)
        self.uploads = {}

    def blob(self, name):
        return FakeBlob(self, name)

    def list_blobs(self, prefix=''):
        return [FakeBlob(self, n) for n in list(self.names) if n.startswith(prefix)]


class FakeGemini:
    def __init__(self):
        self.chat_calls = []
        self.summary_calls = []

    def generate_book_chat_response(self, book_title, book_author, previous_chats, user_message):
        self.chat_calls.append((book_title, book_author, previous_chats, user_message))
        return 'What a great observation!'

    def generate_book_summary(self, book_title, book_author, chats):
        self.summary_calls.append((book_title, book_author, chats))
        return '- The reader enjoyed the book'


class FakeBookSearch:
    def __init__(self, results=None):
        self.results = results or {}
        self.calls = []

    def search_by_isbn(self, isbn):
        self.calls.append(('isbn', isbn))
        return copy.deepcopy(self.results.get(isbn, []))

    def search_by_query(self, query):
        self.calls.append(('query', query))
        return copy.deepcopy(self.results.get(query, []))


class TestConfig(Config):
    TESTING = True
    LOG_LEVEL = 'WARNING'
    GEMINI_API_KEY = 'test-key'


SAMPLE_BOOK = {
    'isbn': '9784101010014',
    'title': 'Kokoro',
    'author': 'Natsume Soseki',
    'publisher': 'Shinchosha',
    'publishedDate': '1952-02-01',
    'pageCount': 384,
    'description': None,
    'coverImageUrl': None,
    'dataSource': 'openBD',
}


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def fake_auth():
    return FakeAuth({
        'token-u1': {'uid': 'u1', 'email': 'u1@example.com'},
        'token-u2': {'uid': 'u2'},
    })


@pytest.fixture
def bucket():
    return FakeBucket(['users/u1/avatar.jpg', 'users/u1/chats/1.jpg', 'users/u2/avatar.jpg'])


@pytest.fixture
def gemini():
    return FakeGemini()


@pytest.fixture
def book_search():
    return FakeBookSearch({
        SAMPLE_BOOK['isbn']: [SAMPLE_BOOK],
        'kokoro': [SAMPLE_BOOK],
    })


@pytest.fixture
def app(db, fake_auth, bucket, gemini, book_search):
    return create_app(
        TestConfig,
        firestore_client=db,
        auth_client=fake_auth,
        storage_bucket=bucket,
        gemini=gemini,
        book_search=book_search,
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def headers():
    return {'Authorization': 'Bearer token-u1'}
