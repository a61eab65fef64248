import pytest

from app.db.conversation_actor import ConversationDirectory
from app.db.kv_store import SQLiteKVStore


@pytest.fixture
def store(tmp_path):
    kv = SQLiteKVStore(str(tmp_path / "test.sqlite3"))
    yield kv
    kv.close()


@pytest.fixture
def directory(store):
    return ConversationDirectory(store)
