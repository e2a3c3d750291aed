import mongomock
import pytest
from fastapi.testclient import TestClient

import config
import main
from database import ensure_indexes, get_db
from schemas import User
from security import hash_password, token_for_user

PASSWORD = "secret123"


@pytest.fixture(scope="session")
def password_hash():
    # bcrypt is slow; hash once for the whole run
    return hash_password(PASSWORD)


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    database = client["linkup_test"]
    ensure_indexes(database)
    yield database
    client.close()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(config, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def client(db):
    main.app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def make_user(db, password_hash):
    def _make(name="Ada Lovelace", email=None, **fields):
        email = email or f"{name.split()[0].lower()}@example.com"
        doc = User(name=name, email=email, password=password_hash, **fields).model_dump()
        db["user"].insert_one(doc)
        return doc

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {token_for_user(user)}"}

    return _headers


@pytest.fixture
def reload(db):
    def _reload(user):
        return db["user"].find_one({"_id": user["_id"]})

    return _reload
