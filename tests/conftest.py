import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["ENV"] = "development"

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from elibrary.config import get_settings, settings
from elibrary.database import Base, get_db
from elibrary.main import app
from elibrary.storage import IMAGE, AssetStoreError, get_asset_store, public_id_from_url


class FakeAssetStore:
    """In-memory stand-in for Cloudinary keyed by public id."""

    def __init__(self):
        self.objects = {}
        self.uploads = []
        self.destroyed = []
        self.failing_folders = set()
        self.fail_destroy = False

    async def upload(self, path, *, folder, resource_type=IMAGE, fmt=None, filename=None):
        assert Path(path).exists(), "upload must read a staged local file"
        if folder in self.failing_folders:
            raise AssetStoreError(f"upload to {folder} rejected")
        name = f"{filename}.{fmt}" if fmt else filename
        url = f"https://res.cloudinary.com/demo/{resource_type}/upload/v1/{folder}/{name}"
        self.objects[public_id_from_url(url, resource_type)] = resource_type
        self.uploads.append({"folder": folder, "resource_type": resource_type, "format": fmt, "url": url})
        return url

    async def destroy(self, public_id, *, resource_type=IMAGE):
        if self.fail_destroy:
            raise AssetStoreError(f"destroy of {public_id} rejected")
        self.destroyed.append((public_id, resource_type))
        self.objects.pop(public_id, None)


@pytest.fixture(scope="function")
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def fake_store():
    return FakeAssetStore()


@pytest.fixture(scope="function")
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture(scope="function")
def client(session_factory, fake_store, upload_dir):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    test_settings = settings.model_copy(update={"UPLOAD_DIR": str(upload_dir), "MAX_UPLOAD_BYTES": 1024})

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_asset_store] = lambda: fake_store
    app.dependency_overrides[get_settings] = lambda: test_settings
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    def _register(name="Ann", email="a@x.com", password="secret1"):
        response = client.post(
            "/api/users/register",
            json={"name": name, "email": email, "password": password},
        )
        assert response.status_code == 201, response.text
        return response.json()["accessToken"]

    return _register


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def upload_book(client):
    def _upload(token, title="Dune", genre="Science Fiction", description="Desert planet", cover=True, file=True):
        files = {}
        if cover:
            files["coverImage"] = ("cover.png", b"\x89PNG fake image", "image/png")
        if file:
            files["file"] = ("dune.pdf", b"%PDF-1.4 fake book", "application/pdf")
        return client.post(
            "/api/books",
            data={"title": title, "genre": genre, "description": description},
            files=files,
            headers=auth_header(token),
        )

    return _upload


@pytest.fixture
def leftover_uploads(upload_dir):
    def _leftover():
        if not upload_dir.exists():
            return []
        return list(upload_dir.iterdir())

    return _leftover
