"""
Shared fixtures: in-memory SQLite database and a small video catalog.

Catalog used by most tests (video category):

    R (root, not purchasable)
    └── F (purchasable bundle, base 500, discount 400)
        ├── A (leaf, 150)
        └── B (leaf, base 200, discount 180)
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.catalog.store import CatalogStore
from marketplace.db_base import Base
from marketplace.entitlements.cache import OwnershipCache
from marketplace.models.base import MediaCategory
from marketplace.models.catalog import Folder, LeafAsset


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def db_engine():
    """In-memory SQLite shared across threads (TestClient runs handlers off-thread)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import models to register with Base
    import marketplace.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def catalog(db_session):
    return CatalogStore(db_session)


@pytest.fixture
def no_cache():
    """Ownership cache with Redis disabled."""
    return OwnershipCache(redis_url="")


@pytest.fixture
def user_id():
    return f"user-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def other_user_id():
    return f"user-b-{uuid.uuid4().hex[:8]}"


@dataclass
class VideoCatalog:
    root: Folder
    bundle: Folder
    leaf_a: LeafAsset
    leaf_b: LeafAsset


@pytest.fixture
def video_catalog(catalog):
    root = catalog.create_folder(media_category=MediaCategory.VIDEO, name="Weddings")
    bundle = catalog.create_folder(
        media_category=MediaCategory.VIDEO,
        name="Haldi Invitations",
        parent_id=root.id,
        is_purchasable=True,
        base_price=Decimal("500"),
        discount_price=Decimal("400"),
    )
    leaf_a = catalog.create_leaf(
        parent_id=bundle.id,
        title="Haldi Invite A",
        base_price=Decimal("150"),
        preview_url="https://cdn.example.com/a/preview.mp4",
        download_url="https://cdn.example.com/a/download.mp4",
    )
    leaf_b = catalog.create_leaf(
        parent_id=bundle.id,
        title="Haldi Invite B",
        base_price=Decimal("200"),
        discount_price=Decimal("180"),
        qr_payload="upi://pay?pa=shop@bank",
    )
    return VideoCatalog(root=root, bundle=bundle, leaf_a=leaf_a, leaf_b=leaf_b)
