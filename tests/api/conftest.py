"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from consultflow.core.auth import AuthenticatedOwner


@pytest.fixture
def api_client(engine, test_db_url):
    """FastAPI test client with test database.

    Initializes the global database via init_db inside the TestClient's
    own event loop so route handlers can use get_session_factory().
    The engine fixture ensures tables exist before this runs.
    """
    from fastapi import HTTPException
    from fastapi.middleware.cors import CORSMiddleware

    from consultflow.api.deps import get_search_debouncer
    from consultflow.api.routes import api_router
    from consultflow.core.config import get_settings
    from consultflow.core.exceptions import AnswerValidationError, InvariantViolationError, MergeConflictError
    from consultflow.db import close_db, init_db
    from consultflow.main import (
        answer_validation_handler,
        generic_exception_handler,
        http_exception_handler,
        invariant_violation_handler,
        merge_conflict_handler,
    )
    from consultflow.services.debounce import LatestOnlyDebouncer

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        """Test lifespan - initialize DB in TestClient's event loop."""
        # Reset global so init_db creates a fresh engine in THIS loop
        import consultflow.db.base as db_mod

        db_mod._engine = None
        db_mod._session_factory = None
        await init_db(test_db_url)
        yield
        await close_db()

    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="ConsultFlow - Test Client",
        version="0.1.0",
        lifespan=test_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers (needed for debug_id testing)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(InvariantViolationError)(invariant_violation_handler)
    app.exception_handler(AnswerValidationError)(answer_validation_handler)
    app.exception_handler(MergeConflictError)(merge_conflict_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    # No debounce window in tests
    app.dependency_overrides[get_search_debouncer] = lambda: LatestOnlyDebouncer(0)

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def owner_a():
    return AuthenticatedOwner(owner_id="owner_a", claims={"sub": "owner_a"})


@pytest.fixture
def owner_b():
    return AuthenticatedOwner(owner_id="owner_b", claims={"sub": "owner_b"})

