import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so every session shares one database
# 2. check_same_thread=False for the stage-lock threading tests
# 3. All models imported before create_all() (see session_fixture)
# 4. Tables dropped after each test so match numbers and stats start clean
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a freshly created schema."""
    from match_scheduler.models.alliance import Alliance, TeamAlliance  # noqa: F401
    from match_scheduler.models.match import Match  # noqa: F401
    from match_scheduler.models.playing_field import PlayingField  # noqa: F401
    from match_scheduler.models.stage import Stage  # noqa: F401
    from match_scheduler.models.team import Team  # noqa: F401
    from match_scheduler.models.team_stats import TeamStats  # noqa: F401
    from match_scheduler.models.tournament import Tournament  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def captured_events():
    """Collect published domain events for the duration of a test."""
    from match_scheduler.services import notifications

    events = []
    unsubscribe = notifications.subscribe(events.append)
    yield events
    unsubscribe()
