from sqlmodel import SQLModel, create_engine, Session

from jbbly import crud
from jbbly.models import LeaderboardEntry
from jbbly.store import InMemoryLeaderboardStore, SqlLeaderboardStore


def setup_db(tmp_path):
    db = tmp_path / 'store.db'
    engine = create_engine(f'sqlite:///{db}', connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    crud.engine = engine
    return engine


def test_in_memory_store_is_seeded_and_ranked():
    store = InMemoryLeaderboardStore()
    board = store.query("2025-08-30")
    assert [(e.name, e.seconds) for e in board] == [("Alice", 42.1), ("Bob", 55.4)]

    store.insert(LeaderboardEntry(name="ann", seconds=12.3, date="2025-08-30"))
    assert [e.name for e in store.query("2025-08-30")] == ["ann", "Alice", "Bob"]
    # other days keep their own board
    assert len(store.query("2025-08-31")) == 2


def test_in_memory_store_keeps_top_ten():
    store = InMemoryLeaderboardStore(defaults=())
    for i in range(12):
        store.insert(LeaderboardEntry(name=f"p{i}", seconds=float(100 - i), date="d"))
    board = store.query("d", limit=50)
    assert len(board) == 10
    assert board[0].name == "p11"
    assert board[-1].seconds == 98.0


def test_subscribers_hear_inserts_until_unsubscribed():
    store = InMemoryLeaderboardStore(defaults=())
    heard = []
    unsubscribe = store.subscribe(lambda e: heard.append(e.name))
    store.insert(LeaderboardEntry(name="ann", seconds=1.0, date="d"))
    unsubscribe()
    unsubscribe()
    store.insert(LeaderboardEntry(name="bob", seconds=2.0, date="d"))
    assert heard == ["ann"]


def test_failing_listener_does_not_break_insert():
    store = InMemoryLeaderboardStore(defaults=())
    heard = []

    def boom(entry):
        raise RuntimeError("listener bug")

    store.subscribe(boom)
    store.subscribe(lambda e: heard.append(e.name))
    stored = store.insert(LeaderboardEntry(name="ann", seconds=1.0, date="d"))
    assert stored.created_at is not None
    assert heard == ["ann"]


def test_sql_store_insert_query_and_placement(tmp_path):
    engine = setup_db(tmp_path)
    store = SqlLeaderboardStore(engine)
    heard = []
    store.subscribe(lambda e: heard.append((e.name, e.seconds)))

    store.insert(LeaderboardEntry(name="bob", seconds=40.0, date="2025-09-09"))
    store.insert(LeaderboardEntry(name="ann", seconds=25.5, date="2025-09-09"))
    store.insert(LeaderboardEntry(name="cat", seconds=10.0, date="2025-09-10"))

    leaders = store.query("2025-09-09", limit=10)
    assert [(e.name, e.seconds) for e in leaders] == [("ann", 25.5), ("bob", 40.0)]
    assert heard == [("bob", 40.0), ("ann", 25.5), ("cat", 10.0)]
    assert store.placement("2025-09-09", 30.0) == 2
    assert store.placement("2025-09-09", 1.0) == 1

    with Session(engine) as s:
        assert len(crud.get_leaderboard(s, "2025-09-09", limit=None)) == 2
        assert len(crud.get_leaderboard(s, "2025-09-09", limit=1)) == 1


def test_sql_store_query_cache_invalidated_on_insert(tmp_path):
    engine = setup_db(tmp_path)
    store = SqlLeaderboardStore(engine)
    assert store.query("2025-09-09") == []
    store.insert(LeaderboardEntry(name="ann", seconds=25.5, date="2025-09-09"))
    assert [e.name for e in store.query("2025-09-09")] == ["ann"]


def test_sql_store_uses_module_engine_by_default(tmp_path):
    setup_db(tmp_path)
    store = SqlLeaderboardStore()
    store.insert(LeaderboardEntry(name="dee", seconds=3.0, date="2025-09-09"))
    assert [e.name for e in store.query("2025-09-09")] == ["dee"]
