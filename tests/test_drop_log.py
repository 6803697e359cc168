import sqlite3

from analysis.config import ColumnConfig
from analysis.drop_log import DropRecorder, NoOpDropLogger, SqliteDropLogger
from analysis.sankey_flow import build_sankey

CONFIG = ColumnConfig(source="from", target="to", value="qty")

ROWS = [
    {"from": "A", "to": "B", "qty": 4},
    {"from": "B", "to": "A", "qty": 1},
    {"from": "A", "to": "A", "qty": 2},
    {"from": "A", "to": "", "qty": 2},
    {"from": "A", "to": "C", "qty": "n/a"},
]


def test_recorder_counts_by_reason():
    recorder = DropRecorder()
    build_sankey(ROWS, CONFIG, recorder=recorder)
    assert recorder.summary() == {
        "empty_endpoint": 1,
        "bad_value": 1,
        "self_loop": 1,
        "cycle": 1,
    }
    assert [entry.row_index for entry in recorder.entries[:3]] == [2, 3, 4]


def test_sqlite_logger_persists_drops(tmp_path):
    db_path = tmp_path / "audit" / "drops.sqlite"
    drop_logger = SqliteDropLogger(db_path, batch_size=2)
    build_sankey(ROWS, CONFIG, recorder=drop_logger)
    drop_logger.close()

    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute("SELECT stage, reason, source, target FROM drops ORDER BY id").fetchall()
    finally:
        conn.close()
    assert rows[0] == ("aggregate", "self_loop", "A", "A")
    assert rows[-1] == ("cycle", "cycle", "B", "A")
    assert len(rows) == 4
    assert drop_logger.summary()["cycle"] == 1


def test_noop_logger_discards_everything():
    drop_logger = NoOpDropLogger()
    graph = build_sankey(ROWS, CONFIG, recorder=drop_logger)
    assert drop_logger.summary() == {}
    assert len(graph.links) == 1
    drop_logger.close()


def test_sqlite_logger_keeps_only_counts_in_memory(tmp_path):
    drop_logger = SqliteDropLogger(tmp_path / "drops.sqlite")
    for index in range(50):
        drop_logger.log("aggregate", "bad_value", "A", "B", "x", index)
    drop_logger.close()

    assert not hasattr(drop_logger, "entries")
    assert drop_logger.summary() == {"bad_value": 50}
