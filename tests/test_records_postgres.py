from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from keyword_matrix.io import records_postgres as records_module
from keyword_matrix.io.records_postgres import (
    build_import_payload,
    create_record,
    delete_record,
    delete_records,
    ensure_records_schema,
    get_record,
    import_keyword_csv_to_postgres,
    list_data_sources,
    load_records_from_postgres,
    update_record,
    update_records,
)

IMPORT_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class _FakeSQLText(str):
    def format(self, *args: object, **kwargs: object) -> "_FakeSQLText":
        text = str(self)
        for value in args:
            text = text.replace("{}", str(value), 1)
        for key, value in kwargs.items():
            text = text.replace("{" + key + "}", str(value))
        return _FakeSQLText(text)


class _FakeSQLModule:
    @staticmethod
    def SQL(text: str) -> _FakeSQLText:
        return _FakeSQLText(text)

    @staticmethod
    def Identifier(name: str) -> str:
        return f'"{name}"'


class _FakeCursor:
    def __init__(
        self,
        fetchall_batches: list[list[tuple[Any, ...]]] | None = None,
        rowcounts: list[int] | None = None,
    ) -> None:
        self.executed: list[tuple[str, object | None]] = []
        self.executemany_calls: list[tuple[str, list[dict[str, object | None]]]] = []
        self._fetchall_batches = list(fetchall_batches or [])
        self._rowcounts = list(rowcounts or [])
        self.rowcount = -1

    def execute(self, query: object, params: object | None = None) -> None:
        self.executed.append((str(query), params))
        self.rowcount = self._rowcounts.pop(0) if self._rowcounts else -1

    def executemany(self, query: object, payload: list[dict[str, object | None]]) -> None:
        self.executemany_calls.append((str(query), payload))

    def fetchall(self) -> list[tuple[Any, ...]]:
        if not self._fetchall_batches:
            return []
        return self._fetchall_batches.pop(0)

    def fetchone(self) -> tuple[Any, ...] | None:
        if not self._fetchall_batches:
            return None
        batch = self._fetchall_batches.pop(0)
        if not batch:
            return None
        return batch[0]

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> bool:
        return False


class _FakeConnection:
    def __init__(self, cursor: _FakeCursor) -> None:
        self._cursor = cursor
        self.commit_count = 0

    def cursor(self) -> _FakeCursor:
        return self._cursor

    def commit(self) -> None:
        self.commit_count += 1

    def __enter__(self) -> "_FakeConnection":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> bool:
        return False


class _FakePsycopg:
    def __init__(self, connection: _FakeConnection) -> None:
        self._connection = connection
        self.connect_calls: list[str] = []

    def connect(self, db_url: str) -> _FakeConnection:
        self.connect_calls.append(db_url)
        return self._connection


def _fake_psycopg_bundle(
    *,
    fetchall_batches: list[list[tuple[Any, ...]]] | None = None,
    rowcounts: list[int] | None = None,
) -> tuple[_FakePsycopg, _FakeSQLModule, _FakeConnection, _FakeCursor]:
    cursor = _FakeCursor(fetchall_batches=fetchall_batches, rowcounts=rowcounts)
    conn = _FakeConnection(cursor=cursor)
    psycopg = _FakePsycopg(connection=conn)
    return psycopg, _FakeSQLModule(), conn, cursor


def _install(monkeypatch, psycopg: _FakePsycopg, sql_module: _FakeSQLModule) -> None:
    monkeypatch.setattr(records_module, "_load_psycopg", lambda: (psycopg, sql_module))


def test_ensure_records_schema_creates_table_and_indexes(monkeypatch) -> None:
    psycopg, sql_module, conn, cursor = _fake_psycopg_bundle()
    _install(monkeypatch, psycopg, sql_module)

    ensure_records_schema(conn, table_name="keyword_records")

    statement = cursor.executed[0][0]
    assert 'CREATE TABLE IF NOT EXISTS "keyword_records"' in statement
    assert "data JSONB NOT NULL" in statement
    assert '"keyword_records_created_at_idx"' in statement


def test_build_import_payload_stamps_source_and_creation_time() -> None:
    chunk = pd.DataFrame(
        [
            {" Keyword ": " seo tips ", "KD": "10", "SV": ""},
            {" Keyword ": "", "KD": "", "SV": ""},
        ]
    )

    payload = build_import_payload(chunk, data_source="Semrush Jan", created_at=IMPORT_TIME)

    assert len(payload) == 1
    row = payload[0]
    assert row["data_source"] == "Semrush Jan"
    assert row["created_at"] == IMPORT_TIME
    assert json.loads(str(row["data"])) == {
        "Keyword": "seo tips",
        "KD": "10",
        "createdAt": "2024-01-01T12:00:00+00:00",
        "dataSource": "Semrush Jan",
    }


def test_import_keyword_csv_inserts_chunks_and_counts_blank_rows(
    monkeypatch, tmp_path: Path
) -> None:
    csv_path = tmp_path / "semrush.csv"
    csv_path.write_text(
        "Keyword,KD,SV,Intent\n"
        "seo tips,10,500,Informational\n"
        ",,,\n"
        "buy shoes,55,2000,Transactional\n",
        encoding="utf-8",
    )
    psycopg, sql_module, conn, cursor = _fake_psycopg_bundle()
    _install(monkeypatch, psycopg, sql_module)

    result = import_keyword_csv_to_postgres(
        csv_path=csv_path,
        db_url="postgresql://localhost/keywords",
        data_source=" Semrush ",
        table_name="keyword_records",
        chunk_size=2,
        created_at=IMPORT_TIME,
    )

    assert psycopg.connect_calls == ["postgresql://localhost/keywords"]
    assert result.source_file == "semrush.csv"
    assert result.data_source == "Semrush"
    assert result.rows_processed == 3
    assert result.rows_imported == 2
    assert result.rows_blank == 1
    assert result.created_at == "2024-01-01T12:00:00+00:00"
    assert len(cursor.executemany_calls) == 2
    inserted = [row for _query, payload in cursor.executemany_calls for row in payload]
    assert {json.loads(str(row["data"]))["Keyword"] for row in inserted} == {
        "seo tips",
        "buy shoes",
    }
    assert conn.commit_count == 3


def test_import_keyword_csv_rejects_missing_source_and_empty_files(
    monkeypatch, tmp_path: Path
) -> None:
    psycopg, sql_module, _conn, _cursor = _fake_psycopg_bundle()
    _install(monkeypatch, psycopg, sql_module)
    csv_path = tmp_path / "semrush.csv"
    csv_path.write_text("Keyword,KD\nseo,1\n", encoding="utf-8")
    empty_path = tmp_path / "empty.csv"
    empty_path.write_text("", encoding="utf-8")

    with pytest.raises(ValueError, match="Data source is required"):
        import_keyword_csv_to_postgres(csv_path, "postgresql://localhost/db", data_source="  ")
    with pytest.raises(ValueError, match="chunk_size"):
        import_keyword_csv_to_postgres(
            csv_path, "postgresql://localhost/db", data_source="A", chunk_size=0
        )
    with pytest.raises(ValueError, match="empty"):
        import_keyword_csv_to_postgres(empty_path, "postgresql://localhost/db", data_source="A")


def test_load_records_from_postgres_returns_documents_newest_first(monkeypatch) -> None:
    rows = [
        (
            "b2",
            {"keyword": "seo tips", "createdAt": "2024-02-01T00:00:00+00:00"},
            datetime(2024, 2, 1, tzinfo=timezone.utc),
        ),
        ("a1", json.dumps({"keyword": "buy shoes"}), datetime(2024, 1, 1, tzinfo=timezone.utc)),
    ]
    psycopg, sql_module, _conn, cursor = _fake_psycopg_bundle(fetchall_batches=[rows])
    _install(monkeypatch, psycopg, sql_module)

    records = load_records_from_postgres("postgresql://localhost/db", table_name="kw")

    assert "ORDER BY created_at DESC" in cursor.executed[0][0]
    assert records == [
        {"id": "b2", "keyword": "seo tips", "createdAt": "2024-02-01T00:00:00+00:00"},
        {"id": "a1", "keyword": "buy shoes", "createdAt": "2024-01-01T00:00:00+00:00"},
    ]


def test_get_record_returns_none_when_missing(monkeypatch) -> None:
    psycopg, sql_module, _conn, cursor = _fake_psycopg_bundle(
        fetchall_batches=[[("a1", {"keyword": "seo"}, IMPORT_TIME)], []]
    )
    _install(monkeypatch, psycopg, sql_module)

    assert get_record("postgresql://localhost/db", "a1") == {
        "id": "a1",
        "keyword": "seo",
        "createdAt": "2024-01-01T12:00:00+00:00",
    }
    assert get_record("postgresql://localhost/db", "zz") is None
    assert cursor.executed[1][1] == ("zz",)


def test_create_record_strips_protected_fields(monkeypatch) -> None:
    psycopg, sql_module, conn, cursor = _fake_psycopg_bundle()
    _install(monkeypatch, psycopg, sql_module)
    monkeypatch.setattr(records_module, "_new_record_id", lambda: "fixed-id")

    record_id = create_record(
        "postgresql://localhost/db",
        {"id": "client", "keyword": "seo", "dataSource": " Manual ", "updatedAt": "x"},
        created_at=IMPORT_TIME,
    )

    assert record_id == "fixed-id"
    _query, payload = cursor.executemany_calls[0]
    assert payload[0]["data_source"] == "Manual"
    assert json.loads(str(payload[0]["data"])) == {
        "keyword": "seo",
        "dataSource": " Manual ",
        "createdAt": "2024-01-01T12:00:00+00:00",
    }
    assert conn.commit_count == 1


def test_update_records_merges_patch_and_counts_existing_rows(monkeypatch) -> None:
    psycopg, sql_module, conn, cursor = _fake_psycopg_bundle(rowcounts=[1, 0, 1])
    _install(monkeypatch, psycopg, sql_module)

    updated = update_records(
        "postgresql://localhost/db",
        ["a1", "missing", "b2"],
        {"websiteName": "Site A", "createdAt": "ignored"},
        updated_at=IMPORT_TIME,
    )

    assert updated == 2
    query, params = cursor.executed[0]
    assert "SET data = data || %s::jsonb" in query
    assert json.loads(params[0]) == {
        "websiteName": "Site A",
        "updatedAt": "2024-01-01T12:00:00+00:00",
    }
    assert params[2] == "a1"
    assert conn.commit_count == 1


def test_single_record_update_and_delete_report_existence(monkeypatch) -> None:
    psycopg, sql_module, _conn, cursor = _fake_psycopg_bundle(rowcounts=[1, 0, 1, 1, 0])
    _install(monkeypatch, psycopg, sql_module)

    assert update_record("postgresql://localhost/db", "a1", {"websiteName": "A"}) is True
    assert update_record("postgresql://localhost/db", "zz", {"websiteName": "A"}) is False
    assert delete_records("postgresql://localhost/db", ["a1", "b2"]) == 2
    assert delete_record("postgresql://localhost/db", "zz") is False
    assert cursor.executed[-1][0].startswith('DELETE FROM "keyword_records"')


def test_list_data_sources(monkeypatch) -> None:
    psycopg, sql_module, _conn, _cursor = _fake_psycopg_bundle(
        fetchall_batches=[[("Ahrefs",), ("Semrush",)]]
    )
    _install(monkeypatch, psycopg, sql_module)

    assert list_data_sources("postgresql://localhost/db") == ["Ahrefs", "Semrush"]
