"""SQLite-backed index store.

One SQLite file holds the whole index:

- ``metadata`` - format version, analyzer name, corpus aggregates
- ``documents`` - one row per document (title, body, url, term count)
- ``postings`` - one row per (term, document) with frequencies and
  binary-encoded positions

Writes go through a single writer connection in batches. A batch is staged in
memory and applied in one ``BEGIN IMMEDIATE`` transaction, so readers on
their own WAL snapshots see either the whole batch or none of it.
"""

from __future__ import annotations

from array import array
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from pathlib import Path
import sqlite3
import threading
from uuid import uuid4
import weakref

from docsearch.domain.search import DocumentRecord
from docsearch.observability.metrics import BATCH_COMMITS, INDEX_DOC_COUNT
from docsearch.search.analyzers import DEFAULT_ANALYZER, Analyzer, get_analyzer
from docsearch.search.errors import (
    BatchClosed,
    BatchInProgress,
    DocumentNotFound,
    IndexNotFound,
    MalformedInput,
    StorageUnavailable,
)
from docsearch.search.models import Posting, PostingsList
from docsearch.search.sqlite_pragmas import apply_read_pragmas, apply_write_pragmas
from docsearch.search.stats import CorpusStats


logger = logging.getLogger(__name__)

FORMAT_VERSION = "1"

# Stay well below SQLITE_MAX_VARIABLE_NUMBER on old builds.
_MAX_SQL_PARAMS = 500

_SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY,
        value TEXT
    ) WITHOUT ROWID;

    CREATE TABLE IF NOT EXISTS documents (
        doc_id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        body TEXT NOT NULL,
        url TEXT NOT NULL,
        length INTEGER NOT NULL
    ) WITHOUT ROWID;

    CREATE TABLE IF NOT EXISTS postings (
        term TEXT NOT NULL,
        doc_id TEXT NOT NULL,
        tf INTEGER NOT NULL,
        title_tf INTEGER NOT NULL,
        doc_length INTEGER NOT NULL,
        positions_blob BLOB,
        PRIMARY KEY (term, doc_id)
    ) WITHOUT ROWID;

    CREATE INDEX IF NOT EXISTS idx_postings_doc_id ON postings(doc_id);
"""

_DOCUMENT_SELECT = "SELECT doc_id, title, body, url, length FROM documents"


def _chunks(items: Sequence[str], size: int = _MAX_SQL_PARAMS) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _placeholders(count: int) -> str:
    return ",".join("?" * count)


def _row_to_document(row: sqlite3.Row | tuple) -> DocumentRecord:
    doc_id, title, body, url, length = row
    return DocumentRecord(id=doc_id, title=title, body=body, url=url, length=int(length))


def _encode_positions(positions: Iterable[int]) -> bytes:
    return array("I", positions).tobytes()


def _decode_positions(blob: bytes | None) -> array:
    positions = array("I")
    if blob:
        positions.frombytes(blob)
    return positions


def _inspect_path(path: Path) -> tuple[bool, bool]:
    """Return ``(exists, is_file)`` for ``path``; an inaccessible path is a storage failure."""
    try:
        return path.exists(), path.is_file()
    except OSError as exc:
        raise StorageUnavailable(f"Cannot access index path {path}: {exc}") from exc


def _remove_artifact(path: Path) -> None:
    for candidate in (path, path.with_name(path.name + "-wal"), path.with_name(path.name + "-shm")):
        if not candidate.exists():
            continue
        try:
            candidate.unlink()
        except OSError as cleanup_error:
            logger.warning("Failed to remove partial index file %s: %s", candidate, cleanup_error)


class _ThreadConnection:
    """One thread's read connection; closed once the owning thread drops it."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._finalizer = weakref.finalize(self, _close_connection, conn)

    def close(self) -> None:
        self._finalizer()


def _close_connection(conn: sqlite3.Connection) -> None:
    try:
        conn.close()
    except sqlite3.Error as close_error:
        logger.debug("Failed to close read connection: %s", close_error)


class SQLiteConnectionPool:
    """Thread-safe pool handing out one read connection per thread.

    A connection lives only on its thread's ``threading.local`` slot, so it
    is closed when that thread finishes; ``close_all`` closes the rest.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._local = threading.local()
        self._lock = threading.Lock()
        self._live: weakref.WeakSet[_ThreadConnection] = weakref.WeakSet()
        self._closed = False

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get the calling thread's connection, creating it on first use."""
        holder = getattr(self._local, "holder", None)
        if holder is None:
            holder = self._create_connection()
            self._local.holder = holder
        yield holder.conn

    @property
    def open_connections(self) -> int:
        return len(self._live)

    def _create_connection(self) -> _ThreadConnection:
        with self._lock:
            if self._closed:
                raise StorageUnavailable(f"Index at {self.db_path} is closed")
            try:
                conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
                apply_read_pragmas(conn)
            except sqlite3.Error as exc:
                raise StorageUnavailable(f"Cannot open read connection to {self.db_path}: {exc}") from exc
            holder = _ThreadConnection(conn)
            self._live.add(holder)
            return holder

    def close_all(self) -> None:
        """Close every connection handed out by this pool."""
        with self._lock:
            self._closed = True
            holders = list(self._live)
            self._live.clear()
        for holder in holders:
            holder.close()
        self._local = threading.local()


class IndexSnapshot:
    """Read view bound to a single SQLite read transaction."""

    def __init__(self, conn: sqlite3.Connection, analyzer_name: str) -> None:
        self._conn = conn
        self.analyzer_name = analyzer_name

    def get_postings(self, term: str) -> PostingsList:
        """Return the postings for ``term``; empty when the term was never indexed."""
        if not term:
            return PostingsList.empty(term)
        cursor = self._execute(
            "SELECT doc_id, tf, title_tf, doc_length, positions_blob FROM postings WHERE term = ?",
            (term,),
        )
        postings = [
            Posting(
                doc_id=doc_id,
                frequency=int(tf),
                positions=_decode_positions(blob),
                title_frequency=int(title_tf),
                doc_length=int(doc_length),
            )
            for doc_id, tf, title_tf, doc_length, blob in cursor
        ]
        return PostingsList.from_postings(term, postings)

    def find_document(self, doc_id: str) -> DocumentRecord | None:
        row = self._execute(f"{_DOCUMENT_SELECT} WHERE doc_id = ?", (doc_id,)).fetchone()
        return _row_to_document(row) if row else None

    def get_document(self, doc_id: str) -> DocumentRecord:
        record = self.find_document(doc_id)
        if record is None:
            raise DocumentNotFound(doc_id)
        return record

    def get_documents(self, doc_ids: Sequence[str]) -> dict[str, DocumentRecord]:
        """Fetch several documents at once; unknown ids are simply absent."""
        records: dict[str, DocumentRecord] = {}
        unique_ids = list(dict.fromkeys(doc_ids))
        for chunk in _chunks(unique_ids):
            cursor = self._execute(f"{_DOCUMENT_SELECT} WHERE doc_id IN ({_placeholders(len(chunk))})", chunk)
            for row in cursor:
                record = _row_to_document(row)
                records[record.id] = record
        return records

    def corpus_stats(self) -> CorpusStats:
        rows = self._execute(
            "SELECT key, value FROM metadata WHERE key IN ('doc_count', 'total_terms')",
        ).fetchall()
        values = dict(rows)
        return CorpusStats(
            document_count=int(values.get("doc_count") or 0),
            total_terms=int(values.get("total_terms") or 0),
        )

    def document_count(self) -> int:
        return self.corpus_stats().document_count

    def average_document_length(self) -> float:
        return self.corpus_stats().average_length

    def _execute(self, sql: str, params: Sequence[object] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Index read failed: {exc}") from exc


class BatchHandle:
    """Write buffer for one batch. Nothing staged here is visible until commit."""

    def __init__(self, *, replace_all: bool = False) -> None:
        self.batch_id = uuid4().hex
        self.replace_all = replace_all
        self._staged: dict[str, tuple[DocumentRecord, tuple[Posting, ...]]] = {}
        self._closed = False

    def __len__(self) -> int:
        return len(self._staged)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def doc_ids(self) -> list[str]:
        return list(self._staged)

    def add(self, record: DocumentRecord, postings: Iterable[tuple[str, Posting]]) -> None:
        """Stage ``record`` with its ``(term, posting)`` pairs.

        Replaces anything already staged under the same document id.
        """
        if self._closed:
            raise BatchClosed(f"Batch {self.batch_id} is already closed")
        staged_postings = tuple(postings)
        for term, posting in staged_postings:
            if posting.doc_id != record.id:
                raise MalformedInput(f"Posting for term '{term}' belongs to {posting.doc_id}, not {record.id}")
        self._staged.pop(record.id, None)
        self._staged[record.id] = (record, staged_postings)

    def items(self) -> Iterator[tuple[DocumentRecord, tuple[Posting, ...]]]:
        return iter(self._staged.values())

    def _close(self) -> None:
        self._closed = True
        self._staged = {}


@dataclass(frozen=True)
class CommitSummary:
    """What a successful commit changed."""

    batch_id: str
    documents_written: int
    documents_replaced: int
    postings_written: int
    document_count: int


class IndexStore:
    """Persistent inverted index stored in a single SQLite file."""

    def __init__(self, path: Path, *, analyzer_name: str) -> None:
        self.path = path
        self.analyzer_name = analyzer_name
        self._analyzer = get_analyzer(analyzer_name)
        self._pool = SQLiteConnectionPool(path)
        self._writer: sqlite3.Connection | None = None
        self._writer_lock = threading.Lock()
        self._active_batch: BatchHandle | None = None
        self._write_slot = threading.Lock()

    # --- lifecycle -------------------------------------------------------

    @classmethod
    def open(cls, path: str | Path) -> IndexStore:
        """Open an existing index.

        Raises:
            IndexNotFound: nothing exists at ``path``.
            StorageUnavailable: anything else prevents using the artifact.
        """
        db_path = Path(path)
        exists, is_file = _inspect_path(db_path)
        if not exists:
            raise IndexNotFound(db_path)
        if not is_file:
            raise StorageUnavailable(f"Index path is not a file: {db_path}")

        conn = None
        try:
            conn = sqlite3.connect(db_path)
            metadata = dict(conn.execute("SELECT key, value FROM metadata").fetchall())
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Cannot read index at {db_path}: {exc}") from exc
        finally:
            if conn is not None:
                try:
                    conn.close()
                except sqlite3.Error as close_error:
                    logger.warning("Failed to close SQLite connection for %s: %s", db_path, close_error)

        version = metadata.get("format_version")
        if version != FORMAT_VERSION:
            raise StorageUnavailable(f"Unsupported index format {version!r} at {db_path}")

        analyzer_name = metadata.get("analyzer") or DEFAULT_ANALYZER
        try:
            store = cls(db_path, analyzer_name=analyzer_name)
        except ValueError as exc:
            raise StorageUnavailable(f"Index at {db_path} uses an unknown analyzer: {exc}") from exc

        logger.info("Opened index %s (docs=%s, analyzer=%s)", db_path, metadata.get("doc_count", "0"), analyzer_name)
        return store

    @classmethod
    def create(cls, path: str | Path, *, analyzer_name: str = DEFAULT_ANALYZER) -> IndexStore:
        """Create a fresh, empty index. Never overwrites an existing artifact."""
        db_path = Path(path)
        get_analyzer(analyzer_name)  # reject unknown analyzers before touching disk
        if _inspect_path(db_path)[0]:
            raise StorageUnavailable(f"Refusing to overwrite existing path {db_path}")

        conn = None
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(db_path, isolation_level=None)
            apply_write_pragmas(conn)
            conn.executescript(_SCHEMA_SQL)
            now = datetime.now(timezone.utc).isoformat()
            conn.execute("BEGIN IMMEDIATE")
            conn.executemany(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                [
                    ("format_version", FORMAT_VERSION),
                    ("analyzer", analyzer_name.lower()),
                    ("created_at", now),
                    ("updated_at", now),
                    ("doc_count", "0"),
                    ("total_terms", "0"),
                ],
            )
            conn.execute("COMMIT")
        except (sqlite3.Error, OSError) as exc:
            if conn is not None:
                conn.close()
                conn = None
            _remove_artifact(db_path)
            raise StorageUnavailable(f"Failed to create index at {db_path}: {exc}") from exc
        finally:
            if conn is not None:
                try:
                    conn.close()
                except sqlite3.Error as close_error:
                    logger.warning("Failed to close SQLite connection for %s: %s", db_path, close_error)

        logger.info("Created empty index %s (analyzer=%s)", db_path, analyzer_name)
        return cls(db_path, analyzer_name=analyzer_name.lower())

    @classmethod
    def open_or_create(cls, path: str | Path, *, analyzer_name: str = DEFAULT_ANALYZER) -> tuple[IndexStore, bool]:
        """Open the index at ``path`` or create it when absent.

        Only a missing artifact leads to creation; a corrupt or unreadable one
        raises ``StorageUnavailable`` instead of being silently replaced.
        """
        try:
            return cls.open(path), False
        except IndexNotFound:
            return cls.create(path, analyzer_name=analyzer_name), True

    def close(self) -> None:
        self._pool.close_all()
        with self._writer_lock:
            if self._writer is not None:
                try:
                    self._writer.close()
                except sqlite3.Error as close_error:
                    logger.warning("Failed to close writer connection for %s: %s", self.path, close_error)
                self._writer = None

    def __enter__(self) -> IndexStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def analyzer(self) -> Analyzer:
        return self._analyzer

    # --- reads -----------------------------------------------------------

    @contextmanager
    def snapshot(self) -> Iterator[IndexSnapshot]:
        """Yield a read view pinned to one committed state of the index."""
        with self._pool.get_connection() as conn:
            if conn.in_transaction:
                # Nested use on the same thread shares the outer snapshot.
                yield IndexSnapshot(conn, self.analyzer_name)
                return
            try:
                conn.execute("BEGIN")
            except sqlite3.Error as exc:
                raise StorageUnavailable(f"Cannot start read transaction on {self.path}: {exc}") from exc
            try:
                yield IndexSnapshot(conn, self.analyzer_name)
            finally:
                try:
                    conn.execute("COMMIT")
                except sqlite3.Error as exc:
                    logger.warning("Failed to end read transaction on %s: %s", self.path, exc)

    def get_postings(self, term: str) -> PostingsList:
        with self.snapshot() as snap:
            return snap.get_postings(term)

    def get_document(self, doc_id: str) -> DocumentRecord:
        with self.snapshot() as snap:
            return snap.get_document(doc_id)

    def find_document(self, doc_id: str) -> DocumentRecord | None:
        with self.snapshot() as snap:
            return snap.find_document(doc_id)

    def corpus_stats(self) -> CorpusStats:
        with self.snapshot() as snap:
            return snap.corpus_stats()

    def document_count(self) -> int:
        return self.corpus_stats().document_count

    def average_document_length(self) -> float:
        return self.corpus_stats().average_length

    # --- writes ----------------------------------------------------------

    def begin_batch(self, *, replace_all: bool = False) -> BatchHandle:
        """Acquire the single writer slot and return an empty batch.

        ``replace_all`` turns the commit into a full rebuild: everything not in
        the batch is dropped in the same transaction.
        """
        if not self._write_slot.acquire(blocking=False):
            raise BatchInProgress(f"Another batch is already open on {self.path}")
        handle = BatchHandle(replace_all=replace_all)
        self._active_batch = handle
        logger.debug("Opened batch %s on %s (replace_all=%s)", handle.batch_id, self.path, replace_all)
        return handle

    def add_to_batch(
        self,
        handle: BatchHandle,
        record: DocumentRecord,
        postings: Iterable[tuple[str, Posting]],
    ) -> None:
        self._check_handle(handle)
        handle.add(record, postings)

    def discard(self, handle: BatchHandle) -> None:
        """Drop a batch without touching the committed index."""
        self._check_handle(handle)
        logger.info("Discarded batch %s (%d staged documents)", handle.batch_id, len(handle))
        BATCH_COMMITS.labels(status="discarded").inc()
        self._release(handle)

    def commit(self, handle: BatchHandle) -> CommitSummary:
        """Apply the whole batch atomically, or nothing on failure."""
        self._check_handle(handle)
        try:
            with self._writer_lock:
                conn = self._writer_connection()
                conn.execute("BEGIN IMMEDIATE")
                try:
                    summary = self._apply_batch(conn, handle)
                    conn.execute("COMMIT")
                except BaseException:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
                try:
                    conn.execute("PRAGMA wal_checkpoint(PASSIVE)")
                except sqlite3.Error as checkpoint_error:
                    logger.debug("WAL checkpoint skipped for %s: %s", self.path, checkpoint_error)
        except sqlite3.Error as exc:
            BATCH_COMMITS.labels(status="failed").inc()
            logger.warning("Rolled back batch %s on %s: %s", handle.batch_id, self.path, exc)
            raise StorageUnavailable(f"Failed to commit batch {handle.batch_id}: {exc}") from exc
        finally:
            self._release(handle)

        BATCH_COMMITS.labels(status="committed").inc()
        INDEX_DOC_COUNT.labels(index=self.path.name).set(summary.document_count)
        logger.info(
            "Committed batch %s: %d documents (%d replaced), %d postings, %d documents total",
            summary.batch_id,
            summary.documents_written,
            summary.documents_replaced,
            summary.postings_written,
            summary.document_count,
        )
        return summary

    # --- internal helpers ------------------------------------------------

    def _writer_connection(self) -> sqlite3.Connection:
        if self._writer is None:
            conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
            apply_write_pragmas(conn)
            self._writer = conn
        return self._writer

    def _check_handle(self, handle: BatchHandle) -> None:
        if handle.closed:
            raise BatchClosed(f"Batch {handle.batch_id} is already closed")
        if handle is not self._active_batch:
            raise BatchClosed(f"Batch {handle.batch_id} does not belong to {self.path}")

    def _release(self, handle: BatchHandle) -> None:
        handle._close()
        if self._active_batch is handle:
            self._active_batch = None
            self._write_slot.release()

    def _apply_batch(self, conn: sqlite3.Connection, handle: BatchHandle) -> CommitSummary:
        doc_ids = handle.doc_ids

        existing: set[str] = set()
        for chunk in _chunks(doc_ids):
            cursor = conn.execute(f"SELECT doc_id FROM documents WHERE doc_id IN ({_placeholders(len(chunk))})", chunk)
            existing.update(row[0] for row in cursor)

        if handle.replace_all:
            conn.execute("DELETE FROM postings")
            conn.execute("DELETE FROM documents")
        else:
            for chunk in _chunks(sorted(existing)):
                marks = _placeholders(len(chunk))
                conn.execute(f"DELETE FROM postings WHERE doc_id IN ({marks})", chunk)
                conn.execute(f"DELETE FROM documents WHERE doc_id IN ({marks})", chunk)

        documents_data = []
        postings_data = []
        for record, postings in handle.items():
            documents_data.append((record.id, record.title, record.body, record.url, record.length))
            postings_data.extend(
                (
                    term,
                    posting.doc_id,
                    posting.frequency,
                    posting.title_frequency,
                    posting.doc_length,
                    _encode_positions(posting.positions),
                )
                for term, posting in postings
            )

        if documents_data:
            conn.executemany(
                "INSERT INTO documents (doc_id, title, body, url, length) VALUES (?, ?, ?, ?, ?)",
                documents_data,
            )
        if postings_data:
            conn.executemany(
                "INSERT INTO postings (term, doc_id, tf, title_tf, doc_length, positions_blob) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                postings_data,
            )

        doc_count, total_terms = conn.execute("SELECT COUNT(*), COALESCE(SUM(length), 0) FROM documents").fetchone()
        conn.executemany(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
            [
                ("doc_count", str(int(doc_count))),
                ("total_terms", str(int(total_terms))),
                ("updated_at", datetime.now(timezone.utc).isoformat()),
                ("last_batch_id", handle.batch_id),
            ],
        )
        return CommitSummary(
            batch_id=handle.batch_id,
            documents_written=len(documents_data),
            documents_replaced=len(existing),
            postings_written=len(postings_data),
            document_count=int(doc_count),
        )
