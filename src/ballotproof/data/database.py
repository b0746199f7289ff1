import json
import logging
import random
import threading
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import duckdb
import pandas as pd

from ..errors import DuplicateVote, ElectionLocked, ElectionNotFound
from .models import ElectionStatus, ElectionType

logger = logging.getLogger(__name__)

SCHEMA_SQL = [
    "CREATE SEQUENCE IF NOT EXISTS voter_registration_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS candidate_order_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS vote_admission_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS elections (
        id VARCHAR PRIMARY KEY,
        name VARCHAR NOT NULL,
        election_type VARCHAR NOT NULL,
        status VARCHAR NOT NULL,
        merkle_root VARCHAR,
        created_at TIMESTAMP DEFAULT current_timestamp
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS candidates (
        id VARCHAR PRIMARY KEY,
        election_id VARCHAR NOT NULL,
        name VARCHAR NOT NULL,
        description VARCHAR,
        display_order BIGINT DEFAULT nextval('candidate_order_seq'),
        created_at TIMESTAMP DEFAULT current_timestamp
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS eligible_voters (
        id VARCHAR PRIMARY KEY,
        election_id VARCHAR NOT NULL,
        voter_identity_hash VARCHAR NOT NULL,
        identity_commitment VARCHAR,
        registration_seq BIGINT DEFAULT nextval('voter_registration_seq'),
        created_at TIMESTAMP DEFAULT current_timestamp,
        UNIQUE (election_id, voter_identity_hash)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS votes (
        id VARCHAR PRIMARY KEY,
        election_id VARCHAR NOT NULL,
        candidate_id VARCHAR NOT NULL,
        nullifier_hash VARCHAR NOT NULL,
        proof VARCHAR NOT NULL,
        public_signals VARCHAR NOT NULL,
        admission_seq BIGINT DEFAULT nextval('vote_admission_seq'),
        created_at TIMESTAMP DEFAULT current_timestamp,
        UNIQUE (election_id, nullifier_hash)
    )
    """,
]


class DatabaseConnectionManager:
    """
    Opens DuckDB connections with retry on lock conflicts.
    A file can only be held read-write by one process at a time.
    """

    def get_connection(
        self, db_path: str, read_only: bool = False, max_retries: int = 3
    ) -> duckdb.DuckDBPyConnection:
        """
        Get a database connection with retry logic.

        Args:
            db_path: Path to DuckDB file, or ":memory:"
            read_only: Whether to open in read-only mode
            max_retries: Maximum number of connection attempts

        Returns:
            DuckDB connection
        """
        for attempt in range(max_retries):
            try:
                if read_only and db_path != ":memory:" and Path(db_path).exists():
                    conn = duckdb.connect(db_path, read_only=True)
                    logger.debug(f"Opened read-only connection to {db_path}")
                else:
                    conn = duckdb.connect(db_path)
                    logger.debug(f"Opened read-write connection to {db_path}")

                return conn

            except duckdb.IOException as e:
                if "Conflicting lock" in str(e) and attempt < max_retries - 1:
                    # Exponential backoff with jitter
                    wait_time = (2**attempt) + random.uniform(0, 1)  # nosec B311
                    logger.warning(
                        f"Database locked, retrying in {wait_time:.2f}s (attempt {attempt + 1}/{max_retries})"
                    )
                    time.sleep(wait_time)
                    continue
                else:
                    logger.error(
                        f"Failed to connect to database after {max_retries} attempts: {e}"
                    )
                    raise

        raise Exception(
            f"Could not establish database connection after {max_retries} attempts"
        )


# Global connection manager instance
_connection_manager = DatabaseConnectionManager()


class ElectionDatabase:
    """
    Canonical per-election state: elections, candidates, eligible voters and
    admitted votes.

    A single DuckDB connection is shared by all threads and guarded by a
    reentrant lock. Per-election locks serialize registration, snapshots and
    status changes for the same election.
    """

    def __init__(self, db_path: Optional[str] = None, read_only: bool = False):
        """
        Args:
            db_path: Path to DuckDB file. If None, uses in-memory database.
            read_only: Open read-only (audit tooling); the schema is not created
        """
        self.db_path = db_path or ":memory:"
        self.read_only = read_only
        self._conn = None  # Will be created on-demand
        self._lock = threading.RLock()
        self._election_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._election_locks_guard = threading.Lock()
        self._schema_ready = False

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create a database connection on-demand."""
        if self._conn is None:
            with self._lock:
                if self._conn is None:
                    self._conn = _connection_manager.get_connection(
                        self.db_path, self.read_only
                    )
                    if not self.read_only:
                        self.initialize_schema()
        return self._conn

    def initialize_schema(self):
        """Create sequences and tables if they do not exist."""
        with self._lock:
            if self._schema_ready:
                return
            for statement in SCHEMA_SQL:
                self._conn.execute(statement)
            self._schema_ready = True
            logger.info(f"Schema ready in {self.db_path}")

    def election_lock(self, election_id: str) -> threading.Lock:
        """Lock serializing state changes for one election."""
        with self._election_locks_guard:
            return self._election_locks[election_id]

    def discard_election_lock(self, election_id: str):
        """Drop the lock of an election that accepts no further state changes."""
        with self._election_locks_guard:
            self._election_locks.pop(election_id, None)

    @contextmanager
    def transaction(self):
        """Run a block in one DuckDB transaction, rolling back on error."""
        with self._lock:
            conn = self.conn
            conn.begin()
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            else:
                conn.commit()

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None):
        with self._lock:
            return self.conn.execute(sql, params or []).fetchall()

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> pd.DataFrame:
        """
        Execute a SQL query and return results as DataFrame.
        """
        with self._lock:
            return self.conn.execute(sql, params or []).fetchdf()

    def _fetch_one(self, sql: str, params: Sequence[Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            cursor = self.conn.execute(sql, list(params))
            row = cursor.fetchone()
            if row is None:
                return None
            columns = [d[0] for d in cursor.description]
        return dict(zip(columns, row))

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists in the database."""
        result = self.execute(
            "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?",
            [table_name],
        )
        return result[0][0] > 0

    # --- elections ---------------------------------------------------------

    def create_election(
        self,
        name: str,
        election_type: ElectionType,
        status: ElectionStatus = ElectionStatus.DRAFT,
        election_id: Optional[str] = None,
    ) -> str:
        election_id = election_id or str(uuid.uuid4())
        self.execute(
            "INSERT INTO elections (id, name, election_type, status) VALUES (?, ?, ?, ?)",
            [
                election_id,
                name,
                ElectionType(election_type).value,
                ElectionStatus(status).value,
            ],
        )
        logger.info(f"Created election {election_id} ({ElectionType(election_type).value})")
        return election_id

    def get_election(self, election_id: str) -> Optional[Dict[str, Any]]:
        row = self._fetch_one(
            """
            SELECT id, name, election_type, status, merkle_root, created_at
            FROM elections WHERE id = ?
            """,
            [election_id],
        )
        if row is not None:
            row["election_type"] = ElectionType(row["election_type"])
            row["status"] = ElectionStatus(row["status"])
        return row

    def require_election(self, election_id: str) -> Dict[str, Any]:
        election = self.get_election(election_id)
        if election is None:
            raise ElectionNotFound()
        return election

    def _require_modifiable(self, election_id: str) -> Dict[str, Any]:
        election = self.require_election(election_id)
        if election["status"].is_locked:
            raise ElectionLocked()
        return election

    def set_status(self, election_id: str, status: ElectionStatus):
        self.execute(
            "UPDATE elections SET status = ? WHERE id = ?",
            [ElectionStatus(status).value, election_id],
        )

    def set_merkle_root(self, election_id: str, root: str):
        self.execute(
            "UPDATE elections SET merkle_root = ? WHERE id = ?", [root, election_id]
        )

    # --- candidates --------------------------------------------------------

    def add_candidate(
        self,
        election_id: str,
        name: str,
        description: Optional[str] = None,
        candidate_id: Optional[str] = None,
    ) -> str:
        candidate_id = candidate_id or str(uuid.uuid4())
        with self.election_lock(election_id):
            self._require_modifiable(election_id)
            self.execute(
                "INSERT INTO candidates (id, election_id, name, description) VALUES (?, ?, ?, ?)",
                [candidate_id, election_id, name, description],
            )
        return candidate_id

    def get_candidate(self, candidate_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT id, election_id, name, description, display_order FROM candidates WHERE id = ?",
            [candidate_id],
        )

    def list_candidates(self, election_id: str) -> pd.DataFrame:
        """Candidates in creation order."""
        return self.query(
            """
            SELECT id AS candidate_id, name, description, display_order
            FROM candidates
            WHERE election_id = ?
            ORDER BY display_order
            """,
            [election_id],
        )

    # --- eligible voters ---------------------------------------------------

    def add_eligible_voters(
        self, election_id: str, voter_identity_hashes: Iterable[str]
    ) -> int:
        """Insert voters in the given order, skipping duplicates. Returns inserted count."""
        inserted = 0
        with self.election_lock(election_id):
            self._require_modifiable(election_id)
            with self.transaction() as conn:
                for voter_hash in voter_identity_hashes:
                    existing = conn.execute(
                        """
                        SELECT COUNT(*) FROM eligible_voters
                        WHERE election_id = ? AND voter_identity_hash = ?
                        """,
                        [election_id, voter_hash],
                    ).fetchone()
                    if existing[0]:
                        continue
                    conn.execute(
                        """
                        INSERT INTO eligible_voters (id, election_id, voter_identity_hash)
                        VALUES (?, ?, ?)
                        """,
                        [str(uuid.uuid4()), election_id, voter_hash],
                    )
                    inserted += 1
        logger.info(f"Added {inserted} eligible voters to election {election_id}")
        return inserted

    def find_voter(
        self, election_id: str, voter_identity_hash: str
    ) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            """
            SELECT id, election_id, voter_identity_hash, identity_commitment,
                   registration_seq, created_at
            FROM eligible_voters
            WHERE election_id = ? AND voter_identity_hash = ?
            """,
            [election_id, voter_identity_hash],
        )

    def commitment_exists(self, election_id: str, commitment: str) -> bool:
        result = self.execute(
            "SELECT COUNT(*) FROM eligible_voters WHERE election_id = ? AND identity_commitment = ?",
            [election_id, commitment],
        )
        return result[0][0] > 0

    def set_identity_commitment(self, voter_id: str, commitment: str) -> bool:
        """
        Conditional write: set the commitment only if none is stored yet.
        Returns False when another writer got there first.
        """
        rows = self.execute(
            """
            UPDATE eligible_voters
            SET identity_commitment = ?
            WHERE id = ? AND identity_commitment IS NULL
            RETURNING id
            """,
            [commitment, voter_id],
        )
        return len(rows) == 1

    def get_leaves(self, election_id: str) -> List[str]:
        """Registered commitments in registration order, the tree's leaf order."""
        rows = self.execute(
            """
            SELECT identity_commitment
            FROM eligible_voters
            WHERE election_id = ? AND identity_commitment IS NOT NULL
            ORDER BY registration_seq
            """,
            [election_id],
        )
        return [row[0] for row in rows]

    def count_eligible_voters(self, election_id: str) -> int:
        result = self.execute(
            "SELECT COUNT(*) FROM eligible_voters WHERE election_id = ?", [election_id]
        )
        return int(result[0][0])

    # --- votes -------------------------------------------------------------

    def insert_vote(
        self,
        election_id: str,
        candidate_id: str,
        nullifier_hash: str,
        proof: Dict[str, Any],
        public_signals: Sequence[str],
    ) -> Dict[str, Any]:
        """
        Persist an admitted vote. The (election_id, nullifier_hash) unique
        constraint makes check-and-insert a single atomic operation.
        """
        vote_id = str(uuid.uuid4())
        try:
            rows = self.execute(
                """
                INSERT INTO votes (id, election_id, candidate_id, nullifier_hash, proof, public_signals)
                VALUES (?, ?, ?, ?, ?, ?)
                RETURNING id, created_at
                """,
                [
                    vote_id,
                    election_id,
                    candidate_id,
                    nullifier_hash,
                    json.dumps(proof, sort_keys=True),
                    json.dumps(list(public_signals)),
                ],
            )
        except duckdb.ConstraintException as e:
            raise DuplicateVote() from e
        return {"id": rows[0][0], "created_at": rows[0][1]}

    def find_vote_by_nullifier(
        self, election_id: str, nullifier_hash: str
    ) -> Optional[Dict[str, Any]]:
        """Existence lookup. Deliberately does not select candidate_id."""
        return self._fetch_one(
            """
            SELECT id, nullifier_hash, created_at
            FROM votes
            WHERE election_id = ? AND nullifier_hash = ?
            """,
            [election_id, nullifier_hash],
        )

    def get_vote_candidates(self, election_id: str) -> pd.DataFrame:
        return self.query(
            "SELECT candidate_id FROM votes WHERE election_id = ?", [election_id]
        )

    def get_audit_records(self, election_id: str) -> pd.DataFrame:
        return self.query(
            """
            SELECT id, nullifier_hash, proof, public_signals, created_at
            FROM votes
            WHERE election_id = ?
            ORDER BY admission_seq
            """,
            [election_id],
        )

    def close(self):
        """Close database connection."""
        if self._conn:
            try:
                self._conn.close()
                logger.debug(f"Closed database connection to {self.db_path}")
            except Exception as e:
                logger.warning(f"Error closing database connection: {e}")
            finally:
                self._conn = None
                self._schema_ready = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
