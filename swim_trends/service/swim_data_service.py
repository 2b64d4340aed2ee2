import datetime as dt
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import duckdb
import pandas as pd
from loguru import logger

from swim_trends.service.swim_analysis.common.constants import Columns
from swim_trends.service.swim_analysis.common.data_models import FitBatch
from swim_trends.service.swim_analysis.common.db_utils import execute_query, insert_frame, transaction
from swim_trends.service.swim_analysis.segmentation.session_table import laps_to_frame, sessions_to_frame


class SwimDataService:
    """Repository for swim data using DuckDB.

    Stores the laps and sessions read from FIT files and the derived enriched lap
    table, and provides per-session summaries. Re-storing a file replaces its
    previous rows, so ingesting the same files twice leaves the database unchanged.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        """
        Initialize the swim data service.

        Args:
            db_path: DuckDB database file, or ":memory:" for a transient database.
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = duckdb.connect(self.db_path)
        self._setup_database()
        logger.info(f"Initialized SwimDataService with database at {self.db_path}")

    def _setup_database(self) -> None:
        """Create tables and views if they don't exist."""
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS swim_sessions (
                file_id VARCHAR PRIMARY KEY,
                session_date DATE,
                session_number INTEGER,
                start_time TIMESTAMP,
                pool_length DOUBLE,
                pool_length_unit VARCHAR,
                sport VARCHAR,
                sub_sport VARCHAR
            )
        """
        )

        # Recording order is the insertion order, kept in `seq`
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS swim_laps (
                seq BIGINT,
                file_id VARCHAR,
                message_index INTEGER,
                start_time TIMESTAMP,
                total_elapsed_time DOUBLE,
                total_timer_time DOUBLE,
                length_type VARCHAR,
                swim_stroke VARCHAR,
                total_strokes INTEGER,
                avg_speed DOUBLE
            )
        """
        )

        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS enriched_laps (
                session_date DATE,
                session_number INTEGER,
                pool_length DOUBLE,
                total_elapsed_time DOUBLE,
                set_id INTEGER,
                lap_index INTEGER,
                lap_in_set INTEGER,
                pos_within_workout DOUBLE,
                pos_within_set DOUBLE,
                swim_stroke VARCHAR
            )
        """
        )

        self.conn.execute(
            """
            CREATE OR REPLACE VIEW swim_session_summary AS
            SELECT
                s.session_date,
                s.session_number,
                s.file_id,
                s.pool_length,
                COUNT(l.file_id) FILTER (WHERE l.length_type = 'active') AS active_lengths,
                COUNT(l.file_id) FILTER (WHERE l.length_type = 'idle') AS rest_intervals,
                SUM(l.total_elapsed_time) FILTER (WHERE l.length_type = 'active') AS swim_time_s
            FROM swim_sessions s
            LEFT JOIN swim_laps l ON l.file_id = s.file_id
            GROUP BY s.session_date, s.session_number, s.file_id, s.pool_length
        """
        )

    def store_batch(self, batch: FitBatch) -> int:
        """
        Store the laps and sessions of a batch, replacing rows of the same files.

        Files the batch skipped are removed from the store. Session numbers are
        then reassigned over every stored session, so sessions on the same date
        stay numbered in start order across runs.

        Args:
            batch: Records read from FIT files.

        Returns:
            Number of lap rows stored.
        """
        file_ids = batch.file_ids
        stale_ids = [result.file_id for result in batch.skipped if result.file_id not in file_ids]
        if not file_ids and not stale_ids:
            logger.warning("Nothing to store, the batch is empty")
            return 0

        laps = laps_to_frame(batch.laps)
        sessions = sessions_to_frame(batch.sessions)

        with transaction(self.conn) as txn:
            replaced_ids = file_ids + stale_ids
            placeholders = ", ".join("?" for _ in replaced_ids)
            execute_query(txn, f"DELETE FROM swim_laps WHERE file_id IN ({placeholders})", replaced_ids, fetch=False)
            execute_query(
                txn, f"DELETE FROM swim_sessions WHERE file_id IN ({placeholders})", replaced_ids, fetch=False
            )

            next_seq = execute_query(txn, "SELECT COALESCE(MAX(seq), 0) + 1 AS next_seq FROM swim_laps")[0]["next_seq"]
            laps.insert(0, "seq", range(next_seq, next_seq + len(laps)))

            lap_rows = insert_frame(txn, "swim_laps", laps, ["seq"] + Columns.LAPS)
            session_rows = insert_frame(txn, "swim_sessions", sessions, Columns.SESSIONS)
            self._renumber_sessions(txn)

        if stale_ids:
            logger.info(f"Removed stored rows of {len(stale_ids)} skipped files")
        logger.info(f"Stored {lap_rows} laps and {session_rows} sessions for {len(file_ids)} files")
        return lap_rows

    @staticmethod
    def _renumber_sessions(conn: duckdb.DuckDBPyConnection) -> None:
        """Number the stored sessions within each date by start time, then file id."""
        execute_query(
            conn,
            """
            UPDATE swim_sessions
            SET session_number = ranked.number
            FROM (
                SELECT
                    file_id,
                    ROW_NUMBER() OVER (
                        PARTITION BY session_date ORDER BY start_time NULLS LAST, file_id
                    ) AS number
                FROM swim_sessions
            ) AS ranked
            WHERE swim_sessions.file_id = ranked.file_id
            """,
            fetch=False,
        )

    def load_laps_frame(self, file_ids: Optional[List[str]] = None) -> pd.DataFrame:
        """Return stored laps, files in file id order and laps in recording order.

        Args:
            file_ids: Only return laps of these files (default: all files).
        """
        where, params = self._file_filter(file_ids)
        frame = self.conn.execute(
            f"SELECT {', '.join(Columns.LAPS)} FROM swim_laps{where} ORDER BY file_id, seq", params or None
        ).df()
        return frame.reindex(columns=Columns.LAPS)

    def load_sessions_frame(self, file_ids: Optional[List[str]] = None) -> pd.DataFrame:
        """Return stored sessions ordered by date and session number.

        Args:
            file_ids: Only return sessions of these files (default: all files).
        """
        where, params = self._file_filter(file_ids)
        frame = self.conn.execute(
            f"SELECT {', '.join(Columns.SESSIONS)} FROM swim_sessions{where} "
            "ORDER BY session_date, session_number, file_id",
            params or None,
        ).df()
        frame = frame.reindex(columns=Columns.SESSIONS)
        frame["session_date"] = pd.to_datetime(frame["session_date"]).dt.date
        frame["session_number"] = frame["session_number"].astype("Int64")
        return frame

    @staticmethod
    def _file_filter(file_ids: Optional[List[str]]) -> Tuple[str, List[Any]]:
        if file_ids is None:
            return "", []
        if not file_ids:
            return " WHERE FALSE", []
        return f" WHERE file_id IN ({', '.join('?' for _ in file_ids)})", list(file_ids)

    def store_enriched_laps(self, enriched: pd.DataFrame) -> int:
        """
        Replace the enriched lap table.

        Args:
            enriched: Output of derive_enriched_laps.

        Returns:
            Number of rows stored.
        """
        frame = enriched[Columns.ENRICHED].copy()
        frame["session_date"] = pd.to_datetime(frame["session_date"])

        with transaction(self.conn) as txn:
            execute_query(txn, "DELETE FROM enriched_laps", fetch=False)
            rows = insert_frame(txn, "enriched_laps", frame, Columns.ENRICHED)
        logger.info(f"Stored {rows} enriched laps")
        return rows

    def query_session_summaries(
        self, start_date: Optional[dt.date] = None, end_date: Optional[dt.date] = None
    ) -> List[Dict[str, Any]]:
        """
        Query per-session lap counts and swim time.

        Args:
            start_date: First session date to include.
            end_date: Last session date to include.

        Returns:
            List of dictionaries, one per session, ordered by date and session number.
        """
        query = "SELECT * FROM swim_session_summary WHERE 1 = 1"
        params: List[Any] = []
        if start_date:
            query += " AND session_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND session_date <= ?"
            params.append(end_date)
        query += " ORDER BY session_date, session_number"

        return execute_query(self.conn, query, params)

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Closed swim data database connection")
