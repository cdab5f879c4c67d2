"""
Fixture script pipeline for Lakestack

Discovers SQL fixture files from the create/ and insert/ folders, splits
them into statements and runs them sequentially on one query engine
connection.

The statement parser is line based and does not understand string
literals: a ';' or '--' inside quotes is treated as a terminator or a
comment marker. Fixture files must avoid both inside literals.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from .errors import FixturesCancelledError, ScriptExecutionError

logger = logging.getLogger(__name__)

# Executed in this order; inserts reference tables the create scripts define
SCRIPT_FOLDERS = ("create", "insert")

COMMENT_MARKER = "--"
STATEMENT_TERMINATOR = ";"


def parse_statements(text: str) -> List[str]:
    """
    Split SQL text into statements.

    Line endings are normalized, blank and comment-only lines dropped and
    inline comments stripped. Remaining lines are joined with single
    spaces and cut at every terminator; the terminator itself is not part
    of the statement. A trailing fragment without a terminator is
    returned as the last statement.

    Args:
        text: Raw file content

    Returns:
        Statements in file order
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    statements: List[str] = []
    pending: List[str] = []

    def flush() -> None:
        statement = " ".join(pending).strip()
        pending.clear()
        if statement:
            statements.append(statement)

    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line or line.startswith(COMMENT_MARKER):
            continue

        comment_start = line.find(COMMENT_MARKER)
        if comment_start != -1:
            line = line[:comment_start].rstrip()

        *complete, remainder = line.split(STATEMENT_TERMINATOR)
        for fragment in complete:
            if fragment.strip():
                pending.append(fragment.strip())
            flush()
        if remainder.strip():
            pending.append(remainder.strip())

    flush()
    return statements


@dataclass
class FixtureScript:
    """A SQL fixture file and its raw text."""

    path: Path
    text: str

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def group(self) -> str:
        """Folder the script was discovered in (create or insert)."""
        return self.path.parent.name

    def statements(self) -> List[str]:
        return parse_statements(self.text)

    def __str__(self) -> str:
        return f"{self.group}/{self.name}"


@dataclass
class ScriptRunResult:
    """Result of running a set of fixture scripts."""

    scripts: List[str] = field(default_factory=list)
    statements_executed: int = 0
    execution_time_ms: int = 0

    def get_summary(self) -> str:
        return (
            f"Executed {self.statements_executed} statement(s) from "
            f"{len(self.scripts)} script(s) in {self.execution_time_ms}ms"
        )


def discover_scripts(root: Union[str, Path]) -> List[FixtureScript]:
    """
    Discover fixture scripts under root.

    Each folder in SCRIPT_FOLDERS is scanned non-recursively for *.sql
    files, sorted by file name. All create scripts come before any insert
    script. Missing folders contribute no scripts.
    """
    root = Path(root)
    scripts: List[FixtureScript] = []

    for folder in SCRIPT_FOLDERS:
        directory = root / folder
        if not directory.is_dir():
            logger.debug(f"Fixture folder not found: {directory}")
            continue

        sql_files = sorted(
            (path for path in directory.glob("*.sql") if path.is_file()),
            key=lambda path: path.name,
        )
        for sql_file in sql_files:
            scripts.append(FixtureScript(sql_file, sql_file.read_text(encoding="utf-8")))

    logger.debug(f"Discovered {len(scripts)} fixture script(s) under {root}")
    return scripts


class ScriptRunner:
    """
    Executes fixture scripts on a single DB-API connection.

    The connection is not safe for concurrent use: statements are issued
    strictly one after another. run() is blocking and usually executes in a
    worker thread; cancel() may be called from any other thread.
    """

    def __init__(self, connection_factory: Callable[[], Any]):
        """
        Initialize runner.

        Args:
            connection_factory: Returns a new DB-API connection to the query engine
        """
        self.connection_factory = connection_factory
        self._cancel_event = threading.Event()
        self._cursor_lock = threading.Lock()
        self._active_cursor: Optional[Any] = None

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """
        Stop run() before its next statement and abort the one in flight.

        Drivers that expose cursor.cancel() (trino does) have the running
        query killed on the server; others finish the current statement.
        """
        self._cancel_event.set()
        with self._cursor_lock:
            cursor = self._active_cursor
        if cursor is None or not hasattr(cursor, "cancel"):
            return

        try:
            cursor.cancel()
            logger.info("Cancelled in-flight fixture statement")
        except Exception as e:
            logger.warning(f"Failed to cancel in-flight fixture statement: {e}")

    def run(self, scripts: List[FixtureScript]) -> ScriptRunResult:
        """
        Run every statement of every script in order.

        Raises:
            ScriptExecutionError: First failing statement, with its source file
            FixturesCancelledError: cancel() was called before the last statement finished
        """
        result = ScriptRunResult()
        if not scripts:
            logger.info("No fixture scripts found in create/ or insert/")
            return result

        start_time = time.time()
        conn = self.connection_factory()
        try:
            for script in scripts:
                statements = script.statements()
                for statement in statements:
                    self._execute_cancellable(conn, script, statement, result)
                    result.statements_executed += 1

                result.scripts.append(str(script))
                logger.info(f"Executed fixture script: {script} ({len(statements)} statements)")
        finally:
            conn.close()

        result.execution_time_ms = int((time.time() - start_time) * 1000)
        logger.info(result.get_summary())
        return result

    def _execute_cancellable(
        self, conn: Any, script: FixtureScript, statement: str, result: ScriptRunResult
    ) -> None:
        cursor = conn.cursor()
        with self._cursor_lock:
            self._active_cursor = cursor
        try:
            # Checked after publishing the cursor: cancel() either sees it or is seen here
            if self.cancelled:
                logger.warning(f"Fixture loading cancelled before {script}")
                raise FixturesCancelledError(str(script), result.statements_executed)
            cursor.execute(statement)
            cursor.fetchall()
        except FixturesCancelledError:
            raise
        except Exception as e:
            if self.cancelled:
                raise FixturesCancelledError(str(script), result.statements_executed) from e
            logger.error(f"Fixture script {script} failed: {e}")
            raise ScriptExecutionError(str(script), statement, e) from e
        finally:
            with self._cursor_lock:
                self._active_cursor = None
            cursor.close()

    @staticmethod
    def execute(conn: Any, statement: str) -> List[Any]:
        """Execute one statement and drain its result so it runs to completion."""
        cursor = conn.cursor()
        try:
            cursor.execute(statement)
            return cursor.fetchall()
        finally:
            cursor.close()
