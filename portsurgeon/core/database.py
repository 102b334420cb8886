# portsurgeon/core/database.py
import sqlite3
import csv
import threading
from typing import Optional, List, Tuple
from datetime import datetime
from portsurgeon.core.schemas import HistoryEntry
from portsurgeon.utils.logger import Logger


class DatabaseManager:
    """
    Thread-safe SQLite store for the operator's action history.
    Every terminate / container action is recorded with its outcome.
    """
    def __init__(self, db_name: str = "portsurgeon.db") -> None:
        self.db_name = db_name
        self.logger = Logger()
        self.lock = threading.Lock()

        # Shared connection; self.lock serializes access.
        self.conn = sqlite3.connect(db_name, check_same_thread=False)
        self._configure_pragmas()
        self.create_tables()

    def _configure_pragmas(self) -> None:
        """Enable Write-Ahead Logging (WAL) for better concurrency."""
        try:
            with self.lock:
                self.conn.execute('PRAGMA journal_mode=WAL;')
                self.conn.execute('PRAGMA synchronous=NORMAL;')
        except sqlite3.Error:
            pass

    def create_tables(self) -> None:
        with self.lock:
            try:
                cursor = self.conn.cursor()
                cursor.execute('''
                    CREATE TABLE IF NOT EXISTS actions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        timestamp TEXT,
                        action TEXT,
                        target TEXT,
                        pid INTEGER,
                        port INTEGER,
                        success INTEGER,
                        message TEXT
                    )
                ''')
                self.conn.commit()
            except sqlite3.Error as e:
                self.logger.error(f"[DB ERROR] Init failed: {e}")

    def log_action(self, action: str, target: str, pid: int, port: Optional[int],
                   success: bool, message: str) -> None:
        with self.lock:
            try:
                now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
                cursor = self.conn.cursor()
                cursor.execute('''
                    INSERT INTO actions (timestamp, action, target, pid, port, success, message)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                ''', (now, action, target, pid, port, int(success), message))
                self.conn.commit()
            except sqlite3.Error as e:
                self.logger.error(f"[DB ERROR] Log action failed: {e}")

    def get_recent_actions(self, limit: int = 50) -> List[HistoryEntry]:
        with self.lock:
            try:
                cursor = self.conn.cursor()
                cursor.execute('''
                    SELECT id, timestamp, action, target, pid, port, success, message
                    FROM actions ORDER BY id DESC LIMIT ?
                ''', (limit,))
                rows = cursor.fetchall()
            except sqlite3.Error:
                return []

        return [
            HistoryEntry(
                id=row[0], timestamp=row[1], action=row[2], target=row[3],
                pid=row[4] or 0, port=row[5], success=bool(row[6]), message=row[7] or "",
            )
            for row in rows
        ]

    def clear_actions(self) -> None:
        with self.lock:
            try:
                self.conn.execute('DELETE FROM actions')
                self.conn.commit()
            except sqlite3.Error as e:
                self.logger.error(f"[DB ERROR] Clear history failed: {e}")

    def export_actions_to_csv(self, filename: str = "action_history.csv") -> Tuple[bool, str]:
        with self.lock:
            try:
                cursor = self.conn.cursor()
                cursor.execute('''
                    SELECT timestamp, action, target, pid, port, success, message
                    FROM actions ORDER BY id DESC
                ''')
                rows = cursor.fetchall()

                with open(filename, 'w', newline='', encoding='utf-8') as f:
                    writer = csv.writer(f)
                    writer.writerow(["TIMESTAMP", "ACTION", "TARGET", "PID", "PORT", "SUCCESS", "MESSAGE"])
                    writer.writerows(rows)
                return True, f"Exported to {filename}"
            except (sqlite3.Error, OSError) as e:
                return False, str(e)

    def close(self) -> None:
        with self.lock:
            try:
                self.conn.close()
            except sqlite3.Error:
                pass
