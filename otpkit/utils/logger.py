#!/usr/bin/env python3
"""
Logging Module for OTPKit

Handles event logging to SQLite database for audit trail.
Records provisioning, verification and recovery code outcomes. Secrets and
submitted codes are never written; only labels, modes and results are.
"""

import csv
import sqlite3
import time
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Dict, Optional

from ..auth.credential import Credential, RecoveryResult, VerificationResult
from .paths import resolve_config_dir


class EventAction(Enum):
    """Types of OTP events to log."""
    PROVISIONED = "provisioned"
    VERIFY_SUCCESS = "verify_success"
    VERIFY_FAILED = "verify_failed"
    RECOVERY_USED = "recovery_used"
    RECOVERY_FAILED = "recovery_failed"


FAILURE_ACTIONS = (EventAction.VERIFY_FAILED.value, EventAction.RECOVERY_FAILED.value)


class OTPEventLogger:
    """Manages logging of OTP security events to SQLite database."""

    def __init__(self, db_path: Optional[Path] = None, retention_days: Optional[int] = None):
        """
        Initialize OTP event logger.

        Args:
            db_path: Path to SQLite database. If None, uses the shared OTPKit config dir.
            retention_days: If given, events older than this are removed on startup.
        """
        if db_path is None:
            config_dir = resolve_config_dir()
            config_dir.mkdir(parents=True, exist_ok=True)
            self.db_path = config_dir / "events.db"
        else:
            self.db_path = Path(db_path)

        self._init_database()

        if retention_days is not None:
            deleted_count = self.cleanup_old_events(retention_days)
            if deleted_count > 0:
                print(f"[Logger] Cleaned up {deleted_count} old events (>{retention_days} days)")

    def _connect(self, rows: bool = False) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        if rows:
            conn.row_factory = sqlite3.Row
        return conn

    def _init_database(self):
        """Initialize the SQLite database with required tables."""
        conn = self._connect()
        try:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS otp_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL NOT NULL,
                    action TEXT NOT NULL,
                    label TEXT,
                    mode TEXT,
                    matched_offset INTEGER,
                    success INTEGER,
                    details TEXT
                )
            ''')

            # Create index on timestamp for faster queries
            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_timestamp ON otp_events(timestamp)
            ''')

            # Create index on label for per-account history
            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_label ON otp_events(label)
            ''')

            conn.commit()
        finally:
            conn.close()

    def _query(self, sql: str, params: tuple = ()) -> List[Dict]:
        conn = self._connect(rows=True)
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        return [dict(row) for row in rows]

    def log_event(self,
                  action: EventAction,
                  label: Optional[str] = None,
                  mode: Optional[str] = None,
                  matched_offset: Optional[int] = None,
                  success: Optional[bool] = None,
                  details: Optional[str] = None) -> int:
        """
        Log an OTP security event.

        Args:
            action: Type of event (from EventAction enum)
            label: Account label the credential belongs to
            mode: Credential mode ("totp"/"hotp")
            matched_offset: Drift steps consumed by a successful verification
            success: Whether the action succeeded
            details: Additional details or error messages

        Returns:
            Event ID in the database
        """
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO otp_events (
                    timestamp, action, label, mode, matched_offset, success, details
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', (
                time.time(),
                action.value,
                label,
                mode,
                matched_offset,
                1 if success else 0 if success is not None else None,
                details
            ))

            event_id = cursor.lastrowid
            conn.commit()
        finally:
            conn.close()

        return event_id

    def log_provisioned(self, label: str, credential: Credential, recovery_count: int = 0) -> int:
        """Record that a new credential was issued."""
        return self.log_event(
            EventAction.PROVISIONED,
            label=label,
            mode=credential.mode.value,
            success=True,
            details=f"digits={credential.digits} algorithm={credential.algorithm.value} "
                    f"recovery_codes={recovery_count}"
        )

    def log_verification(self, label: str, credential: Credential, result: VerificationResult) -> int:
        """Record the outcome of a verify() call."""
        action = EventAction.VERIFY_SUCCESS if result.accepted else EventAction.VERIFY_FAILED
        return self.log_event(
            action,
            label=label,
            mode=credential.mode.value,
            matched_offset=result.matched_offset,
            success=result.accepted,
            details=str(result.error) if result.error else None
        )

    def log_recovery(self, label: str, result: RecoveryResult) -> int:
        """Record the outcome of a recovery code attempt."""
        action = EventAction.RECOVERY_USED if result.accepted else EventAction.RECOVERY_FAILED
        return self.log_event(
            action,
            label=label,
            success=result.accepted,
            details=f"remaining={len(result.remaining_hashes)}"
        )

    def get_recent_events(self, limit: int = 100) -> List[Dict]:
        """
        Get recent OTP events, newest first.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of event dictionaries
        """
        return self._query('''
            SELECT * FROM otp_events
            ORDER BY timestamp DESC, id DESC
            LIMIT ?
        ''', (limit,))

    def get_events_by_date_range(self,
                                 start_timestamp: float,
                                 end_timestamp: float) -> List[Dict]:
        """
        Get events within a date range.

        Args:
            start_timestamp: Start time (Unix timestamp)
            end_timestamp: End time (Unix timestamp)

        Returns:
            List of event dictionaries
        """
        return self._query('''
            SELECT * FROM otp_events
            WHERE timestamp BETWEEN ? AND ?
            ORDER BY timestamp DESC, id DESC
        ''', (start_timestamp, end_timestamp))

    def get_events_by_label(self, label: str) -> List[Dict]:
        """Get all events for one account label."""
        return self._query('''
            SELECT * FROM otp_events
            WHERE label = ?
            ORDER BY timestamp DESC, id DESC
        ''', (label,))

    def get_failed_attempts(self, label: Optional[str] = None, since_seconds: int = 3600) -> List[Dict]:
        """
        Get failed verification and recovery attempts.

        Callers use this to drive their own rate limiting or lockout.

        Args:
            label: Restrict to one account label (None for all)
            since_seconds: How far back to look

        Returns:
            List of event dictionaries
        """
        cutoff_time = time.time() - since_seconds
        sql = '''
            SELECT * FROM otp_events
            WHERE action IN (?, ?) AND timestamp > ?
        '''
        params = (*FAILURE_ACTIONS, cutoff_time)
        if label is not None:
            sql += ' AND label = ?'
            params += (label,)
        sql += ' ORDER BY timestamp DESC, id DESC'
        return self._query(sql, params)

    def cleanup_old_events(self, days: int = 90) -> int:
        """
        Delete events older than specified days.

        Args:
            days: Age threshold in days

        Returns:
            Number of deleted events
        """
        cutoff_time = time.time() - (days * 86400)

        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute('DELETE FROM otp_events WHERE timestamp < ?', (cutoff_time,))
            deleted_count = cursor.rowcount
            conn.commit()
        finally:
            conn.close()

        return deleted_count

    def clear_all_events(self) -> int:
        """Delete every event. Returns the number removed."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute('DELETE FROM otp_events')
            deleted_count = cursor.rowcount
            conn.commit()
        finally:
            conn.close()

        return deleted_count

    def get_statistics(self) -> Dict:
        """
        Get statistics about logged events.

        Returns:
            Dictionary with various statistics
        """
        conn = self._connect()
        try:
            cursor = conn.cursor()
            stats = {}

            cursor.execute('SELECT COUNT(*) FROM otp_events')
            stats['total_events'] = cursor.fetchone()[0]

            cursor.execute('''
                SELECT action, COUNT(*) as count
                FROM otp_events
                GROUP BY action
            ''')
            stats['by_action'] = dict(cursor.fetchall())

            # Failed attempts (last 24h)
            cutoff_time = time.time() - 86400
            cursor.execute('''
                SELECT COUNT(*) FROM otp_events
                WHERE action IN (?, ?) AND timestamp > ?
            ''', (*FAILURE_ACTIONS, cutoff_time))
            stats['failed_24h'] = cursor.fetchone()[0]

            cursor.execute('''
                SELECT COUNT(DISTINCT label) FROM otp_events
                WHERE label IS NOT NULL
            ''')
            stats['unique_labels'] = cursor.fetchone()[0]
        finally:
            conn.close()

        return stats

    def export_to_csv(self, output_path: Path, limit: Optional[int] = None) -> bool:
        """
        Export events to CSV file.

        Args:
            output_path: Path to output CSV file
            limit: Maximum number of events to export (None for all)

        Returns:
            True if successful, False otherwise
        """
        events = self.get_recent_events(limit if limit else -1)

        try:
            with open(output_path, 'w', newline='') as csvfile:
                if not events:
                    return True

                writer = csv.DictWriter(csvfile, fieldnames=list(events[0].keys()))
                writer.writeheader()
                for event in events:
                    # Convert timestamp to readable format
                    event_copy = event.copy()
                    event_copy['timestamp'] = datetime.fromtimestamp(event['timestamp']).isoformat()
                    writer.writerow(event_copy)

            return True

        except OSError as e:
            print(f"Error exporting to CSV: {e}")
            return False
