"""
SQLAlchemy-backed persistence for canvas designs.

Save path:
    validate -> backup (first attempt only) -> write, retried with
    exponential backoff; payloads above the compression threshold are
    zlib-compressed when that saves at least 20%.

Load path:
    decode -> validate -> repair if needed -> fall back to the newest
    backup whose checksum still matches -> None.
"""

import base64
import hashlib
import json
import time
import zlib
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.canvas.errors import PersistenceError
from app.canvas.serializers import snapshot_from_dict, snapshot_to_dict, SNAPSHOT_FORMAT_VERSION
from app.canvas.types import Snapshot
from app.config import DEFAULT_PROJECT_ID, MAX_BACKUPS
from app.db.models import Base, DesignBackup, DesignRecord
from app.persistence.gateway import PersistenceGateway, SaveOptions
from app.persistence.validator import DesignValidationResult, repair_data, validate_data


COMPRESSION_THRESHOLD = 50 * 1024  # 50KB
MAX_BACKOFF_SECONDS = 10.0


def calculate_checksum(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compress_payload(payload: str) -> str:
    return base64.b64encode(zlib.compress(payload.encode("utf-8"))).decode("ascii")


def decompress_payload(payload: str) -> str:
    return zlib.decompress(base64.b64decode(payload)).decode("utf-8")


class SqlPersistenceGateway(PersistenceGateway):
    def __init__(
        self,
        session_factory: Callable,
        project_id: str = DEFAULT_PROJECT_ID,
        max_backups: int = MAX_BACKUPS,
        compression_threshold: int = COMPRESSION_THRESHOLD,
        backoff_base_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_factory = session_factory
        self.project_id = project_id
        self.max_backups = max_backups
        self.compression_threshold = compression_threshold
        self.backoff_base_seconds = backoff_base_seconds
        self._sleep = sleep

    def create_tables(self, engine) -> None:
        Base.metadata.create_all(bind=engine)

    # ============================================================
    # SAVE
    # ============================================================

    def save_design(self, snapshot: Snapshot, options: Optional[SaveOptions] = None) -> None:
        options = options or SaveOptions()

        if options.validate_data:
            validation = self.validate_data(snapshot)
            if not validation.is_valid:
                raise PersistenceError(f"Invalid design data: {', '.join(validation.errors)}")
            if validation.warnings:
                print(f"[PERSISTENCE] ⚠️ Design data validation warnings: {validation.warnings}")

        serialized = json.dumps(snapshot_to_dict(snapshot), sort_keys=True)
        last_error: Optional[Exception] = None

        for attempt in range(options.retries + 1):
            try:
                if options.backup and attempt == 0:
                    try:
                        self._create_backup(serialized)
                    except SQLAlchemyError as e:
                        print(f"[PERSISTENCE] ⚠️ Failed to create backup: {e}")

                self._write(serialized, options.compress)
                return

            except SQLAlchemyError as e:
                last_error = e
                print(f"[PERSISTENCE] Save attempt {attempt + 1} failed: {e}")

                if attempt < options.retries:
                    delay = min(self.backoff_base_seconds * (2 ** attempt), MAX_BACKOFF_SECONDS)
                    self._sleep(delay)

        raise PersistenceError(
            f"Failed to save design after {options.retries + 1} attempts. Last error: {last_error}"
        )

    def _write(self, serialized: str, allow_compression: bool) -> None:
        payload = serialized
        compressed = False

        if allow_compression and len(serialized) > self.compression_threshold:
            candidate = compress_payload(serialized)
            if len(candidate) < len(serialized) * 0.8:
                payload = candidate
                compressed = True

        with self.session_factory() as session:
            record = (
                session.query(DesignRecord)
                .filter(DesignRecord.project_id == self.project_id)
                .one_or_none()
            )
            if record is None:
                record = DesignRecord(project_id=self.project_id)
                session.add(record)

            record.payload = payload
            record.compressed = compressed
            record.checksum = calculate_checksum(serialized)
            record.version = SNAPSHOT_FORMAT_VERSION
            session.commit()

    def _create_backup(self, serialized: str) -> None:
        with self.session_factory() as session:
            session.add(
                DesignBackup(
                    project_id=self.project_id,
                    payload=serialized,
                    checksum=calculate_checksum(serialized),
                    size=len(serialized),
                )
            )
            session.flush()

            stale = (
                session.query(DesignBackup)
                .filter(DesignBackup.project_id == self.project_id)
                .order_by(DesignBackup.id.desc())
                .offset(self.max_backups)
                .all()
            )
            for backup in stale:
                session.delete(backup)

            session.commit()

    # ============================================================
    # LOAD
    # ============================================================

    def load_design(self, project_id: Optional[str] = None) -> Optional[Snapshot]:
        project_id = project_id or self.project_id

        try:
            with self.session_factory() as session:
                record = (
                    session.query(DesignRecord)
                    .filter(DesignRecord.project_id == project_id)
                    .one_or_none()
                )
                if record is None:
                    return self.load_from_backup(project_id)

                payload, compressed, checksum = record.payload, record.compressed, record.checksum
        except SQLAlchemyError as e:
            print(f"[PERSISTENCE] ❌ Failed to load design: {e}")
            return None

        try:
            serialized = decompress_payload(payload) if compressed else payload
        except (ValueError, zlib.error) as e:
            print(f"[PERSISTENCE] Failed to decompress saved data: {e}")
            return self.load_from_backup(project_id)

        if calculate_checksum(serialized) != checksum:
            print(f"[PERSISTENCE] ⚠️ Checksum mismatch for project '{project_id}'")
            return self.load_from_backup(project_id)

        snapshot = self._decode(serialized)
        if snapshot is None:
            return self.load_from_backup(project_id)
        return snapshot

    def load_from_backup(self, project_id: Optional[str] = None) -> Optional[Snapshot]:
        project_id = project_id or self.project_id

        try:
            with self.session_factory() as session:
                backups = [
                    (b.id, b.payload, b.checksum)
                    for b in session.query(DesignBackup)
                    .filter(DesignBackup.project_id == project_id)
                    .order_by(DesignBackup.id.desc())
                    .all()
                ]
        except SQLAlchemyError as e:
            print(f"[PERSISTENCE] ❌ Failed to read backups: {e}")
            return None

        for backup_id, payload, checksum in backups:
            if calculate_checksum(payload) != checksum:
                print(f"[PERSISTENCE] Backup {backup_id} checksum mismatch, skipping")
                continue

            snapshot = self._decode(payload)
            if snapshot is not None:
                print(f"[PERSISTENCE] Restored from backup {backup_id}")
                return snapshot

        return None

    def _decode(self, serialized: str) -> Optional[Snapshot]:
        """Parse, validate and (if needed) repair. None means unrecoverable."""
        try:
            snapshot = snapshot_from_dict(json.loads(serialized))
        except ValueError as e:
            print(f"[PERSISTENCE] Failed to parse saved data: {e}")
            return None

        try:
            validation = self.validate_data(snapshot)
            if validation.is_valid:
                return snapshot

            print(f"[PERSISTENCE] Loaded data validation failed: {validation.errors}")
            repaired = self.repair_data(snapshot)
            if self.validate_data(repaired).is_valid:
                return repaired
        except (TypeError, ValueError) as e:
            # e.g. unhashable ids in a hand-edited record
            print(f"[PERSISTENCE] Saved data is unusable: {e}")
        return None

    # ============================================================
    # VALIDATION
    # ============================================================

    def validate_data(self, snapshot: Snapshot) -> DesignValidationResult:
        return validate_data(snapshot)

    def repair_data(self, snapshot: Snapshot) -> Snapshot:
        return repair_data(snapshot)

    def list_backups(self, project_id: Optional[str] = None) -> list:
        project_id = project_id or self.project_id
        with self.session_factory() as session:
            return [
                {"id": b.id, "size": b.size, "checksum": b.checksum, "created_at": b.created_at}
                for b in session.query(DesignBackup)
                .filter(DesignBackup.project_id == project_id)
                .order_by(DesignBackup.id.desc())
                .all()
            ]
