"""Tests for design validation, repair and the SQLAlchemy gateway (in-memory SQLite)"""

import json
from dataclasses import replace

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.canvas.errors import PersistenceError
from app.canvas.types import Bounds, Component, Connection, Frame, Snapshot
from app.db.models import DesignBackup, DesignRecord
from app.db.session import make_engine, make_session_factory
from app.persistence.gateway import SaveOptions
from app.persistence.sql_gateway import SqlPersistenceGateway, calculate_checksum, decompress_payload
from app.persistence.validator import repair_data, validate_data


def sample_snapshot() -> Snapshot:
    return replace(
        Snapshot.empty(),
        components=(
            Component(id="api", type="service", x=0, y=0, label="API", parent_frame_id="f1"),
            Component(id="db", type="database", x=300, y=0, label="DB"),
        ),
        connections=(Connection(id="c1", from_id="api", to_id="db", protocol="sql"),),
        frames=(Frame(id="f1", name="Edge", bounds=Bounds(-32, -32, 224, 160), component_ids=("api",)),),
    )


def make_gateway(**kwargs):
    engine = make_engine("sqlite://")
    gateway = SqlPersistenceGateway(make_session_factory(engine), sleep=lambda _s: None, **kwargs)
    gateway.create_tables(engine)
    return gateway


# -------------------------
# Validation / repair
# -------------------------

def test_valid_snapshot_has_no_errors():
    result = validate_data(sample_snapshot())
    assert result.is_valid
    assert result.errors == []


def test_validation_errors_and_warnings():
    snapshot = Snapshot(
        components=(
            Component(id="a", type="service", x=0, y=0),
            Component(id="a", type="", x="left", y=0, label="dup"),
        ),
        connections=(
            Connection(id="c1", from_id="a", to_id="ghost"),
            Connection(id="c2", from_id="a", to_id="a"),
            Connection(id="", from_id="", to_id="a"),
        ),
    )
    result = validate_data(snapshot)

    assert not result.is_valid
    assert any("Duplicate id" in e for e in result.errors)
    assert any("Missing or invalid type" in e for e in result.errors)
    assert any("Invalid position" in e for e in result.errors)
    assert any("Missing from or to" in e for e in result.errors)
    assert any("non-existent component 'ghost'" in w for w in result.warnings)
    assert any("Self-connection" in w for w in result.warnings)
    assert any("Layers are missing" in w for w in result.warnings)


def test_repair_makes_snapshot_valid():
    broken = Snapshot(
        components=(
            Component(id="a", type="service", x=0, y=0),
            Component(id="a", type="", x=None, y="1"),
        ),
        connections=(Connection(id="c1", from_id="a", to_id="ghost"),),
    )
    repaired = repair_data(broken)

    assert validate_data(repaired).is_valid
    assert len(set(repaired.component_ids)) == 2
    assert repaired.connections == ()
    assert repaired.layers[0].id == "default"


# -------------------------
# Gateway
# -------------------------

def test_save_and_load_roundtrip():
    gateway = make_gateway()
    gateway.save_design(sample_snapshot())

    assert gateway.load_design() == sample_snapshot()


def test_load_missing_project_returns_none():
    gateway = make_gateway()
    assert gateway.load_design("nothing-here") is None


def test_invalid_design_is_not_saved():
    gateway = make_gateway()
    bad = Snapshot(components=(Component(id="", type="service", x=0, y=0),))

    with pytest.raises(PersistenceError):
        gateway.save_design(bad)

    with gateway.session_factory() as session:
        assert session.query(DesignRecord).count() == 0


def test_large_payload_is_compressed():
    gateway = make_gateway(compression_threshold=100)
    many = replace(
        Snapshot.empty(),
        components=tuple(
            Component(id=f"c{i}", type="service", x=i, y=i, label="Service") for i in range(50)
        ),
    )
    gateway.save_design(many)

    with gateway.session_factory() as session:
        record = session.query(DesignRecord).one()
        assert record.compressed
        assert '"components"' in decompress_payload(record.payload)

    assert gateway.load_design() == many


def test_compression_can_be_disabled():
    gateway = make_gateway(compression_threshold=10)
    gateway.save_design(sample_snapshot(), SaveOptions(compress=False))

    with gateway.session_factory() as session:
        assert not session.query(DesignRecord).one().compressed


def test_backups_are_capped():
    gateway = make_gateway(max_backups=2)
    for i in range(4):
        gateway.save_design(replace(sample_snapshot(), active_tool=f"tool-{i}"))

    assert len(gateway.list_backups()) == 2


def test_corrupted_record_falls_back_to_backup():
    gateway = make_gateway()
    gateway.save_design(sample_snapshot())

    with gateway.session_factory() as session:
        record = session.query(DesignRecord).one()
        record.payload = '{"components": "garbage"'
        session.commit()

    assert gateway.load_design() == sample_snapshot()


def test_corruption_without_backup_returns_none():
    gateway = make_gateway()
    gateway.save_design(sample_snapshot(), SaveOptions(backup=False))

    with gateway.session_factory() as session:
        session.query(DesignRecord).one().checksum = "0" * 64
        session.commit()

    with gateway.session_factory() as session:
        assert session.query(DesignBackup).count() == 0

    assert gateway.load_design() is None


def test_save_retries_with_backoff_then_fails():
    delays = []
    engine = make_engine("sqlite://")
    gateway = SqlPersistenceGateway(make_session_factory(engine), sleep=delays.append)
    gateway.create_tables(engine)

    attempts = []

    def failing_write(serialized, allow_compression):
        attempts.append(1)
        raise SQLAlchemyError("database is locked")

    gateway._write = failing_write

    with pytest.raises(PersistenceError):
        gateway.save_design(sample_snapshot(), SaveOptions(retries=3, backup=False))

    assert len(attempts) == 4
    assert delays == [1.0, 2.0, 4.0]


def test_save_recovers_after_transient_failure():
    gateway = make_gateway()
    real_write = gateway._write
    calls = []

    def flaky_write(serialized, allow_compression):
        calls.append(1)
        if len(calls) == 1:
            raise SQLAlchemyError("database is locked")
        real_write(serialized, allow_compression)

    gateway._write = flaky_write
    gateway.save_design(sample_snapshot())

    assert len(calls) == 2
    assert gateway.load_design() == sample_snapshot()


def test_unhashable_references_fail_validation_without_raising():
    snapshot = replace(
        sample_snapshot(),
        connections=(Connection(id="c1", from_id={"id": "api"}, to_id="db"),),
        frames=(Frame(id="f1", name="Edge", bounds=Bounds(0, 0, 10, 10), component_ids=({"id": "api"},)),),
    )

    result = validate_data(snapshot)

    assert not result.is_valid
    assert "Connection 0: Invalid from or to reference" in result.errors
    assert "Frame 'Edge': Invalid component ids" in result.errors
    assert validate_data(repair_data(snapshot)).is_valid


def test_stored_unhashable_references_are_repaired_on_load():
    gateway = make_gateway()
    gateway.save_design(sample_snapshot(), SaveOptions(backup=False))

    payload = json.dumps({
        "components": [
            {"id": "api", "type": "service", "x": 0, "y": 0, "label": "API"},
            {"id": "db", "type": "database", "x": 300, "y": 0, "label": "DB"},
        ],
        "connections": [{"id": "c1", "from": {"id": "api"}, "to": "db"}],
        "frames": [{"id": "f1", "name": "Edge", "bounds": {"x": 0, "y": 0, "width": 10, "height": 10},
                    "component_ids": [{"id": "api"}, "db"]}],
        "layers": [{"id": "default", "name": "Default"}],
    })
    with gateway.session_factory() as session:
        record = session.query(DesignRecord).one()
        record.payload = payload
        record.compressed = False
        record.checksum = calculate_checksum(payload)
        session.commit()

    loaded = gateway.load_design()

    assert loaded.component_ids == ("api", "db")
    assert loaded.connections == ()
    assert loaded.frames[0].component_ids == ("db",)
