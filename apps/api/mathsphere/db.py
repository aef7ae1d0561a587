from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from . import models  # noqa: F401  (registers the tables on SQLModel.metadata)
from .config import Settings


def build_engine(config: Settings) -> Engine:
    return create_engine(
        f"sqlite:///{config.db_path}",
        connect_args={"check_same_thread": False},
    )


def init_db(config: Settings) -> Engine:
    try:
        engine = build_engine(config)
        SQLModel.metadata.create_all(engine)
    except Exception:
        # Fallback to /tmp if the configured path is not writable in serverless.
        config.data_dir = Path("/tmp/mathsphere")
        config.db_path = config.data_dir / "mathsphere.db"
        config.data_dir.mkdir(parents=True, exist_ok=True)
        engine = build_engine(config)
        SQLModel.metadata.create_all(engine)
    return engine
