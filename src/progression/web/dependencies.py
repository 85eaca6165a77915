"""Request dependencies shared by the routers."""

from __future__ import annotations

from pathlib import Path

from fastapi import Header, HTTPException, status

from progression.config.app_config import load_app_config


async def get_student_id(x_student_id: str | None = Header(default=None)) -> str:
    """Student identity set by the upstream auth layer."""
    if not x_student_id or not x_student_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Student-Id header",
        )
    return x_student_id.strip()


def get_data_dir() -> Path:
    """Configured data directory holding course catalogs."""
    return Path(load_app_config().paths["data_dir"])
