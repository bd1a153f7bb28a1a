"""实体共用的时间戳与ID工具"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def touch(entity) -> None:
    """推进 updated_at：每次变更严格前进，即使落在同一时钟刻度内"""
    now = utcnow()
    previous = ensure_utc(entity.updated_at)
    if previous is not None and now <= previous:
        now = previous + timedelta(microseconds=1)
    entity.updated_at = now
