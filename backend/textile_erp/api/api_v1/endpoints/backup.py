"""数据备份API"""

from typing import Any

from fastapi import APIRouter, HTTPException

from textile_erp.core.config import settings
from textile_erp.core.logging_config import get_logger
from textile_erp.services.scheduler import (
    get_backup_dir, get_db_path, list_backups, create_backup, get_scheduler_status
)

router = APIRouter()
logger = get_logger(__name__)


@router.get("/list")
async def get_backup_list() -> Any:
    """获取备份列表"""
    return {
        "backups": list_backups(),
        "backup_dir": get_backup_dir(),
    }


@router.post("/create", status_code=201)
async def create_manual_backup() -> Any:
    """手动创建备份"""
    if not get_db_path():
        raise HTTPException(status_code=400, detail="Only file-based SQLite databases can be backed up")
    try:
        backup = create_backup()
    except FileNotFoundError:
        raise HTTPException(status_code=400, detail="Database file does not exist")
    return {"message": "Backup created", "backup": backup}


@router.get("/scheduler")
async def get_backup_scheduler_status() -> Any:
    """获取自动备份调度器状态"""
    return {
        "auto_backup": {
            "enabled": settings.AUTO_BACKUP_ENABLED,
            "schedule": f"{settings.AUTO_BACKUP_HOUR:02d}:{settings.AUTO_BACKUP_MINUTE:02d}",
            "keep_count": settings.AUTO_BACKUP_KEEP_COUNT,
        },
        "scheduler": get_scheduler_status()
    }
