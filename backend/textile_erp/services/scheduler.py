"""
定时任务调度器服务
使用 APScheduler 实现数据库自动备份
"""

import os
import shutil
from datetime import datetime
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from textile_erp.core.config import settings
from textile_erp.core.logging_config import get_logger

logger = get_logger(__name__)

AUTO_BACKUP_PREFIX = "auto_backup_"
MANUAL_BACKUP_PREFIX = "backup_"

# 全局调度器实例
scheduler: Optional[AsyncIOScheduler] = None


def get_db_path() -> Optional[str]:
    """数据库文件路径，内存库或非 SQLite 返回 None"""
    db_url = settings.SQLITE_DATABASE_URI
    for scheme in ("sqlite+aiosqlite:///", "sqlite:///"):
        if db_url.startswith(scheme):
            path = db_url[len(scheme):]
            return None if path in ("", ":memory:") else path
    return None


def get_backup_dir() -> str:
    """备份目录：数据库文件同级的 backups/"""
    db_path = get_db_path() or "./textile_manager.db"
    backup_dir = os.path.join(os.path.dirname(os.path.abspath(db_path)), "backups")
    os.makedirs(backup_dir, exist_ok=True)
    return backup_dir


def describe_backup(filepath: str) -> dict:
    stat = os.stat(filepath)
    filename = os.path.basename(filepath)
    return {
        "filename": filename,
        "size": stat.st_size,
        "size_display": f"{stat.st_size / 1024 / 1024:.2f} MB",
        "created_at": datetime.fromtimestamp(stat.st_mtime).isoformat(),
        "automatic": filename.startswith(AUTO_BACKUP_PREFIX),
    }


def list_backups() -> list:
    """按创建时间倒序列出备份文件"""
    backup_dir = get_backup_dir()
    backups = [
        describe_backup(os.path.join(backup_dir, filename))
        for filename in os.listdir(backup_dir)
        if filename.endswith(".db")
    ]
    backups.sort(key=lambda x: x["created_at"], reverse=True)
    return backups


def create_backup(prefix: str = MANUAL_BACKUP_PREFIX) -> dict:
    """复制数据库文件生成一份备份

    数据库文件不存在时抛出 FileNotFoundError。
    """
    db_path = get_db_path()
    if not db_path or not os.path.exists(db_path):
        raise FileNotFoundError(f"数据库文件不存在: {db_path}")

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_path = os.path.join(get_backup_dir(), f"{prefix}{timestamp}.db")
    shutil.copy2(db_path, backup_path)

    backup = describe_backup(backup_path)
    logger.info(f"数据库备份完成: {backup['filename']} ({backup['size_display']})")
    return backup


def cleanup_old_backups(backup_dir: str, keep_count: int = 7) -> list:
    """清理旧的自动备份，只保留最近的 N 个，返回被删除的文件名"""
    auto_backups = []
    for filename in os.listdir(backup_dir):
        if filename.startswith(AUTO_BACKUP_PREFIX) and filename.endswith(".db"):
            filepath = os.path.join(backup_dir, filename)
            auto_backups.append((os.stat(filepath).st_mtime, filename, filepath))

    # 最新的在前（同一时刻按文件名）
    auto_backups.sort(reverse=True)

    removed = []
    for _, filename, filepath in auto_backups[keep_count:]:
        os.remove(filepath)
        removed.append(filename)
        logger.info(f"清理旧备份: {filename}")
    return removed


def auto_backup():
    """定时自动备份任务"""
    try:
        create_backup(prefix=AUTO_BACKUP_PREFIX)
        cleanup_old_backups(get_backup_dir(), keep_count=settings.AUTO_BACKUP_KEEP_COUNT)
    except OSError as e:
        logger.error(f"自动备份失败: {e}", exc_info=True)


def init_scheduler():
    """初始化并启动调度器"""
    global scheduler

    if not settings.AUTO_BACKUP_ENABLED:
        logger.info("自动备份已禁用")
        return

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        auto_backup,
        trigger=CronTrigger(
            hour=settings.AUTO_BACKUP_HOUR,
            minute=settings.AUTO_BACKUP_MINUTE
        ),
        id="auto_backup",
        name="自动数据库备份",
        replace_existing=True
    )
    scheduler.start()
    logger.info(
        f"定时任务调度器已启动 - 自动备份时间: 每天 {settings.AUTO_BACKUP_HOUR:02d}:{settings.AUTO_BACKUP_MINUTE:02d}"
    )


def shutdown_scheduler():
    """关闭调度器"""
    global scheduler
    if scheduler:
        scheduler.shutdown()
        scheduler = None
        logger.info("定时任务调度器已关闭")


def get_scheduler_status() -> dict:
    """获取调度器状态"""
    if not scheduler:
        return {
            "enabled": settings.AUTO_BACKUP_ENABLED,
            "running": False,
            "jobs": []
        }

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None
        })

    return {
        "enabled": settings.AUTO_BACKUP_ENABLED,
        "running": scheduler.running,
        "jobs": jobs
    }
