"""
日志配置

控制台输出带颜色的级别名，文件日志每天零点轮转：
- textile.log: INFO 及以上
- error.log: ERROR 及以上（带堆栈）
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 第三方库只记录警告以上
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "apscheduler")

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
RESET = "\033[0m"


class ColoredFormatter(logging.Formatter):
    """级别名着色，仅用于终端"""

    def format(self, record: logging.LogRecord) -> str:
        # 复制记录，文件处理器看到的仍是原始级别名
        record = logging.makeLogRecord(record.__dict__)
        color = LEVEL_COLORS.get(record.levelname)
        if color:
            record.levelname = f"{color}{record.levelname}{RESET}"
        return super().format(record)


def build_file_handler(path: Path, level: int, retention_days: int) -> logging.Handler:
    handler = TimedRotatingFileHandler(
        path, when="midnight", backupCount=retention_days, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(log_level: str = "INFO", log_dir: str = "logs", retention_days: int = 30):
    """
    配置根日志器

    Args:
        log_level: 日志级别 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: 日志文件目录，不存在时自动创建
        retention_days: 轮转后保留的日志文件数
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    if sys.stdout.isatty():
        console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, DATE_FORMAT))
    else:
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    root_logger.addHandler(console_handler)

    root_logger.addHandler(build_file_handler(log_path / "textile.log", logging.INFO, retention_days))
    root_logger.addHandler(build_file_handler(log_path / "error.log", logging.ERROR, retention_days))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"日志系统初始化完成，级别 {log_level.upper()}，目录 {log_path.resolve()}")


def get_logger(name: str) -> logging.Logger:
    """获取命名日志器，用法: logger = get_logger(__name__)"""
    return logging.getLogger(name)
