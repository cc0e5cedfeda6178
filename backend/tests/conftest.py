"""Root conftest: shared test configuration."""

import os
import tempfile

# 测试不写入真实数据库和日志目录，也不启动自动备份
os.environ.setdefault("SQLITE_DATABASE_URI", "sqlite:///./test_textile_manager.db")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="textile-logs-"))
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("AUTO_BACKUP_ENABLED", "false")
