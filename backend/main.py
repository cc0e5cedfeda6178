"""开发服务器入口（在 backend 目录下运行: python main.py）"""
import uvicorn

from textile_erp.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "textile_erp.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.SERVER_RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )
