import asyncio
import os
import sys

# 添加项目根目录到 sys.path
sys.path.append(os.getcwd())

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.core.database import dispose_engine, get_sessionmaker
from app.services.report_cache import DatabaseCacheBackend, ReportCache


async def clear_cache():
    print("正在连接数据库...")
    try:
        session_maker = get_sessionmaker()
    except RuntimeError as e:
        print(f"初始化数据库连接失败: {e}")
        return

    cache = ReportCache(DatabaseCacheBackend(session_maker), prefix=get_settings().CACHE_KEY_PREFIX)
    print("开始清理报表缓存...")
    try:
        count = await cache.clear_all()
        print(f"清理完成！共删除 {count} 条报表缓存。")
    except SQLAlchemyError as e:
        print(f"清理过程中出错: {e}")
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(clear_cache())
