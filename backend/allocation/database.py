"""
数据库配置 - SQLAlchemy 持久化层
并发正确性完全依赖存储层的事务与条件更新，不使用进程内锁
"""
import logging
from typing import Callable, TypeVar

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from allocation.config import settings
from allocation.errors import TransientStorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": settings.DATABASE_TIMEOUT_SECONDS}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args(settings.DATABASE_URL)
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """依赖注入：获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """初始化数据库表"""
    from allocation.models import ontology  # noqa
    Base.metadata.create_all(bind=engine)

    # 文件型 SQLite 启用 WAL 模式以提高并发性能
    if engine.url.get_backend_name() == "sqlite" and engine.url.database not in (None, "", ":memory:"):
        with engine.connect() as conn:
            conn.execute(text("PRAGMA journal_mode=WAL"))
            conn.execute(text("PRAGMA synchronous=NORMAL"))
            conn.commit()


def run_in_transaction(db: Session, work: Callable[[], T], operation: str = "transaction",
                       max_attempts: int = None) -> T:
    """
    在单个事务中执行 work 并提交

    work 必须从头完成整个操作（含校验），因为发生瞬时存储错误
    （写冲突、锁超时、死锁、连接断开）时会回滚并整体重新执行，
    超过重试次数后抛出 TransientStorageError。其他异常回滚后原样抛出。

    Args:
        db: 数据库会话
        work: 事务体，返回值作为结果
        operation: 操作名称（用于日志）
        max_attempts: 最大执行次数，默认取配置

    Returns:
        work 的返回值
    """
    attempts = max_attempts or settings.TRANSACTION_MAX_ATTEMPTS
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.commit()
            return result
        except OperationalError as e:
            db.rollback()
            last_error = e
            logger.warning(
                f"{operation}: transient storage error on attempt {attempt}/{attempts}: {e.orig}"
            )
        except Exception:
            db.rollback()
            raise

    raise TransientStorageError(
        f"{operation} 因存储冲突失败，请稍后重试",
        attempts=attempts
    ) from last_error
