"""
分配引擎主应用入口
房间日期区间分配、限时保留、订单确认与泳池时段容量分配
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from allocation.config import settings
from allocation.database import init_db
from allocation.routers import rooms, reservations, bookings, pool, tasks

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 初始化数据库
    init_db()

    # 注册事件处理器
    from allocation.services.event_handlers import register_event_handlers
    register_event_handlers()

    yield


# 创建应用
app = FastAPI(
    title=settings.APP_NAME,
    description="酒店房间与泳池时段的并发分配引擎",
    version="1.0.0",
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(rooms.router)
app.include_router(reservations.router)
app.include_router(bookings.router)
app.include_router(pool.router)
app.include_router(tasks.router)


@app.get("/")
def root():
    """根路径"""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
    }


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
