"""
应用配置
从环境变量读取配置，支持 .env 文件
"""
from decimal import Decimal
from typing import List
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "Allocation Engine"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./allocation.db"
    DATABASE_TIMEOUT_SECONDS: float = 15.0        # SQLite 忙等待超时

    # 预订保留配置
    HOLD_TTL_MINUTES: int = 15                    # 待确认预订的保留时长

    # 价格配置
    TAX_RATE: Decimal = Decimal("0.15")           # 税率
    PRICE_TOLERANCE: Decimal = Decimal("0.01")    # 下单总价校验容差

    # 事务重试配置
    TRANSACTION_MAX_ATTEMPTS: int = 3             # 写冲突/连接故障的最大执行次数

    # 泳池时段配置
    POOL_DEFAULT_OPENING_TIME: str = "08:00"
    POOL_DEFAULT_CLOSING_TIME: str = "22:00"
    POOL_DEFAULT_MAX_CAPACITY: int = 50
    POOL_SLOT_CAPACITY_DIVISOR: int = 4           # 单个时段容量 = 泳池容量 / 4

    # 清洁协作方
    HOUSEKEEPING_STAFF_IDS: List[int] = []       # 泳池清洁通知的员工（员工目录不在本系统）

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


# 全局设置实例
settings = Settings()
