"""
房间服务 - 目录与房间名录协作方
为分配引擎提供房型价格、房型下的房间列表以及房间状态写入
"""
from typing import List, Iterable, Optional
import logging
from sqlalchemy import update
from sqlalchemy.orm import Session
from allocation.models.ontology import Room, RoomType, RoomStatus
from allocation.errors import NotFound

logger = logging.getLogger(__name__)


class RoomService:
    """房间服务"""

    def __init__(self, db: Session):
        self.db = db

    # ============== 目录（只读） ==============

    def get_category(self, category_id: int) -> RoomType:
        """获取房型（基础价格与折扣）"""
        room_type = self.db.query(RoomType).filter(RoomType.id == category_id).first()
        if not room_type:
            raise NotFound("房型不存在", category_id=category_id)
        return room_type

    # ============== 房间名录 ==============

    def get_room(self, room_id: int) -> Optional[Room]:
        """获取单个房间"""
        return self.db.query(Room).filter(Room.id == room_id).first()

    def list_rooms_in_category(self, category_id: int) -> List[int]:
        """房型下全部房间 ID（升序）"""
        rows = self.db.query(Room.id).filter(
            Room.room_type_id == category_id
        ).order_by(Room.id).all()
        return [row.id for row in rows]

    def set_room_status(self, room_ids: Iterable[int], status: RoomStatus,
                        only_from: Optional[Iterable[RoomStatus]] = None) -> int:
        """
        批量设置房间状态（不提交，由调用方事务统一提交）

        Args:
            room_ids: 房间 ID 列表
            status: 目标状态
            only_from: 仅当当前状态在此集合中时才更新

        Returns:
            实际更新的房间数
        """
        ids = sorted(set(room_ids))
        if not ids:
            return 0
        stmt = update(Room).where(Room.id.in_(ids))
        if only_from is not None:
            stmt = stmt.where(Room.status.in_(list(only_from)))
        result = self.db.execute(
            stmt.values(status=status).execution_options(synchronize_session=False)
        )
        logger.debug(f"Set status {status.value} on rooms {ids}: {result.rowcount} updated")
        return result.rowcount

    def claim_room(self, room_id: int) -> bool:
        """
        在当前事务中占用房间行

        递增 lock_version 使本事务持有该房间的写锁，直到提交或回滚；
        同一房间上的其他分配事务在此处等待，因而"检查可用性-写入"按房间串行。

        Returns:
            房间是否存在
        """
        result = self.db.execute(
            update(Room)
            .where(Room.id == room_id)
            .values(lock_version=Room.lock_version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
