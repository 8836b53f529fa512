"""
roomchat.core.exceptions
~~~~~~~~~~~~~~~~~~~~~~~~

业务异常。重名房间不是错误（``RoomDirectory.create`` 直接返回已有房间），
因此这里没有对应的异常类型。
"""
from __future__ import annotations


class ChatError(Exception):
    """聊天核心异常基类。"""


class InvalidMessage(ChatError, ValueError):
    """发送的消息缺少字段或正文为空。"""


class InvalidRoomName(ChatError, ValueError):
    """房间名去除首尾空白后为空。"""


class PersistenceFailure(ChatError):
    """存储不可达或写入被拒绝。

    只在房间创建与 HTTP 查询路径上抛给调用方；实时投递路径只记录日志。
    """
