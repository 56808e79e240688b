"""
代理连接基础类

本模块定义了 SOCKS5 会话与中继共享的流操作，包括：
- 单次读取一个完整消息
- 写入并等待缓冲区排空
- 关闭写入器

会话（ProxySession）通过继承此类获得对客户端流的读写能力。
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from protocol import ConnectionClosed

logger = logging.getLogger('socks5-base')


async def close_writer(writer: Optional[asyncio.StreamWriter]):
    """
    关闭写入器并等待底层连接关闭

    连接已被对端断开时产生的错误会被忽略。

    Args:
        writer: 要关闭的写入器，为 None 时不做任何事
    """
    if writer is None:
        return
    try:
        writer.close()
        await writer.wait_closed()
    except (ConnectionResetError, BrokenPipeError, OSError):
        pass  # 连接已断开，忽略错误


class BaseConnection(ABC):
    """
    连接基础类，持有客户端的读写流

    Attributes:
        reader: 从客户端读取数据的异步流读取器
        writer: 向客户端写入数据的异步流写入器
        read_size: 单次读取的最大字节数
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                 read_size: int = 65536):
        self.reader = reader
        self.writer = writer
        self.read_size = read_size

    async def read_message(self, phase: str) -> bytes:
        """
        读取一个数据块作为完整消息

        每个阶段只等待一次数据事件，跨多个 TCP 分段的消息不会被重组。

        Args:
            phase: 当前阶段名称，用于错误信息

        Returns:
            bytes: 收到的数据块

        Raises:
            ConnectionClosed: 对端在消息到达前关闭了连接
        """
        data = await self.reader.read(self.read_size)
        if not data:
            raise ConnectionClosed(f"客户端在{phase}阶段关闭了连接")
        logger.debug(f"{phase}: 收到 {len(data)} 字节")
        return data

    async def send(self, data: bytes):
        """写入数据并等待排空"""
        self.writer.write(data)
        await self.writer.drain()

    async def send_and_close(self, data: bytes):
        """写入最后一条消息后关闭连接"""
        try:
            await self.send(data)
        finally:
            await self.close()

    async def close(self):
        await close_writer(self.writer)

    @abstractmethod
    async def run(self):
        """处理连接直到结束"""
