"""
中继模块

本模块定义了 Relay 类，负责建立到目标主机的 TCP 连接、
以原始请求为模板发送应答，并在客户端与目标之间双向转发数据。
"""

import asyncio
import logging
from typing import Optional, Set

from protocol import ConnectRequest, Reply, TransportError, make_reply

from .base import close_writer

logger = logging.getLogger('socks5-relay')


async def pipe(reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
               read_size: int = 65536) -> int:
    """
    把 reader 的数据原样写入 writer，直到读到流结束

    读到流结束后半关闭 writer 的写方向，让对端也看到流结束。

    Args:
        reader: 数据来源
        writer: 数据去向
        read_size: 单次读取的最大字节数

    Returns:
        int: 转发的总字节数
    """
    total = 0
    while True:
        data = await reader.read(read_size)
        if not data:
            break
        writer.write(data)
        await writer.drain()
        total += len(data)

    if writer.can_write_eof() and not writer.is_closing():
        try:
            writer.write_eof()
        except OSError as e:
            logger.debug(f"半关闭失败: {e}")
    return total


class Relay:
    """
    中继 - 连接目标主机并双向转发数据

    工作流程:
    1. 复制原始请求作为应答模板
    2. 连接目标主机
    3. 连接成功后发送 SUCCEEDED 应答
    4. 启动客户端->目标、目标->客户端两个转发任务
    5. 客户端->目标方向结束时中继完成，会话随即关闭两端连接

    目标连接失败时默认不发送任何应答，会话通过错误路径结束。
    设置 reply_on_connect_failure 后先发送 GENERAL_FAILURE 应答。

    Attributes:
        request: 连接请求
        client_reader: 客户端读取器
        client_writer: 客户端写入器
        remote_reader: 目标读取器（连接成功后设置）
        remote_writer: 目标写入器（连接成功后设置）
        bytes_up: 客户端->目标方向的字节数
        bytes_down: 目标->客户端方向的字节数
    """

    def __init__(self, request: ConnectRequest,
                 client_reader: asyncio.StreamReader,
                 client_writer: asyncio.StreamWriter,
                 read_size: int = 65536,
                 reply_on_connect_failure: bool = False):
        self.request = request
        self.client_reader = client_reader
        self.client_writer = client_writer
        self.read_size = read_size
        self.reply_on_connect_failure = reply_on_connect_failure

        self.remote_reader: Optional[asyncio.StreamReader] = None
        self.remote_writer: Optional[asyncio.StreamWriter] = None
        self.bytes_up = 0
        self.bytes_down = 0

        self._upstream: Optional[asyncio.Task] = None
        self._downstream: Optional[asyncio.Task] = None

    @property
    def target(self) -> str:
        return f"{self.request.address}:{self.request.port}"

    async def _send_reply(self, rep: int):
        self.client_writer.write(make_reply(self.request.raw, rep))
        await self.client_writer.drain()

    async def connect(self):
        """
        连接目标主机并发送应答

        Raises:
            TransportError: 连接目标失败
        """
        logger.debug(f"连接目标: {self.target}")
        try:
            self.remote_reader, self.remote_writer = await asyncio.open_connection(
                self.request.address, self.request.port
            )
        except (OSError, UnicodeError) as e:
            # 域名不合法时 IDNA 编码失败，与连接失败同样处理
            if self.reply_on_connect_failure:
                await self._send_reply(Reply.GENERAL_FAILURE)
            raise TransportError(f"无法连接目标 {self.target}: {e}") from e

        await self._send_reply(Reply.SUCCEEDED)
        logger.debug(f"已连接目标: {self.target}")

    async def _pump_up(self):
        self.bytes_up = await pipe(self.client_reader, self.remote_writer, self.read_size)

    async def _pump_down(self):
        self.bytes_down = await pipe(self.remote_reader, self.client_writer, self.read_size)

    async def relay(self):
        """
        双向转发数据，直到客户端->目标方向读到流结束

        Raises:
            TransportError: 任一方向出现套接字错误
        """
        self._upstream = asyncio.create_task(self._pump_up())
        self._downstream = asyncio.create_task(self._pump_down())

        pending: Set[asyncio.Task] = {self._upstream, self._downstream}
        while self._upstream in pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                exc = task.exception()
                if exc is not None:
                    raise TransportError(f"中继 {self.target} 出错: {exc}") from exc
                if task is self._downstream:
                    logger.debug(f"目标 {self.target} 已结束发送")

        logger.debug(f"客户端已结束发送: {self.target}, 上行 {self.bytes_up} 字节")

    async def close(self):
        """
        取消未完成的转发任务并关闭目标连接
        """
        for task in (self._upstream, self._downstream):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, OSError):
                    pass
        await close_writer(self.remote_writer)
