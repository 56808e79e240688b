"""
SOCKS5 代理服务器模块 - 服务器生命周期管理

此模块包含 ProxyServer 类，负责启动 TCP 服务器并为每个客户端连接创建会话。

主要组件:
- ProxyServer: SOCKS5 代理服务器类，管理监听套接字和客户端连接

使用示例:
    >>> config = ServerConfig(host='0.0.0.0', port=4378)
    >>> server = ProxyServer(config)
    >>> asyncio.run(server.start())
"""

import asyncio
import logging
from typing import Optional

from config import ServerConfig

from .session import ProxySession

logger = logging.getLogger(__name__)


class ProxyServer:
    """
    SOCKS5 代理服务器类 - 管理服务器生命周期和客户端连接

    工作流程:
    1. 根据配置创建异步 TCP 服务器
    2. 监听指定端口
    3. 为每个客户端连接创建独立的 ProxySession

    Attributes:
        config: ServerConfig，服务器配置对象
        server: asyncio 服务器对象（启动后设置）

    Note:
        - 每个客户端连接在独立的协程中处理，连接之间没有共享状态
        - 会话内的错误在会话中捕获，不会影响服务器运行
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.server: Optional[asyncio.AbstractServer] = None

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """
        处理客户端连接

        由 asyncio.start_server 为每个连接自动调用。

        Args:
            reader: 从客户端读取数据的异步流读取器
            writer: 向客户端写入数据的异步流写入器
        """
        session = ProxySession(reader, writer, self.config)
        await session.run()

    async def listen(self) -> asyncio.AbstractServer:
        """
        创建监听套接字但不进入 serve_forever

        Returns:
            asyncio.AbstractServer: 已开始接受连接的服务器对象
        """
        self.server = await asyncio.start_server(
            self.handle_client,
            self.config.host,
            self.config.port
        )
        return self.server

    @property
    def port(self) -> int:
        """实际监听的端口（配置端口为 0 时由系统分配）"""
        return self.server.sockets[0].getsockname()[1]

    async def start(self):
        """
        启动 SOCKS5 代理服务器，运行直到被中断
        """
        server = await self.listen()
        logger.info(f"SOCKS5 代理监听于端口 {self.port}")

        async with server:
            await server.serve_forever()

    async def stop(self):
        """停止接受新连接"""
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()
