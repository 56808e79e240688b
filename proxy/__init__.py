"""
SOCKS5 代理模块

本包实现了代理服务器的运行时部分：

- 监听套接字和连接接受（ProxyServer）
- 每个连接的握手、请求、中继状态机（ProxySession）
- 目标连接和双向数据转发（Relay）

使用示例：
    from proxy import ProxyServer
    server = ProxyServer(config)
    await server.start()
"""

from .base import BaseConnection, close_writer
from .relay import Relay, pipe
from .session import ProxySession, SessionState
from .server import ProxyServer

__all__ = [
    'BaseConnection',
    'close_writer',
    'Relay',
    'pipe',
    'ProxySession',
    'SessionState',
    'ProxyServer',
]
