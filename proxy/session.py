"""
代理会话模块

本模块定义了 ProxySession 类，负责处理单个客户端连接从建立到关闭的完整生命周期，
包括 SOCKS5 握手、连接请求解析、目标连接以及双向数据中继。
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from config import ServerConfig
from logger import add_context, log_exception
from protocol import (
    AuthMethod,
    Command,
    ConnectRequest,
    Reply,
    SocksError,
    UnsupportedCommand,
    make_handshake_reply,
    make_reply,
    parse_connect_request,
    parse_handshake,
)

from .base import BaseConnection
from .relay import Relay

logger = logging.getLogger('socks5-session')


class SessionState(Enum):
    """会话状态"""
    INIT = 'init'
    HANDSHAKEN = 'handshaken'
    CONNECTING = 'connecting'
    RELAYING = 'relaying'
    CLOSED = 'closed'


class ProxySession(BaseConnection):
    """
    代理会话类 - 处理单个 SOCKS5 客户端连接

    会话是一个显式的状态机，每个状态对应一个处理器，处理器完成后推进状态:

        INIT --(握手成功)--> HANDSHAKEN --(CONNECT)--> CONNECTING
             --(连接成功)--> RELAYING --(流结束)--> CLOSED

    任何阶段失败都直接进入 CLOSED，不重试。非 CONNECT 命令在发送 0x07 应答后关闭。

    每个阶段只读取一个数据块，并把它当作完整消息处理。

    Attributes:
        config: 服务器配置对象
        state: 当前会话状态
        request: 已解析的连接请求（HANDSHAKEN 之后设置）
        relay: 中继对象（CONNECTING 之后设置）
        peer_str: 客户端地址字符串（IP:端口）
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                 config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        super().__init__(reader, writer, self.config.read_size)

        self.state = SessionState.INIT
        self.request: Optional[ConnectRequest] = None
        self.relay: Optional[Relay] = None

        peer = writer.get_extra_info('peername')
        self.peer_str = f"{peer[0]}:{peer[1]}" if peer else "unknown"

        self._handlers = {
            SessionState.INIT: self._handle_handshake,
            SessionState.HANDSHAKEN: self._handle_request,
            SessionState.CONNECTING: self._handle_connect,
            SessionState.RELAYING: self._handle_relay,
        }

    def _set_state(self, state: SessionState):
        logger.debug(f"{self.peer_str}: {self.state.value} -> {state.value}")
        self.state = state
        add_context(phase=state.value)

    async def run(self):
        """
        主会话处理器 - 按状态依次执行各阶段，直到进入 CLOSED

        所有错误都在这里捕获并记录，不会影响其他连接。
        """
        add_context(client=self.peer_str, phase=self.state.value)
        try:
            while self.state is not SessionState.CLOSED:
                await self._handlers[self.state]()
        except SocksError as e:
            logger.warning(f"请求过程中出现错误: {type(e).__name__}: {e}")
        except OSError as e:
            logger.warning(f"请求过程中出现传输错误: {type(e).__name__}: {e}")
        except Exception:
            log_exception(logger, "请求过程中出现未知错误")
        finally:
            await self._cleanup()

    async def _handle_handshake(self):
        """
        握手阶段

        版本号错误或未提供无认证方法时直接关闭连接，不发送应答。
        """
        data = await self.read_message('握手')
        try:
            handshake = parse_handshake(data)
        except SocksError:
            await self.close()
            raise

        logger.debug(f"客户端提供的认证方法: {list(handshake.methods)}")
        await self.send(make_handshake_reply(AuthMethod.NO_AUTH))
        logger.info("握手成功!")
        self._set_state(SessionState.HANDSHAKEN)

    async def _handle_request(self):
        """
        请求阶段

        只接受 CONNECT 命令。其他命令发送 COMMAND_NOT_SUPPORTED 应答后关闭。
        """
        data = await self.read_message('请求')
        try:
            request = parse_connect_request(data)
        except SocksError:
            await self.close()
            raise

        if request.command != Command.CONNECT:
            await self.send_and_close(make_reply(request.raw, Reply.COMMAND_NOT_SUPPORTED))
            raise UnsupportedCommand(request.command)

        self.request = request
        logger.info(f"连接请求成功! 目标 {request.address}:{request.port}")
        self._set_state(SessionState.CONNECTING)

    async def _handle_connect(self):
        """
        连接阶段 - 连接目标主机并发送应答
        """
        self.relay = Relay(
            self.request,
            self.reader,
            self.writer,
            read_size=self.read_size,
            reply_on_connect_failure=self.config.reply_on_connect_failure
        )
        await self.relay.connect()
        self._set_state(SessionState.RELAYING)

    async def _handle_relay(self):
        """
        中继阶段 - 客户端结束发送时请求完成，清理时关闭两端连接
        """
        await self.relay.relay()
        logger.info("请求完成!")
        logger.debug(f"中继结束: 上行 {self.relay.bytes_up} 字节, 下行 {self.relay.bytes_down} 字节")
        self._set_state(SessionState.CLOSED)

    async def _cleanup(self):
        """清理会话，关闭目标连接和客户端连接"""
        self.state = SessionState.CLOSED
        if self.relay:
            await self.relay.close()
        await self.close()
