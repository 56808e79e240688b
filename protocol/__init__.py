"""
SOCKS5 协议包

本包提供了 SOCKS5 代理的协议定义和实现，包括：
- 协议常量（认证方法、命令、地址类型、应答码）
- 握手请求和连接请求的解析
- 地址解码
- 应答构造

使用示例：
    from protocol import parse_connect_request, make_reply, Reply

    request = parse_connect_request(chunk)
    reply = make_reply(request.raw, Reply.SUCCEEDED)
"""

from .core import (
    # 协议常量
    SOCKS_VERSION,
    ADDRESS_OFFSET,

    # 枚举
    AuthMethod,
    Command,
    AddressType,
    Reply,

    # 异常
    SocksError,
    ProtocolVersionMismatch,
    UnsupportedAuthMethod,
    UnsupportedCommand,
    AddressDecodeFailure,
    MalformedRequest,
    TransportError,
    ConnectionClosed,

    # 请求结构
    HandshakeRequest,
    ConnectRequest,

    # 函数
    read_address,
    parse_handshake,
    parse_connect_request,
    make_handshake_reply,
    make_reply,
)

__all__ = [
    'SOCKS_VERSION',
    'ADDRESS_OFFSET',
    'AuthMethod',
    'Command',
    'AddressType',
    'Reply',
    'SocksError',
    'ProtocolVersionMismatch',
    'UnsupportedAuthMethod',
    'UnsupportedCommand',
    'AddressDecodeFailure',
    'MalformedRequest',
    'TransportError',
    'ConnectionClosed',
    'HandshakeRequest',
    'ConnectRequest',
    'read_address',
    'parse_handshake',
    'parse_connect_request',
    'make_handshake_reply',
    'make_reply',
]
