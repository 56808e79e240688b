"""
SOCKS5 代理 - 核心协议模块
定义 SOCKS5 协议（RFC 1928）的常量、请求结构、地址解码和应答构造。

版本: 1.0.0

功能概述:
本模块只包含纯函数和数据类，不做任何 I/O。会话层（proxy.session）
负责读写套接字，并把收到的数据块交给这里解析。

支持范围:
1. 认证方法 - 仅支持“无需认证”（0x00）
2. 命令 - 仅支持 CONNECT（0x01），BIND 和 UDP ASSOCIATE 返回 0x07
3. 地址类型 - IPv4、域名、IPv6

握手请求格式:
┌─────────┬────────────┬──────────────┐
│ VER     │ NMETHODS   │ METHODS      │
│ 1 字节  │  1 字节    │ 1-255 字节   │
└─────────┴────────────┴──────────────┘

连接请求格式:
┌─────────┬─────────┬─────────┬─────────┬──────────────┬──────────────┐
│ VER     │ CMD     │ RSV     │ ATYP    │ DST.ADDR     │ DST.PORT     │
│ 1 字节  │ 1 字节  │ 1 字节  │ 1 字节  │ 可变长度     │ 2 字节       │
└─────────┴─────────┴─────────┴─────────┴──────────────┴──────────────┘

应答与请求长度、布局完全相同，只覆盖偏移 1 处的 REP 字节。
"""

import struct
import logging
from enum import IntEnum
from typing import Optional, Tuple
from dataclasses import dataclass

logger = logging.getLogger('socks5-protocol')


# ============================================================================
# 协议常量
# ============================================================================

SOCKS_VERSION = 0x05
ADDRESS_OFFSET = 3  # ATYP 字段位于请求的第 4 个字节


class AuthMethod(IntEnum):
    """握手阶段的认证方法"""
    NO_AUTH = 0x00
    USERPASS = 0x02


class Command(IntEnum):
    """连接请求中的 CMD 字段"""
    CONNECT = 0x01
    BIND = 0x02
    UDP_ASSOCIATE = 0x03


class AddressType(IntEnum):
    """连接请求中的 ATYP 字段"""
    IPV4 = 0x01
    DOMAIN = 0x03
    IPV6 = 0x04


class Reply(IntEnum):
    """应答中的 REP 字段"""
    SUCCEEDED = 0x00
    GENERAL_FAILURE = 0x01
    COMMAND_NOT_SUPPORTED = 0x07


# ============================================================================
# 异常
# ============================================================================

class SocksError(ValueError):
    """SOCKS5 协议错误的基类"""


class ProtocolVersionMismatch(SocksError):
    """客户端在握手或请求中发送了非 5 的版本号"""


class UnsupportedAuthMethod(SocksError):
    """客户端没有提供“无需认证”方法"""


class UnsupportedCommand(SocksError):
    """CMD 不是 CONNECT"""

    def __init__(self, command: int):
        super().__init__(f"不支持的命令: 0x{command:02x}")
        self.command = command


class AddressDecodeFailure(SocksError):
    """ATYP 不在 IPv4/域名/IPv6 之内"""

    def __init__(self, address_type: Optional[int]):
        if address_type is None:
            super().__init__("请求缺少地址类型字段")
        else:
            super().__init__(f"未知的地址类型: 0x{address_type:02x}")
        self.address_type = address_type


class MalformedRequest(SocksError):
    """请求数据块过短，无法取出完整字段"""


class TransportError(OSError):
    """客户端或目标端的套接字错误"""


class ConnectionClosed(TransportError):
    """对端在消息到达之前关闭了连接"""


# ============================================================================
# 请求结构
# ============================================================================

@dataclass
class HandshakeRequest:
    """
    握手请求

    Attributes:
        version: 协议版本号
        nmethods: 客户端声明的方法数量
        methods: 客户端提供的认证方法列表
    """
    version: int
    nmethods: int
    methods: bytes

    def offers(self, method: int) -> bool:
        """客户端是否提供了指定的认证方法"""
        return method in self.methods


@dataclass
class ConnectRequest:
    """
    连接请求

    Attributes:
        version: 协议版本号
        command: 命令（CONNECT/BIND/UDP ASSOCIATE）
        address_type: 地址类型
        address: 解码后的目标地址文本
        port: 目标端口
        raw: 原始请求字节，应答以此为模板
    """
    version: int
    command: int
    address_type: int
    address: str
    port: int
    raw: bytes


# ============================================================================
# 地址解码
# ============================================================================

def read_address(data: bytes, offset: int) -> Optional[Tuple[str, int]]:
    """
    从请求中解码目标地址

    Args:
        data: 请求数据块
        offset: ATYP 字段的偏移

    Returns:
        Optional[Tuple[str, int]]: (地址文本, 地址字段长度)，地址类型未知时返回 None。
            域名的长度不包含长度前缀字节本身。
    """
    if offset >= len(data):
        return None
    address_type = data[offset]

    if address_type == AddressType.IPV4:
        address = '.'.join(str(b) for b in data[offset + 1:offset + 5])
        return address, 4

    if address_type == AddressType.DOMAIN:
        length = data[offset + 1] if offset + 1 < len(data) else 0
        domain = data[offset + 2:offset + 2 + length].decode('utf-8', errors='replace')
        return domain, length

    if address_type == AddressType.IPV6:
        # 每个字节的十六进制直接拼接，不补零也不加冒号，与旧版服务器的日志保持一致
        address = ''.join(format(b, 'x') for b in data[offset + 1:offset + 17])
        return address, 16

    logger.debug(f"无法解码的地址类型: 0x{address_type:02x}")
    return None


# ============================================================================
# 解析
# ============================================================================

def parse_handshake(data: bytes) -> HandshakeRequest:
    """
    解析握手请求

    Args:
        data: 连接上收到的第一个数据块

    Returns:
        HandshakeRequest: 握手请求

    Raises:
        ProtocolVersionMismatch: 版本号不是 5
        UnsupportedAuthMethod: 没有提供“无需认证”方法
    """
    if not data or data[0] != SOCKS_VERSION:
        raise ProtocolVersionMismatch(f"握手版本号无效: {data[:1].hex() or '空'}")

    nmethods = data[1] if len(data) > 1 else 0
    request = HandshakeRequest(
        version=data[0],
        nmethods=nmethods,
        methods=bytes(data[2:2 + nmethods])
    )

    if not request.offers(AuthMethod.NO_AUTH):
        raise UnsupportedAuthMethod(f"客户端不支持无认证方式: methods={request.methods.hex()}")

    return request


def parse_connect_request(data: bytes) -> ConnectRequest:
    """
    解析连接请求

    地址先于命令解析，所以地址类型无效的 BIND 请求同样以地址错误结束，
    不会收到 0x07 应答。命令检查由会话完成。

    Args:
        data: 握手之后收到的数据块

    Returns:
        ConnectRequest: 连接请求

    Raises:
        ProtocolVersionMismatch: 版本号不是 5
        AddressDecodeFailure: 地址类型未知
        MalformedRequest: 数据块不足以包含端口
    """
    if not data or data[0] != SOCKS_VERSION:
        raise ProtocolVersionMismatch(f"请求版本号无效: {data[:1].hex() or '空'}")

    decoded = read_address(data, ADDRESS_OFFSET)
    if decoded is None:
        address_type = data[ADDRESS_OFFSET] if len(data) > ADDRESS_OFFSET else None
        raise AddressDecodeFailure(address_type)
    address, size = decoded

    # 域名的长度前缀占 1 字节，这里统一加 1
    port_offset = ADDRESS_OFFSET + size + 1
    try:
        port = struct.unpack_from('>H', data, port_offset)[0]
    except struct.error:
        raise MalformedRequest(f"请求过短: len={len(data)}, 端口偏移={port_offset}")

    return ConnectRequest(
        version=data[0],
        command=data[1] if len(data) > 1 else 0,
        address_type=data[ADDRESS_OFFSET],
        address=address,
        port=port,
        raw=bytes(data)
    )


# ============================================================================
# 应答
# ============================================================================

def make_handshake_reply(method: int = AuthMethod.NO_AUTH) -> bytes:
    """创建握手应答: VER + METHOD"""
    return bytes([SOCKS_VERSION, method])


def make_reply(request: bytes, rep: int) -> bytes:
    """
    以原始请求为模板创建应答

    BND.ADDR/BND.PORT 不重新计算，直接回显请求中的地址字段。

    Args:
        request: 原始请求字节
        rep: 应答码

    Returns:
        bytes: 与请求等长的应答
    """
    reply = bytearray(request)
    reply[1] = rep
    return bytes(reply)
