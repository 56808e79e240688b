#!/usr/bin/env python3
"""
SOCKS5 协议解析测试

测试内容:
1. 地址解码（IPv4、域名、IPv6、未知类型）
2. 握手请求解析
3. 连接请求解析
4. 应答构造

使用方法:
    python3 test_protocol.py
    pytest test_protocol.py
"""

import struct

import pytest

from protocol import (
    AddressDecodeFailure,
    AuthMethod,
    Command,
    MalformedRequest,
    ProtocolVersionMismatch,
    Reply,
    UnsupportedAuthMethod,
    make_handshake_reply,
    make_reply,
    parse_connect_request,
    parse_handshake,
    read_address,
)


def test_read_address_ipv4():
    """IPv4 地址解码为点分十进制"""
    data = bytes([0x05, 0x01, 0x00, 0x01, 127, 0, 0, 1, 0x00, 0x50])
    assert read_address(data, 3) == ("127.0.0.1", 4)


def test_read_address_domain():
    """域名长度不包含长度前缀"""
    data = bytes([0x05, 0x01, 0x00, 0x03, 9]) + b"localhost" + b"\x00\x50"
    assert read_address(data, 3) == ("localhost", 9)


def test_read_address_domain_utf8():
    name = "例子.测试".encode('utf-8')
    data = bytes([0x05, 0x01, 0x00, 0x03, len(name)]) + name + b"\x01\xbb"
    address, size = read_address(data, 3)
    assert address == "例子.测试"
    assert size == len(name)


def test_read_address_ipv6_keeps_unpadded_hex():
    """IPv6 每个字节的十六进制直接拼接，不补零"""
    raw = bytes([0x20, 0x01, 0x0d, 0xb8] + [0] * 11 + [0x01])
    data = bytes([0x05, 0x01, 0x00, 0x04]) + raw + b"\x00\x50"
    address, size = read_address(data, 3)
    assert size == 16
    assert address == "201db8" + "0" * 11 + "1"


def test_read_address_unknown_type():
    data = bytes([0x05, 0x01, 0x00, 0x02, 127, 0, 0, 1, 0x00, 0x50])
    assert read_address(data, 3) is None


def test_parse_handshake_selects_no_auth():
    request = parse_handshake(bytes([0x05, 0x02, 0x02, 0x00]))
    assert request.nmethods == 2
    assert request.offers(AuthMethod.NO_AUTH)
    assert make_handshake_reply() == b"\x05\x00"


def test_parse_handshake_bad_version():
    with pytest.raises(ProtocolVersionMismatch):
        parse_handshake(bytes([0x04, 0x01, 0x00]))


def test_parse_handshake_without_no_auth():
    with pytest.raises(UnsupportedAuthMethod):
        parse_handshake(bytes([0x05, 0x01, 0x02]))


def test_parse_handshake_methods_limited_by_count():
    """NMETHODS 之外的字节不算作提供的方法"""
    with pytest.raises(UnsupportedAuthMethod):
        parse_handshake(bytes([0x05, 0x01, 0x02, 0x00]))


def test_parse_handshake_truncated():
    with pytest.raises(UnsupportedAuthMethod):
        parse_handshake(bytes([0x05]))


def test_parse_connect_request_ipv4():
    data = bytes.fromhex("05010001 7f000001 0050")
    request = parse_connect_request(data)
    assert request.command == Command.CONNECT
    assert request.address == "127.0.0.1"
    assert request.port == 80
    assert request.raw == data


def test_parse_connect_request_domain_port():
    data = bytes([0x05, 0x01, 0x00, 0x03, 11]) + b"example.com" + struct.pack('>H', 443)
    request = parse_connect_request(data)
    assert request.address == "example.com"
    assert request.port == 443


def test_parse_connect_request_high_port_is_unsigned():
    data = bytes.fromhex("05010001 7f000001") + struct.pack('>H', 50000)
    assert parse_connect_request(data).port == 50000


def test_parse_connect_request_bind_is_parsed():
    """命令检查由会话完成，解析器照常返回 BIND 请求"""
    data = bytes.fromhex("05020001 7f000001 0050")
    assert parse_connect_request(data).command == Command.BIND


def test_parse_connect_request_bad_version():
    with pytest.raises(ProtocolVersionMismatch):
        parse_connect_request(bytes.fromhex("04010001 7f000001 0050"))


def test_parse_connect_request_unknown_address_type():
    with pytest.raises(AddressDecodeFailure) as excinfo:
        parse_connect_request(bytes.fromhex("05010009 7f000001 0050"))
    assert excinfo.value.address_type == 0x09


def test_parse_connect_request_missing_port():
    with pytest.raises(MalformedRequest):
        parse_connect_request(bytes.fromhex("05010001 7f000001"))


def test_make_reply_keeps_length_and_address():
    request = bytes.fromhex("05020001 7f000001 0050")
    reply = make_reply(request, Reply.COMMAND_NOT_SUPPORTED)
    assert len(reply) == len(request)
    assert reply[1] == 0x07
    assert reply[:1] + reply[2:] == request[:1] + request[2:]


def main():
    """以脚本方式运行所有测试"""
    tests = [(name, func) for name, func in sorted(globals().items())
             if name.startswith('test_') and callable(func)]

    passed = 0
    failed = 0
    for name, test_func in tests:
        try:
            test_func()
            print(f"✓ PASS | {name}")
            passed += 1
        except Exception as e:
            print(f"✗ FAIL | {name} | {type(e).__name__}: {e}")
            failed += 1

    print("=" * 60)
    print(f"测试结果: 通过={passed}, 失败={failed}")
    print("=" * 60)
    return failed == 0


if __name__ == '__main__':
    exit(0 if main() else 1)
