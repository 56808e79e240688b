#!/usr/bin/env python3
"""
配置、日志与命令行测试

测试内容:
1. YAML 配置文件加载
2. 端口优先级（命令行 > 配置文件 > 默认值）
3. 日志配置与环境变量覆盖
4. 日志上下文在并发任务之间隔离
5. 命令行参数解析

使用方法:
    python3 test_config.py
    pytest test_config.py
"""

import asyncio
import logging
import os
import tempfile

from config import DEFAULT_PORT, ServerConfig, build_server_config, load_config
from logger import ContextFilter, LoggerManager, add_context, clear_context
from server import build_parser


def _write_temp(content: str) -> str:
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False, encoding='utf-8') as f:
        f.write(content)
        return f.name


def test_default_config():
    config = ServerConfig()
    assert config.port == DEFAULT_PORT == 4378
    assert config.reply_on_connect_failure is False


def test_load_missing_config():
    assert load_config('/nonexistent/socks5-config.yaml') == {}


def test_load_invalid_config():
    path = _write_temp("server: [unclosed\n")
    try:
        assert load_config(path) == {}
    finally:
        os.unlink(path)


def test_load_config_file():
    path = _write_temp(
        "server:\n"
        "  host: 127.0.0.1\n"
        "  port: 1080\n"
        "  read_size: 4096\n"
        "  reply_on_connect_failure: true\n"
    )
    try:
        config = build_server_config(load_config(path))
    finally:
        os.unlink(path)

    assert config.host == '127.0.0.1'
    assert config.port == 1080
    assert config.read_size == 4096
    assert config.reply_on_connect_failure is True


def test_port_precedence():
    data = {'server': {'port': 1080}}
    assert build_server_config({}).port == 4378
    assert build_server_config(data).port == 1080
    assert build_server_config(data, port=9050).port == 9050


def test_log_config_env_override():
    os.environ['LOG_LEVEL'] = 'DEBUG'
    try:
        log_config = LoggerManager.config_from_dict({'logging': {'level': 'WARNING', 'enable_file': True}})
    finally:
        del os.environ['LOG_LEVEL']

    assert log_config.level == 'DEBUG'
    assert log_config.enable_file is True
    assert log_config.context_fields == ['client', 'phase']


def test_context_is_isolated_between_tasks():
    """每个连接任务只能看到自己的上下文"""
    context_filter = ContextFilter(['client', 'phase'])

    async def session(name: str) -> str:
        add_context(client=name, phase='init')
        await asyncio.sleep(0.01)
        record = logging.LogRecord('test', logging.INFO, __file__, 0, 'msg', None, None)
        context_filter.filter(record)
        return record.context

    async def run():
        return await asyncio.gather(session('a'), session('b'))

    first, second = asyncio.run(run())
    assert first == 'client=a | phase=init'
    assert second == 'client=b | phase=init'


def test_clear_context():
    add_context(client='x')
    clear_context()
    assert ContextFilter.get_context() == {}


def test_cli_port_argument():
    parser = build_parser()
    assert parser.parse_args([]).port is None
    assert parser.parse_args(['1080']).port == 1080
    args = parser.parse_args(['9050', '--debug', '-c', 'proxy.yaml'])
    assert args.port == 9050
    assert args.debug is True
    assert args.config == 'proxy.yaml'


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
