#!/usr/bin/env python3
"""
SOCKS5 代理服务端

版本: 1.0.0

协议:
1. 握手 - 只支持无认证方式
2. 连接请求 - 只支持 CONNECT，地址类型支持 IPv4、域名、IPv6
3. 中继 - 应答发送后连接变为透明的双向字节管道

用法:
    python3 server.py [port] [--config config.yaml] [--debug]

测试:
    curl https://www.example.com/ --socks5 localhost:4378
"""

import argparse
import asyncio
import logging
from typing import List, Optional

from config import build_server_config, load_config
from logger import LoggerManager, get_logger
from proxy import ProxyServer

logger = get_logger('socks5-server')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='SOCKS5 代理服务端')
    parser.add_argument('port', nargs='?', type=int, default=None, help='监听端口（默认: 4378）')
    parser.add_argument('--config', '-c', default='config.yaml', help='配置文件路径（可选）')
    parser.add_argument('--debug', '-d', action='store_true', help='启用调试模式')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """主函数"""
    args = build_parser().parse_args(argv)

    # 加载配置文件，不存在时使用默认值
    config_data = load_config(args.config)

    LoggerManager().initialize(config_data=config_data)
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        for handler in logging.getLogger().handlers:
            handler.setLevel(logging.DEBUG)

    config = build_server_config(config_data, port=args.port)
    server = ProxyServer(config)

    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("服务端已停止")

    return 0


if __name__ == '__main__':
    exit(main())
