"""
SOCKS5 代理 - 配置管理模块
加载配置文件，构造服务器配置。

版本: 1.0.0

功能概述:
本模块提供了配置管理功能，包括：
1. 服务器配置数据类
2. YAML 配置文件的加载
3. 命令行参数、配置文件与默认值的合并

配置文件格式（config.yaml，可选）:
    server:
      host: 0.0.0.0
      port: 4378
      read_size: 65536
      reply_on_connect_failure: false
    logging:
      level: INFO
      enable_file: false

配置文件不存在时使用默认值，命令行给出的端口优先于配置文件。
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_PORT = 4378


# ============================================================================
# 配置数据类
# ============================================================================

@dataclass
class ServerConfig:
    """
    服务器配置数据类

    Attributes:
        host: 服务器监听地址（默认: "0.0.0.0"）
        port: 服务器监听端口（默认: 4378）
        read_size: 单次读取的最大字节数（默认: 65536）
        reply_on_connect_failure: 连接目标失败时是否发送 GENERAL_FAILURE 应答（默认: False，
            与旧版行为一致，客户端只会看到连接被关闭）
    """
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    read_size: int = 65536
    reply_on_connect_failure: bool = False


# ============================================================================
# 配置文件管理函数
# ============================================================================

def load_config(config_file: str) -> Dict[str, Any]:
    """
    加载配置文件

    从 YAML 格式的配置文件中加载配置数据

    Args:
        config_file: 配置文件路径

    Returns:
        Dict[str, Any]: 配置数据字典，如果文件不存在或格式错误则返回空字典
    """
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        logger.warning(f"配置文件格式错误: {e}")
        return {}


def build_server_config(config_data: Dict[str, Any], port: Optional[int] = None) -> ServerConfig:
    """
    构造服务器配置

    端口优先级: 命令行参数 > 配置文件 > 默认值 4378

    Args:
        config_data: load_config 返回的配置数据
        port: 命令行给出的端口（可选）

    Returns:
        ServerConfig: 服务器配置对象
    """
    server_conf = config_data.get('server') or {}
    defaults = ServerConfig()

    return ServerConfig(
        host=server_conf.get('host', defaults.host),
        port=int(port if port is not None else server_conf.get('port', defaults.port)),
        read_size=int(server_conf.get('read_size', defaults.read_size)),
        reply_on_connect_failure=bool(
            server_conf.get('reply_on_connect_failure', defaults.reply_on_connect_failure)
        ),
    )
