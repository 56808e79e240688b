"""
SOCKS5 代理 - 日志管理模块

版本: 1.0.0

功能概述:
本模块提供了完整的日志管理功能，包括：
1. 多级别日志记录（DEBUG, INFO, WARNING, ERROR, CRITICAL）
2. 日志轮转（按大小）
3. 结构化日志格式（时间戳、级别、连接上下文）
4. 配置文件和环境变量支持
5. 异常捕获和错误追踪

主要功能:
1. 初始化日志系统
2. 配置日志处理器（控制台、文件、系统日志）
3. 日志轮转管理
4. 连接上下文记录（每个连接独立，互不可见）
5. 异常捕获和记录
"""

import contextvars
import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

try:
    from systemd.journal import JournalHandler
    HAS_JOURNAL = True
except ImportError:
    HAS_JOURNAL = False


DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(context)s] - %(message)s"

# 每个连接在独立的 asyncio 任务中运行，任务拥有各自的上下文副本
_context_var: contextvars.ContextVar = contextvars.ContextVar('socks5_log_context', default={})


@dataclass
class LogConfig:
    """
    日志配置数据类

    Attributes:
        level: 日志级别（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        log_dir: 日志存储目录
        log_file: 日志文件名
        max_bytes: 单个日志文件最大大小（字节）
        backup_count: 保留的备份文件数量
        rotation_type: 轮转类型（size, none）
        format_string: 日志格式字符串
        enable_console: 是否输出到控制台
        enable_file: 是否输出到文件
        enable_journal: 是否输出到系统日志
        context_fields: 上下文字段列表
    """
    level: str = "INFO"
    log_dir: str = "logs"
    log_file: str = "socks5-proxy.log"
    max_bytes: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 10
    rotation_type: str = "size"  # size, none
    format_string: str = DEFAULT_FORMAT
    enable_console: bool = True
    enable_file: bool = False
    enable_journal: bool = False
    context_fields: list = None

    def __post_init__(self):
        if self.context_fields is None:
            self.context_fields = ["client", "phase"]


class ContextFilter(logging.Filter):
    """
    上下文过滤器

    为日志记录添加当前连接的上下文信息
    """

    def __init__(self, context_fields: list = None):
        super().__init__()
        self.context_fields = context_fields or []

    @staticmethod
    def add_context(**kwargs):
        """
        添加上下文信息（只影响当前任务）

        Args:
            **kwargs: 上下文键值对
        """
        context = dict(_context_var.get())
        context.update(kwargs)
        _context_var.set(context)

    @staticmethod
    def clear_context():
        """
        清除上下文信息
        """
        _context_var.set({})

    @staticmethod
    def get_context() -> Dict[str, Any]:
        return dict(_context_var.get())

    def filter(self, record):
        """
        过滤日志记录，添加上下文信息

        Args:
            record: 日志记录对象

        Returns:
            bool: 总是返回 True
        """
        context_data = _context_var.get()
        context_parts = []
        for field in self.context_fields:
            value = context_data.get(field, "-")
            context_parts.append(f"{field}={value}")

        record.context = " | ".join(context_parts) or "-"
        return True


class LogFormatter(logging.Formatter):
    """
    自定义日志格式化器

    支持彩色输出和结构化格式
    """

    COLORS = {
        'DEBUG': '\033[36m',      # 青色
        'INFO': '\033[32m',       # 绿色
        'WARNING': '\033[33m',    # 黄色
        'ERROR': '\033[31m',      # 红色
        'CRITICAL': '\033[35m',   # 紫色
    }
    RESET = '\033[0m'

    def __init__(self, fmt=None, datefmt=None, style='%', use_color=False):
        super().__init__(fmt, datefmt, style)
        self.use_color = use_color

    def format(self, record):
        # 确保context字段存在
        if not hasattr(record, 'context'):
            record.context = "-"

        levelname = record.levelname
        if self.use_color and levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"

        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class LoggerManager:
    """
    日志管理器

    管理日志系统的初始化、配置和运行
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        """
        单例模式
        """
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self.config = None
            self.context_filter = None
            self.loggers = {}
            self._initialized = True

    @staticmethod
    def config_from_dict(config_data: Optional[Dict[str, Any]] = None) -> LogConfig:
        """
        从配置数据的 logging 段构造日志配置，环境变量优先

        Args:
            config_data: 配置文件内容（config.load_config 的返回值）

        Returns:
            LogConfig: 日志配置对象
        """
        log_config = (config_data or {}).get('logging') or {}
        defaults = LogConfig()

        def flag(env_name: str, key: str, default: bool) -> bool:
            return os.getenv(env_name, str(log_config.get(key, default))).lower() == 'true'

        return LogConfig(
            level=os.getenv('LOG_LEVEL', log_config.get('level', defaults.level)),
            log_dir=os.getenv('LOG_DIR', log_config.get('log_dir', defaults.log_dir)),
            log_file=os.getenv('LOG_FILE', log_config.get('log_file', defaults.log_file)),
            max_bytes=int(os.getenv('LOG_MAX_BYTES', log_config.get('max_bytes', defaults.max_bytes))),
            backup_count=int(os.getenv('LOG_BACKUP_COUNT', log_config.get('backup_count', defaults.backup_count))),
            rotation_type=os.getenv('LOG_ROTATION_TYPE', log_config.get('rotation_type', defaults.rotation_type)),
            format_string=os.getenv('LOG_FORMAT', log_config.get('format_string', defaults.format_string)),
            enable_console=flag('LOG_ENABLE_CONSOLE', 'enable_console', defaults.enable_console),
            enable_file=flag('LOG_ENABLE_FILE', 'enable_file', defaults.enable_file),
            enable_journal=flag('LOG_ENABLE_JOURNAL', 'enable_journal', defaults.enable_journal),
            context_fields=log_config.get('context_fields', defaults.context_fields)
        )

    def initialize(self, config: Optional[LogConfig] = None, config_data: Optional[Dict[str, Any]] = None):
        """
        初始化日志系统

        Args:
            config: 日志配置对象（可选）
            config_data: 配置文件内容（可选）
        """
        self.config = config or self.config_from_dict(config_data)
        self.context_filter = ContextFilter(self.config.context_fields)

        if self.config.enable_file:
            self._setup_log_directory()
        self._setup_root_logger()

    def _setup_log_directory(self):
        log_dir = Path(self.config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

    def _level(self) -> int:
        return getattr(logging, self.config.level.upper(), logging.INFO)

    def _setup_root_logger(self):
        """
        设置根日志记录器
        """
        root_logger = logging.getLogger()
        root_logger.setLevel(self._level())

        root_logger.handlers.clear()

        if self.config.enable_console:
            self._add_console_handler(root_logger)

        if self.config.enable_file:
            self._add_file_handler(root_logger)

        if self.config.enable_journal and HAS_JOURNAL:
            self._add_journal_handler(root_logger)

    def _add_handler(self, logger: logging.Logger, handler: logging.Handler):
        # 过滤器挂在处理器上，子记录器传播上来的记录同样会带上上下文
        handler.setLevel(self._level())
        handler.addFilter(self.context_filter)
        logger.addHandler(handler)

    def _add_console_handler(self, logger: logging.Logger):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(LogFormatter(
            fmt=self.config.format_string,
            datefmt='%Y-%m-%d %H:%M:%S',
            use_color=sys.stdout.isatty()
        ))
        self._add_handler(logger, console_handler)

    def _add_file_handler(self, logger: logging.Logger):
        """
        添加文件处理器（支持轮转）

        Args:
            logger: 日志记录器
        """
        log_file_path = Path(self.config.log_dir) / self.config.log_file

        if self.config.rotation_type == 'size':
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_file_path,
                maxBytes=self.config.max_bytes,
                backupCount=self.config.backup_count,
                encoding='utf-8'
            )
        else:
            file_handler = logging.FileHandler(
                filename=log_file_path,
                encoding='utf-8'
            )

        file_handler.setFormatter(LogFormatter(
            fmt=self.config.format_string,
            datefmt='%Y-%m-%d %H:%M:%S',
            use_color=False
        ))
        self._add_handler(logger, file_handler)

    def _add_journal_handler(self, logger: logging.Logger):
        self._add_handler(logger, JournalHandler())

    def get_logger(self, name: str) -> logging.Logger:
        """
        获取日志记录器

        Args:
            name: 日志记录器名称

        Returns:
            logging.Logger: 日志记录器对象
        """
        if name not in self.loggers:
            self.loggers[name] = logging.getLogger(name)
        return self.loggers[name]

    def log_exception(self, logger: logging.Logger, message: str = "发生异常"):
        """
        记录异常信息（包含堆栈）

        Args:
            logger: 日志记录器
            message: 日志消息
        """
        logger.error(message, exc_info=True)


def get_logger(name: str) -> logging.Logger:
    """
    获取日志记录器（便捷函数）
    """
    return LoggerManager().get_logger(name)


def add_context(**kwargs):
    """
    添加上下文信息（便捷函数）

    Args:
        **kwargs: 上下文键值对
    """
    ContextFilter.add_context(**kwargs)


def clear_context():
    """
    清除上下文信息（便捷函数）
    """
    ContextFilter.clear_context()


def log_exception(logger: logging.Logger, message: str = "发生异常"):
    """
    记录异常信息（便捷函数）
    """
    LoggerManager().log_exception(logger, message)
