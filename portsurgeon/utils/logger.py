"""
PortSurgeon Logging System
Singleton logger with console output and a UTF-8 audit trail of every
termination and container action.
"""
import logging
import sys
from typing import Optional

from portsurgeon.core.config import Config


class Logger:
    """Singleton logger shared by every module of the process."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Logger, cls).__new__(cls)
            cls._instance._initialize_logger(Config())
        return cls._instance

    def _initialize_logger(self, config: Config) -> None:
        """Console handler plus the audit file named in the configuration."""
        self.logger = logging.getLogger("portsurgeon")
        self.logger.setLevel(getattr(logging, config.log_level))

        if self.logger.hasHandlers():
            self.logger.handlers.clear()

        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        if sys.platform == "win32":
            try:
                sys.stdout.reconfigure(encoding='utf-8')
            except Exception:
                pass

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        self.log_file = config.log_file
        try:
            file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)
        except (PermissionError, FileNotFoundError):
            self.log_file = None

    def debug(self, msg: str) -> None:
        self.logger.debug(msg)

    def info(self, msg: str) -> None:
        self.logger.info(msg)

    def warning(self, msg: str) -> None:
        self.logger.warning(msg)

    def error(self, msg: str) -> None:
        self.logger.error(msg)

    def success(self, msg: str) -> None:
        self.logger.info(f"[SUCCESS] {msg}")

    def audit(self, action: str, target: str, pid: int, port: Optional[int],
              success: bool, message: str) -> None:
        """One greppable line per operator action, refused ones included."""
        where = f":{port}" if port is not None else ""
        line = (f"[AUDIT] {action} {target} (pid {pid}{where}) "
                f"{'OK' if success else 'FAILED'}: {message}")
        if success:
            self.logger.info(line)
        else:
            self.logger.warning(line)
