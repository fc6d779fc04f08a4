"""
Logging configuration for Fargatestack

Provides structured logging with both console output and file logging.
Output of external commands (pulumi, esc, git, container runtime) is
directed to dedicated files in the logs/ directory.
"""

import logging
import logging.handlers
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


def setup_logging(
    log_dir: str = "logs",
    verbose: bool = False,
    log_level: Optional[str] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Set up logging for Fargatestack operations.

    Args:
        log_dir: Directory for log files
        verbose: Enable verbose console output
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        enable_file_logging: Whether to write logs to files

    Returns:
        Configured logger instance
    """
    log_path = Path(log_dir)
    if enable_file_logging:
        log_path.mkdir(parents=True, exist_ok=True)
        (log_path / "commands").mkdir(exist_ok=True)

    if log_level:
        level = getattr(logging, log_level.upper(), logging.INFO)
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if enable_file_logging:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_path / f"fargatestack_{timestamp}.log"

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,  # 10MB files, 5 backups
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logger = logging.getLogger("fargatestack")
    logger.debug(f"Logging initialized - Level: {logging.getLevelName(level)}")
    if enable_file_logging:
        logger.debug(f"Log directory: {log_path.absolute()}")

    return logger


def get_command_log_file(operation: str, log_dir: str = "logs") -> str:
    """
    Generate timestamped log file path for an external command operation.

    Args:
        operation: Operation name (e.g., 'pulumi_up', 'image_build')
        log_dir: Base log directory

    Returns:
        Full path to log file for command output
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    safe_operation = re.sub(r"[^A-Za-z0-9_.-]", "_", operation)
    log_file = Path(log_dir) / "commands" / f"{safe_operation}_{timestamp}.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)
    return str(log_file)


def mask_sensitive_data(message: str) -> str:
    """
    Mask sensitive information in log messages.

    Args:
        message: Log message that may contain sensitive data

    Returns:
        Message with sensitive information masked
    """
    # Pulumi access tokens
    message = re.sub(r"pul-[0-9a-fA-F]{8,}", "pul-***", message)

    # Token and credential assignments, e.g. PULUMI_ACCESS_TOKEN=..., AWS_SESSION_TOKEN: ...
    message = re.sub(
        r"((?:PULUMI_ACCESS_TOKEN|AWS_SECRET_ACCESS_KEY|AWS_SESSION_TOKEN)[\"']?\s*[=:]\s*[\"']?)[^\s\"',}]+",
        r"\1***",
        message,
    )

    # AWS access key ids
    message = re.sub(r"\b(AKIA|ASIA)[0-9A-Z]{12,}\b", r"\1***", message)

    # Password parameters
    message = re.sub(
        r"(password[=\s]+)[^\s]+", r"\1***", message, flags=re.IGNORECASE
    )

    return message


class SubprocessLogHandler:
    """
    Handler for external command operations with dedicated logging.
    """

    def __init__(self, operation: str, log_dir: Optional[str] = "logs"):
        """
        Initialize command log handler.

        Args:
            operation: Name of the operation being logged
            log_dir: Base directory for log files, or None to log only
                through the regular logger hierarchy
        """
        self.operation = operation
        self.log_file = get_command_log_file(operation, log_dir) if log_dir else None
        self.logger = logging.getLogger(f"fargatestack.command.{operation}")
        self.logger.setLevel(logging.DEBUG)

        if self.log_file and not any(
            getattr(h, "baseFilename", None) == str(Path(self.log_file).absolute())
            for h in self.logger.handlers
        ):
            handler = logging.FileHandler(self.log_file)
            handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(levelname)s - %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            self.logger.addHandler(handler)

    def log_command(self, command: list[str]) -> None:
        """Log the command being executed."""
        masked_command = [mask_sensitive_data(arg) for arg in command]
        self.logger.info(f"Executing command: {' '.join(masked_command)}")

    def log_output(self, output: str, level: int = logging.INFO) -> None:
        """Log command output."""
        if output.strip():
            masked_output = mask_sensitive_data(output.strip())
            self.logger.log(level, masked_output)

    def log_completion(self, return_code: int, elapsed_time: float) -> None:
        """Log command completion."""
        if return_code == 0:
            self.logger.info(
                f"✓ {self.operation} completed successfully in {elapsed_time:.2f}s"
            )
        else:
            self.logger.error(
                f"✗ {self.operation} failed with return code {return_code} after {elapsed_time:.2f}s"
            )

    def get_log_file_path(self) -> Optional[str]:
        """Get the path to the log file for this operation."""
        return self.log_file


def configure_third_party_loggers() -> None:
    """Configure third-party library loggers to reduce noise."""
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


configure_third_party_loggers()
