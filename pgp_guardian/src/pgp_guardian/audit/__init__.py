from .logger import JsonFormatter, audited, get_logger

__all__ = ["JsonFormatter", "audited", "get_logger"]
