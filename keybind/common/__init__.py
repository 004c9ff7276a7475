# Common utilities
from keybind.common.logging_utils import setup_logger as setup_logger
from keybind.common.mixins import Configurable as Configurable

__all__ = ["Configurable", "setup_logger"]
