import logging

from rich.logging import RichHandler

"""
Create a global logger instance.
"""

logger = logging.getLogger(__name__)
logger.propagate = False
logger.setLevel(logging.INFO)
logger.addHandler(RichHandler(show_path=False, rich_tracebacks=True))
