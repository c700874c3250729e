"""Configures the logging system for a module."""
import os
import sys
import logging
from logging.handlers import RotatingFileHandler

def settings(script_path):
    """Return a file logger named after *script_path*.

    Each module gets its own rotating log under ``utils/logs`` so a long
    export run can be inspected per component afterwards.
    """
    script_name = os.path.basename(script_path)
    root = os.path.dirname(os.path.dirname(__file__))
    log_name = script_name.rsplit('.', 1)[0] + '.log'
    log_file = os.path.join(root, 'logs', log_name)
    os.makedirs(os.path.dirname(log_file), exist_ok=True)

    logger = logging.getLogger(f"perplexport.{script_name}")

    # Prevent adding multiple handlers
    if not logger.handlers:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=1024*1024*10,  # 10 MB
            backupCount=10,
            encoding='utf-8'
        )
        formatter = logging.Formatter(
            '%(asctime)s %(levelname)s [%(filename)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

    # Progress lines carry emoji; keep stdout UTF-8 where the stream allows it
    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding='utf-8')

    return logger
