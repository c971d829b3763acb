import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

LOGGER_NAME = "urban_rag"


def setup_logger(
  name: str = LOGGER_NAME,
  log_file: Optional[str] = "logs/urban_rag.log",
  level: str = "INFO"
) -> logging.Logger:
  """
  Pipeline logger setup: console always, file when log_file is given

  Args:
    name: Logger name
    log_file: Path to log file (None disables the file handler)
    level: Log level (DEBUG, INFO, WARNING, ERROR)
  """
  logger = logging.getLogger(name)
  logger.setLevel(getattr(logging, level.upper()))

  # Clear existing handlers
  logger.handlers.clear()

  console_handler = logging.StreamHandler(sys.stdout)
  console_handler.setFormatter(logging.Formatter(
    "%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%H:%M:%S"
  ))
  logger.addHandler(console_handler)

  if log_file:
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, encoding='utf-8')
    file_handler.setFormatter(logging.Formatter(
      "%(asctime)s - %(levelname)s - %(name)s - %(filename)s:%(lineno)d - %(message)s",
      datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(file_handler)

  return logger


def setup_logger_from_config(config: Dict[str, Any], debug: bool = False) -> logging.Logger:
  """Configure the pipeline logger from the 'logging' config section"""
  logging_config = config.get('logging', {})
  level = "DEBUG" if debug else logging_config.get('level', 'INFO')
  return setup_logger(
    log_file=logging_config.get('log_file', 'logs/urban_rag.log'),
    level=level
  )


def get_logger(component: str) -> logging.Logger:
  """Child logger of the pipeline logger, e.g. urban_rag.stages"""
  return logging.getLogger(LOGGER_NAME).getChild(component)


# Global logger instance
logger = logging.getLogger(LOGGER_NAME)
