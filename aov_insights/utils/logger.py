"""
Logging configuration

Console output plus three daily files under the log directory:
- aov_insights_<date>.log  everything at INFO and above
- errors_<date>.log        ERROR and above
- analysis_<date>.log      records from the analysis engine and orchestrator
                           (aov_insights.ml, aov_insights.services), one JSON
                           object per line
"""
from loguru import logger
import os
import sys
from typing import Optional

from aov_insights.config import get_settings

settings = get_settings()

ANALYSIS_MODULES = ("aov_insights.ml", "aov_insights.services")

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def is_analysis_record(record) -> bool:
    """True for records emitted by the engine or the orchestrator"""
    name = record["name"] or ""
    return any(name == module or name.startswith(module + ".") for module in ANALYSIS_MODULES)


def setup_logger(level: Optional[str] = None, log_dir: Optional[str] = None, analysis_file: Optional[bool] = None):
    """Configure sinks; arguments default to the settings"""
    level = level or settings.log_level
    log_dir = log_dir or settings.log_dir
    analysis_file = settings.log_analysis_runs if analysis_file is None else analysis_file

    logger.remove()  # Remove default handler
    os.makedirs(log_dir, exist_ok=True)

    logger.add(sys.stdout, colorize=True, format=CONSOLE_FORMAT, level=level)

    logger.add(
        os.path.join(log_dir, "aov_insights_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention="30 days",
        compression="zip",
        level="INFO",
    )

    logger.add(
        os.path.join(log_dir, "errors_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention="90 days",
        level="ERROR",
    )

    if analysis_file:
        logger.add(
            os.path.join(log_dir, "analysis_{time:YYYY-MM-DD}.log"),
            rotation="00:00",
            retention="30 days",
            level=level,
            filter=is_analysis_record,
            serialize=True,
        )

    return logger


# Initialize logger
log = setup_logger()
