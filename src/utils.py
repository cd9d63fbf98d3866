import logging
import traceback
import warnings
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


def run_func_dict(kwargs: Dict, func: Callable) -> Optional[Any]:
    """Run ``func(**kwargs)`` logging its outcome.

    Meant to be used with ``functools.partial`` inside a process pool, so that a
    failing job is logged and returns None instead of stopping the whole pool.
    """
    logger.info(f"Starting execution of {func.__name__} with arguments: {kwargs}")
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", category=FutureWarning)
            result = func(**kwargs)
        logger.info(f"Successfully executed {func.__name__} with result: {result}")
        return result
    except Exception as e:
        logger.error(f"Error occurred while executing {func.__name__}: {e}")
        logger.debug(traceback.format_exc())
