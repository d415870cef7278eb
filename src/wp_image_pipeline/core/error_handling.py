# src/wp_image_pipeline/core/error_handling.py

import functools
import logging
import time

import requests
from PIL import Image, UnidentifiedImageError

from .exceptions import (
    DecodeError,
    ImagesPipelineError,
    SourceNotFoundError,
    TransformError,
)

RETRYABLE_HTTP_STATUS_CODES = (429, 502, 503, 504)


class RetryableHTTPError(SourceNotFoundError):
    """A transient HTTP failure that may succeed when attempted again."""

    def __init__(self, message: str, status_code=None):
        super().__init__(message)
        self.status_code = status_code


def with_error_handling(func):
    """
    A decorator to wrap functions with standardized error handling.

    Pipeline errors are re-raised untouched. Foreign exceptions
    are mapped onto the pipeline hierarchy: Pillow decode failures become
    DecodeError, requests failures become SourceNotFoundError (or
    RetryableHTTPError for timeouts and dropped connections), and anything
    else raised inside an image transform becomes TransformError.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__ + "." + func.__name__)
        try:
            return func(*args, **kwargs)
        except ImagesPipelineError as e:
            # Logged with a traceback where it was mapped or handled
            logger.debug(f"Error in '{func.__name__}': {e}")
            raise
        except (UnidentifiedImageError, Image.DecompressionBombError) as e:
            logger.error(f"Error in '{func.__name__}': {e}", exc_info=True)
            raise DecodeError(f"Failed to decode image in {func.__name__}: {e}") from e
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.error(f"Error in '{func.__name__}': {e}", exc_info=True)
            raise RetryableHTTPError(
                f"HTTP request failed in {func.__name__}: {e}"
            ) from e
        except requests.RequestException as e:
            logger.error(f"Error in '{func.__name__}': {e}", exc_info=True)
            raise SourceNotFoundError(
                f"HTTP request failed in {func.__name__}: {e}"
            ) from e
        except (ValueError, OSError) as e:
            logger.error(f"Error in '{func.__name__}': {e}", exc_info=True)
            if func.__module__.endswith((".transforms", ".scramble", ".codec")):
                raise TransformError(
                    f"Image transformation error in {func.__name__}: {e}"
                ) from e
            raise

    return wrapper


def retry_http_operation(max_attempts=1, initial_delay=1.0, backoff_factor=2):
    """
    Decorator to retry HTTP operations with exponential backoff.

    Only RetryableHTTPError is retried; any other error propagates at once.
    The default of a single attempt means no retry.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = logging.getLogger(func.__module__ + "." + func.__name__)
            attempts = 0
            delay = initial_delay
            while True:
                try:
                    return func(*args, **kwargs)
                except RetryableHTTPError as e:
                    attempts += 1
                    if attempts >= max_attempts:
                        if max_attempts > 1:
                            logger.error(
                                f"HTTP operation '{func.__name__}' failed after "
                                f"{max_attempts} attempts. Error: {e}"
                            )
                        raise
                    logger.info(
                        f"HTTP operation '{func.__name__}' failed. Attempt {attempts}/{max_attempts}. "
                        f"Retrying in {delay:.2f}s. Error: {e}"
                    )
                    time.sleep(delay)
                    delay *= backoff_factor

        return wrapper

    return decorator


class BatchOperationContextManager:
    """
    Context manager for batch operations to collect and summarize errors.
    """

    def __init__(self, operation_name="Batch Operation"):
        self.operation_name = operation_name
        self.errors = []
        self.logger = logging.getLogger(
            self.__class__.__module__ + "." + self.__class__.__name__
        )

    def __enter__(self):
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )
        elif self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                item_identifier = error_detail.get("item", "Unknown item")
                error_message = error_detail.get("error", "Unknown error")
                self.logger.error(
                    f"  Error {i+1}/{len(self.errors)} for item '{item_identifier}': {error_message}"
                )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.")

        # Never suppress exceptions raised inside the block
        return False

    def add_error(self, error_message: str, item_identifier: str = "Unknown item"):
        """
        Report an error for a specific item within the 'with' block.

        Args:
            error_message (str): The error message or exception string.
            item_identifier (str): A string identifying the item that failed.
        """
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(
            f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}"
        )
