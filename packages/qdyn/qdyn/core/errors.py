"""qdyn: Error Taxonomy and Logging
-------------------------------

Self-contained error hierarchy and shared logger for the qdyn package.

Error Hierarchy
---------------
- QDError: Base exception for all qdyn errors
- ConstructionError: Incompatible bases or dimensions (100-199)
- InvalidInput: Invalid solver input detected before integration (200-299)
- IntegrationError: Integration aborted, e.g. step-size collapse (300-399)
- RunCancelled: Cooperative cancellation of a run (400)
- QDConfigError: Configuration and job-file errors (500-599)
- QDIOError: Persistence errors (600-699)

Warning Hierarchy
-----------------
- QDWarning: Base warning for all qdyn warnings
- IntegrationWarning: Integration finished with a partial trajectory
- NormalizationDrift: Norm or trace left its tolerance band

Logging
-------
The shared logger is named "qdyn" and can be configured for console and
file output with optional JSON formatting. Python warnings are captured
into logging with adjustable levels.
"""

import logging
import os

__all__ = [
    "QDError",
    "ConstructionError",
    "InvalidInput",
    "IntegrationError",
    "RunCancelled",
    "QDConfigError",
    "QDIOError",
    "QDWarning",
    "IntegrationWarning",
    "NormalizationDrift",
    "get_logger",
    "configure_logging",
]


# =============================================================================
# Exception Hierarchy
# =============================================================================


class QDError(Exception):
    """Base exception for all qdyn errors.

    Examples
    --------
    >>> try:
    ...     raise ConstructionError("[100] basis mismatch")
    ... except QDError as e:
    ...     print(e)
    [100] basis mismatch

    """


class ConstructionError(QDError):
    """Incompatible bases or dimensions (Code 100-199).

    Raised when operators, states or tensor products are built from operands
    whose bases do not match. Fatal and never retried.
    """


class InvalidInput(QDError):
    """Invalid solver input (Code 200-299).

    Raised before integration starts, e.g. for a non-monotonic time grid, a
    non-Hermitian Hamiltonian or a jump operator on the wrong basis.
    """


class IntegrationError(QDError):
    """Integration failure (Code 300-399).

    Raised when the adaptive step size collapses below its floor or the step
    budget is exhausted. Aborts only the run that encountered it.
    """


class RunCancelled(QDError):
    """A run was cancelled through its cancellation event (Code 400)."""


class QDConfigError(QDError):
    """Configuration-related errors (Code 500-599)."""


class QDIOError(QDError):
    """Persistence errors (Code 600-699)."""


# =============================================================================
# Warning Hierarchy
# =============================================================================


class QDWarning(Warning):
    """Base warning for all qdyn warnings."""


class IntegrationWarning(QDWarning):
    """Integration stopped early and a partial trajectory was returned."""


class NormalizationDrift(QDWarning):
    """Norm, trace or Hermiticity deviates from its invariant beyond tolerance."""


# =============================================================================
# Logger Configuration
# =============================================================================

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_JSON_FORMAT = (
    '{"time":"%(asctime)s","level":"%(levelname)s",'
    '"logger":"%(name)s","msg":"%(message)s"}'
)

_logger: logging.Logger | None = None


def get_logger() -> logging.Logger:
    """Get the shared qdyn logger instance.

    Returns
    -------
    logging.Logger
        The singleton logger named "qdyn", INFO level by default with a
        console handler. Handlers are created lazily on first use.

    Examples
    --------
    >>> get_logger().name
    'qdyn'

    """
    global _logger
    if _logger is None:
        _logger = logging.getLogger("qdyn")
        _logger.setLevel(logging.INFO)
        if not _logger.handlers:
            h = logging.StreamHandler()
            h.setFormatter(logging.Formatter(_FORMAT))
            _logger.addHandler(h)
    return _logger


def configure_logging(
    verbose: bool = False,
    log_file: str | None = None,
    as_json: bool = False,
    suppress_warnings: bool = False,
) -> None:
    """Configure the shared logger outputs and warning capture.

    Parameters
    ----------
    verbose : bool, default False
        When True, set logger level to DEBUG; otherwise INFO.
    log_file : str or None, default None
        Optional file path to append logs to.
    as_json : bool, default False
        Emit logs as compact JSON lines when True; otherwise plain text.
    suppress_warnings : bool, default False
        Route Python warnings into logging and raise their level to ERROR when
        True; otherwise capture warnings at WARNING level.

    Raises
    ------
    QDConfigError
        - [501] The log file could not be opened.

    """
    logger = get_logger()
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    fmt = logging.Formatter(_JSON_FORMAT if as_json else _FORMAT)
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    if log_file:
        try:
            fh = logging.FileHandler(os.fspath(log_file), encoding="utf-8")
        except OSError as e:
            raise QDConfigError(f"[501] Cannot open log file {log_file}: {e}") from e
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    logging.captureWarnings(True)
    logging.getLogger("py.warnings").setLevel(
        logging.ERROR if suppress_warnings else logging.WARNING
    )
