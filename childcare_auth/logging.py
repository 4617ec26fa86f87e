import logging

LOG_FORMAT_DEBUG = "%(levelname)s:%(message)s:%(pathname)s:%(funcName)s:%(lineno)d"
LOG_FORMAT_STANDARD = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_AUDIT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s %(event_data)s"

VALID_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def configure_logging(log_level: str = "INFO"):
    """Configure root logging plus a dedicated handler for the audit trail"""
    log_level = str(log_level).upper()
    if log_level not in VALID_LEVELS:
        log_level = "INFO"

    level = getattr(logging, log_level, logging.INFO)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT_DEBUG if log_level == "DEBUG" else LOG_FORMAT_STANDARD,
        force=True  # Override any existing configuration
    )

    # Audit records carry a JSON payload in `event_data`; give them their own
    # formatter and keep them out of the root handler so they print once.
    audit_logger = logging.getLogger("audit")
    audit_logger.handlers.clear()
    audit_handler = logging.StreamHandler()
    audit_handler.setFormatter(logging.Formatter(LOG_FORMAT_AUDIT))
    audit_logger.addHandler(audit_handler)
    audit_logger.propagate = False
    audit_logger.setLevel(logging.INFO)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured with level: {log_level}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name"""
    return logging.getLogger(name)
