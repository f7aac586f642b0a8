import logging
import os
import sys

LOGGER_NAME = "boq_estimator"


def get_logger():
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)

    # Handlers are rebuilt on every call so LOG_FILE changes take effect
    logger.handlers = []

    LOG_FILE = os.environ.get("LOG_FILE")

    try:
        if LOG_FILE:
            LOG_FILE = os.path.normpath(LOG_FILE)
            log_dir = os.path.dirname(LOG_FILE)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
        else:
            handler = logging.StreamHandler(sys.stdout)

        formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        # Propagation stays on so pytest's caplog can see records
        logger.propagate = True
    except Exception as e:
        print(f"Error setting up logging: {str(e)}")
        raise

    return logger


def configure_quiet_logging():
    """
    Suppress verbose logging from third-party libraries.
    Call this early in app startup to reduce log noise.
    """
    # Only show werkzeug errors, not every request line
    logging.getLogger('werkzeug').setLevel(logging.ERROR)

    # SQLAlchemy engine logs only at warning and above
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    # fontTools is pulled in by reportlab and is chatty at INFO
    logging.getLogger('fontTools').setLevel(logging.WARNING)


logger = get_logger()
