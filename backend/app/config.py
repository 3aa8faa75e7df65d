import os
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()

# Comma-separated list of allowed CORS origins
ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:3000,http://localhost:3001"
    ).split(",") if o.strip()
]

NOISY_LOGGERS = ('urllib3', 'httpx', 'httpcore', 'openai', 'botocore', 'boto3', 's3transfer', 'pdfminer')


def setup_logging():
    """Configure application logging"""
    log_level = getattr(logging, LOG_LEVEL, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    logger = logging.getLogger('planscope')
    logger.setLevel(log_level)

    # Third-party clients log every request at INFO
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
