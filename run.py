"""Local development entry point."""

import sys

from config import Config
from readingmemory import create_app
from readingmemory.utils.logger import get_logger

logger = get_logger('readingmemory.run')

# Validate configuration before starting the application
try:
    Config.validate_config()
except ValueError as e:
    logger.error('Configuration error', extra={'error': str(e)})
    sys.exit(1)

# Create the Flask application instance
app = create_app()

if __name__ == '__main__':
    logger.info('Starting Reading Memory API', extra={
        'port': Config.PORT,
        'environment': Config.APP_ENV,
        'debug': Config.DEBUG,
    })

    app.run(
        host='0.0.0.0',
        port=Config.PORT,
        debug=Config.DEBUG
    )
