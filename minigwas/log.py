import logging


# Configure logging
def setup_logger(log_file: str = "minigwas.log"):
    """Setup logger with both file and stream handlers"""
    logger = logging.getLogger("minigwas")
    logger.setLevel(logging.INFO)
    # turn off propagation to parent logger
    logger.propagate = False

    # avoid duplicated handlers when the module is reloaded
    if logger.handlers:
        return logger

    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s',
                                  datefmt='%Y-%m-%d %H:%M:%S')

    fh = logging.FileHandler(log_file, delay=True)
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setFormatter(formatter)
    logger.addHandler(ch)

    return logger

# create logger instance
logger = setup_logger()
