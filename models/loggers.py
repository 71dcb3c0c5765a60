import logging
import os

admin_logger = logging.getLogger('admin_actions')
admin_logger.setLevel(logging.INFO)


def init_admin_log(path):
    """Attach the admin action file handler once per log path."""
    path = os.path.abspath(path)
    for handler in admin_logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == path:
            return
    fh = logging.FileHandler(path)
    fh.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(message)s'))
    admin_logger.addHandler(fh)


def tail_admin_log(path, lines=50):
    if not os.path.exists(path):
        return []
    with open(path, 'r', encoding='utf-8') as f:
        return f.readlines()[-lines:]
