import os

from .constants import DATA_DIR_ENV, DB_FILENAME


def get_data_dir():
    # Explicit override first, then a per-user directory.
    base = os.environ.get(DATA_DIR_ENV, "").strip()
    if not base:
        base = os.path.join(os.path.expanduser("~"), ".gourava")

    os.makedirs(base, exist_ok=True)
    return base


def get_db_path():
    return os.path.join(get_data_dir(), DB_FILENAME)
