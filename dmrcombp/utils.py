# File: dmrcombp/utils.py
# Location: dmrcombp/dmrcombp/utils.py

"""
Utility functions module.

Provides gzip-aware file opening and output path helpers shared by the
loaders and the output writers.
"""

import gzip
import logging
import os

logger = logging.getLogger("dmrcombp")


def smart_open(filename: str, mode: str = "r", encoding: str = "utf-8"):
    """
    Open a file with automatic gzip support based on file extension.

    Parameters
    ----------
    filename : str
        Path to the file
    mode : str
        File opening mode ('r', 'w', 'rt', 'wt', etc.)
    encoding : str
        Text encoding (for text modes)

    Returns
    -------
    file object
        Opened file handle
    """
    if filename.endswith(".gz"):
        # Ensure text mode for gzip
        if "t" not in mode and "b" not in mode:
            mode = mode + "t"
        return gzip.open(filename, mode, encoding=encoding)
    else:
        # For regular files, only add encoding for text mode
        if "b" not in mode:
            return open(filename, mode, encoding=encoding)
        else:
            return open(filename, mode)


def ensure_directory(path: str) -> str:
    """
    Create ``path`` (and parents) if it does not exist.

    Parameters
    ----------
    path : str
        Directory path

    Returns
    -------
    str
        The same path, for chaining
    """
    if not os.path.isdir(path):
        logger.debug(f"Creating directory: {path}")
        os.makedirs(path, exist_ok=True)
    return path
