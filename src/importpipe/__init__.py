# SPDX-License-Identifier: Apache-2.0
"""importpipe package initialization."""

__version__ = "0.1.0"

__all__ = [
    "cli",
    "imports",
    "metrics",
    "__version__",
]
