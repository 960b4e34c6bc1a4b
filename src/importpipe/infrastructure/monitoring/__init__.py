# SPDX-License-Identifier: Apache-2.0
"""Monitoring infrastructure."""

from .event_handlers import register

__all__ = ["register"]
