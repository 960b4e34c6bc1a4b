# SPDX-License-Identifier: Apache-2.0
"""Shared infrastructure: SQLite pooling, messaging and monitoring."""
