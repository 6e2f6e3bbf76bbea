# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Groupie - shared listening sessions with a polled, eventually consistent queue."""

__version__ = "0.1.0"
