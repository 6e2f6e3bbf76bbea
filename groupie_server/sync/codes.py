# Copyright (C) 2024 Groupie Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Human-entered session codes."""

import secrets
import string

CODE_LENGTH = 5
_ALPHABET = string.digits + string.ascii_uppercase


def generate_session_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def normalize_code(raw: str | None) -> str | None:
    """Codes are case-insensitive. Blank input is no code at all."""
    code = (raw or "").strip().upper()
    return code or None
