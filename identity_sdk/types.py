"""SDK data contract types."""

from __future__ import annotations

from typing import Literal

ErrorKind = Literal[
    "argument",
    "load",
    "local_validation",
    "malformed_token",
    "signature_invalid",
    "token_claim_invalid",
    "service",
    "transport",
    "malformed_response",
]
