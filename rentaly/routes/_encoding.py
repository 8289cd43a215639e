"""
JSON rendering shared by the route handlers and the error handlers.

Handlers return plain dicts; money in them is Decimal. FastAPI's own Decimal
encoding has changed between releases (float in some, string in others), so
responses are encoded here with amounts as two-decimal strings ("4000.00").
"""

from decimal import Decimal
from typing import Any

from fastapi.encoders import jsonable_encoder

from rentaly.utils.money import money_text

MONEY_ENCODER = {Decimal: money_text}


def render(content: Any) -> Any:
    """Encode a response body, rendering every Decimal as money text."""
    return jsonable_encoder(content, custom_encoder=MONEY_ENCODER)
