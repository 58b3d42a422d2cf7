"""
External quote state machine for EXTERNAL_FIXED stages.

A stage is in one of three states:

    UNPRICED  no selection; price is 0 or a manual override, quotes may exist
    QUOTED    quotes exist but none is selected by the recorded selection
    SELECTED  selected_quote_id names a quote and fixed_price mirrors its price

Every operation returns a new Stage; the input is never mutated. Internal
stages pass through unchanged.
"""
import logging
import uuid
from typing import Optional

from app.models.fee_schema import ExternalQuote, QuoteState, Stage, StageKind

logger = logging.getLogger("archfee-quotes")


def _is_external(stage: Stage, operation: str) -> bool:
    if stage.kind != StageKind.EXTERNAL_FIXED:
        logger.debug("Quote %s ignored on internal stage %s", operation, stage.id)
        return False
    return True


def add_quote(stage: Stage, name: str, price: float, quote_id: Optional[str] = None) -> Stage:
    """Append a quote, select it and sync the stage price to it. Blank names are ignored."""
    if not _is_external(stage, "add") or not name or not name.strip():
        return stage.model_copy(deep=True)
    quote = ExternalQuote(id=quote_id or uuid.uuid4().hex[:10], name=name, price=price)
    updated = stage.model_copy(deep=True)
    updated.external_quotes.append(quote)
    updated.selected_quote_id = quote.id
    updated.fixed_price = quote.price
    return updated


def select_quote(stage: Stage, quote_id: str) -> Stage:
    """
    Select a quote and copy its price.

    An id that matches no quote is still recorded as the selection, and the
    current price is kept.
    """
    if not _is_external(stage, "select"):
        return stage.model_copy(deep=True)
    updated = stage.model_copy(deep=True)
    match = next((q for q in updated.external_quotes if q.id == quote_id), None)
    updated.selected_quote_id = quote_id
    if match is not None:
        updated.fixed_price = match.price
    return updated


def delete_quote(stage: Stage, quote_id: str) -> Stage:
    """
    Remove a quote.

    Deleting the selected quote falls back to the first remaining quote, or to
    the unpriced state (price 0, no selection) if none remain.
    """
    if not _is_external(stage, "delete"):
        return stage.model_copy(deep=True)
    updated = stage.model_copy(deep=True)
    updated.external_quotes = [q for q in updated.external_quotes if q.id != quote_id]
    if stage.selected_quote_id == quote_id:
        if updated.external_quotes:
            updated.selected_quote_id = updated.external_quotes[0].id
            updated.fixed_price = updated.external_quotes[0].price
        else:
            updated.selected_quote_id = None
            updated.fixed_price = 0.0
    return updated


def set_manual_price(stage: Stage, price: float) -> Stage:
    """Override the price directly; always clears the quote selection."""
    if not _is_external(stage, "manual price"):
        return stage.model_copy(deep=True)
    return stage.model_copy(deep=True, update={"fixed_price": price, "selected_quote_id": None})


def quote_state(stage: Stage) -> QuoteState:
    """
    Classify an external stage.

    A cleared selection always reads as UNPRICED, even with quotes on file:
    that is the state a manual price leaves behind. QUOTED is therefore only
    reported for a selection id that matches none of the existing quotes, as
    ``select_quote`` records an unknown id without changing the price.
    """
    if stage.selected_quote_id is None or not stage.external_quotes:
        return QuoteState.UNPRICED
    if any(q.id == stage.selected_quote_id for q in stage.external_quotes):
        return QuoteState.SELECTED
    return QuoteState.QUOTED
