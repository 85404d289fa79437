from __future__ import annotations

import logging
from contextlib import contextmanager

from django.db import DatabaseError

logger = logging.getLogger(__name__)

PERIOD_OVER_MESSAGE = "La période de participation est terminée pour aujourd'hui."
OUT_OF_STOCK_MESSAGE = "Dommage ! Ce cadeau est épuisé pour votre ville. Veuillez réessayer."


class SpinError(Exception):
    """Base class for every rejected spin.

    ``code`` is stable for API clients, ``user_message`` is what the player
    sees. Only :class:`StoreUnavailable` may be retried blindly.
    """

    code = "spin_error"
    user_message = "Une erreur est survenue. Veuillez réessayer."
    retryable = False


class AlreadySpun(SpinError):
    code = "already_spun"
    user_message = "Vous avez déjà tourné la roue avec ce ticket."


class NoLongerAvailable(SpinError):
    code = "no_longer_available"
    user_message = OUT_OF_STOCK_MESSAGE


class GlobalLimitReached(SpinError):
    code = "global_limit_reached"
    user_message = PERIOD_OVER_MESSAGE


class VenueStockNotConfigured(SpinError):
    code = "venue_stock_not_configured"
    user_message = PERIOD_OVER_MESSAGE


class VenueStockExhausted(SpinError):
    code = "venue_stock_exhausted"
    user_message = OUT_OF_STOCK_MESSAGE


class StoreUnavailable(SpinError):
    code = "store_unavailable"
    user_message = "Service momentanément indisponible. Veuillez réessayer."
    retryable = True


class NotFound(SpinError):
    code = "not_found"
    user_message = "Élément introuvable."


class ParticipationError(Exception):
    """Raised when a registration is rejected before any ticket is issued."""


@contextmanager
def translate_store_errors():
    """Turn raw database failures into :class:`StoreUnavailable`."""

    try:
        yield
    except DatabaseError as exc:
        logger.exception("Store failure: %s", exc)
        raise StoreUnavailable(str(exc)) from exc
