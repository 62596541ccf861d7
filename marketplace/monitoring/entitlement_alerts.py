"""
Alert signals for the entitlement engine and the purchase recorder.

Evaluation failures must be distinguishable from legitimate denials in the
logs: a denial is a normal False result, a failure is a storage problem that
was failed closed.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)


def emit_evaluation_failure(user_id: str, node_id: Optional[str], error_message: str) -> None:
    """A check could not be evaluated and was treated as denied."""
    logger.error(
        "entitlement.evaluation_failed",
        extra={"user_id": user_id, "node_id": node_id, "error": error_message},
    )


def emit_denied(user_id: str, node_id: str) -> None:
    logger.debug("entitlement.denied", extra={"user_id": user_id, "node_id": node_id})


def emit_duplicate_reference(user_id: str, payment_ref: str, existing_purchase_id: str) -> None:
    """Payment reference replayed with a different payload; needs human follow-up."""
    logger.error(
        "purchase.duplicate_reference",
        extra={
            "user_id": user_id,
            "payment_ref": payment_ref,
            "existing_purchase_id": existing_purchase_id,
        },
    )
