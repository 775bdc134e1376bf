"""
Notification payload parsing and template context mapping.

Payloads are stored as text. A payload that decodes to a JSON object is
structured; anything else is kept verbatim as raw text.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from degov.models.domain.notification import NotificationRecord
from degov.models.external.indexer import VoteCast

VOTE_SUPPORT_LABELS = {0: "Against", 1: "For", 2: "Abstain"}


@dataclass(slots=True, frozen=True)
class StructuredPayload:
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class RawPayload:
    text: str


NotificationPayload = StructuredPayload | RawPayload


def parse_payload(payload: str | None) -> NotificationPayload:
    if not payload:
        return StructuredPayload({})

    try:
        decoded = json.loads(payload)
    except json.JSONDecodeError:
        return RawPayload(payload)

    if isinstance(decoded, dict):
        return StructuredPayload(decoded)
    return RawPayload(payload)


def vote_payload(vote: VoteCast) -> str:
    """Serialize the vote fields templates need into a structured payload."""
    return json.dumps(
        {
            "vote_id": vote.id,
            "voter": vote.voter,
            "support": vote.support,
            "support_label": VOTE_SUPPORT_LABELS.get(vote.support, "Unknown"),
            "weight": vote.weight,
            "reason": vote.reason or "",
            "block_number": vote.block_number,
            "transaction_hash": vote.transaction_hash,
        },
        sort_keys=True,
    )


def build_template_context(
    record: NotificationRecord,
    *,
    dao_name: str,
    proposal_title: str | None = None,
    vote: VoteCast | None = None,
) -> dict[str, Any]:
    """Explicit field mapping from a notification record to template variables."""
    context: dict[str, Any] = {
        "event_id": record.event_id,
        "notification_type": record.type.value,
        "dao_code": record.dao_code,
        "dao_name": dao_name,
        "proposal_id": record.proposal_id,
        "proposal_title": proposal_title or record.proposal_id,
        "user_id": record.user_id,
        "user_address": record.user_address,
        "vote": None,
        "payload_data": {},
        "payload_raw": None,
    }

    if vote is not None:
        context["vote"] = {
            "id": vote.id,
            "voter": vote.voter,
            "support": VOTE_SUPPORT_LABELS.get(vote.support, "Unknown"),
            "weight": vote.weight,
            "reason": vote.reason or "",
            "transaction_hash": vote.transaction_hash,
        }

    payload = parse_payload(record.payload)
    if isinstance(payload, StructuredPayload):
        context["payload_data"] = payload.data
    else:
        context["payload_raw"] = payload.text

    return context
