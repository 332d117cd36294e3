# This project was developed with assistance from AI tools.
"""Human-readable notification messages.

``compose_message`` is a pure function: an action name maps through an
enum-keyed table to a formatter. Unknown actions fall through to a generic
sentence so message composition can never be the reason a notification
fails to persist.
"""

import enum
from collections.abc import Callable


class NotificationAction(str, enum.Enum):
    PROOF_SUBMITTED = "proof_submitted"
    PROOF_SUBMISSION_ERROR = "proof_submission_error"
    PROOF_APPROVED = "proof_approved"
    PROOF_REJECTED = "proof_rejected"
    INCOME_PROOF_ATTACHED = "income_proof_attached"
    RESIDENCY_PROOF_ATTACHED = "residency_proof_attached"
    INCOME_PROOF_REJECTED = "income_proof_rejected"
    RESIDENCY_PROOF_REJECTED = "residency_proof_rejected"
    PROOFS_PURGED = "proofs_purged"
    MAX_REJECTIONS_WARNING = "max_rejections_warning"
    MAX_REJECTIONS_REACHED = "max_rejections_reached"
    DOCUMENTS_REQUESTED = "documents_requested"
    REVIEW_REQUESTED = "review_requested"
    MEDICAL_CERTIFICATION_REQUESTED = "medical_certification_requested"
    MEDICAL_CERTIFICATION_RECEIVED = "medical_certification_received"
    MEDICAL_CERTIFICATION_APPROVED = "medical_certification_approved"
    MEDICAL_CERTIFICATION_REJECTED = "medical_certification_rejected"
    EVALUATOR_ASSIGNED = "evaluator_assigned"
    TRAINER_ASSIGNED = "trainer_assigned"
    VOUCHER_ASSIGNED = "voucher_assigned"

    @classmethod
    def parse(cls, value) -> "NotificationAction | None":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None


def humanize(value: str) -> str:
    text = str(value).replace("_", " ").strip()
    return text[:1].upper() + text[1:]


def _ref(notifiable) -> str:
    return "" if notifiable is None else str(getattr(notifiable, "id", "") or "")


def _proof_label(context: dict) -> str:
    proof_type = context.get("proof_type")
    return humanize(proof_type).title() if proof_type else "Proof"


def _with_reason(reason) -> str:
    return f" - {reason}" if reason else ""


def _proof_rejected(notifiable, actor, context) -> str:
    return (
        f"{_proof_label(context)} rejected for application #{_ref(notifiable)}"
        f"{_with_reason(context.get('rejection_reason'))}."
    )


def _proof_approved(notifiable, actor, context) -> str:
    return f"{_proof_label(context)} approved for application #{_ref(notifiable)}."


def _proof_attached(notifiable, actor, context) -> str:
    return f"{_proof_label(context)} received for application #{_ref(notifiable)}."


def _proof_submitted(notifiable, actor, context) -> str:
    types = ", ".join(context.get("proof_types") or []) or "proof"
    return f"New {types} documents submitted for application #{_ref(notifiable)} need review."


def _proof_submission_error(notifiable, actor, context) -> str:
    target = f" for application #{_ref(notifiable)}" if notifiable is not None else ""
    return f"Proof documents emailed{target} could not be processed{_with_reason(context.get('error'))}."


def _certification(verb: str) -> Callable:
    def _message(notifiable, actor, context) -> str:
        return f"Medical certification {verb} for application #{_ref(notifiable)}"

    return _message


def _certification_rejected(notifiable, actor, context) -> str:
    return (
        f"Medical certification rejected for application #{_ref(notifiable)}"
        f"{_with_reason(context.get('reason'))}."
    )


def _documents_requested(notifiable, actor, context) -> str:
    return f"Documents requested for application #{_ref(notifiable)}"


def _review_requested(notifiable, actor, context) -> str:
    return f"Review requested for application #{_ref(notifiable)}"


def _trainer_assigned(notifiable, actor, context) -> str:
    trainer_name = context.get("trainer_name") or getattr(actor, "full_name", None) or "A trainer"
    constituent_name = context.get("constituent_name") or "a constituent"
    status = context.get("training_session_status")
    status_info = f" ({humanize(status)})" if status else ""
    return (
        f"{trainer_name} assigned to train {constituent_name} "
        f"for Application #{_ref(notifiable)}{status_info}."
    )


def _evaluator_assigned(notifiable, actor, context) -> str:
    evaluator_name = context.get("evaluator_name") or "An evaluator"
    return f"{evaluator_name} assigned to evaluate application #{_ref(notifiable)}."


def _voucher_assigned(notifiable, actor, context) -> str:
    code = context.get("voucher_code")
    suffix = f" (code {code})" if code else ""
    return f"Voucher issued for application #{_ref(notifiable)}{suffix}."


def _max_rejections_warning(notifiable, actor, context) -> str:
    return (
        f"Application #{_ref(notifiable)} has reached "
        f"{context.get('total_rejections', 'the maximum number of')} proof rejections."
    )


def _max_rejections_reached(notifiable, actor, context) -> str:
    return (
        f"Application #{_ref(notifiable)} was archived after exceeding "
        "the maximum number of proof rejections."
    )


def _proofs_purged(notifiable, actor, context) -> str:
    return f"Proof documents for application #{_ref(notifiable)} were removed by staff."


def _default(action: str, notifiable) -> str:
    subject = "" if notifiable is None else type(notifiable).__name__
    message = f"{humanize(action)} notification regarding {subject} #{_ref(notifiable)}."
    return " ".join(message.split())


_MESSAGES: dict[NotificationAction, Callable] = {
    NotificationAction.PROOF_REJECTED: _proof_rejected,
    NotificationAction.INCOME_PROOF_REJECTED: _proof_rejected,
    NotificationAction.RESIDENCY_PROOF_REJECTED: _proof_rejected,
    NotificationAction.PROOF_APPROVED: _proof_approved,
    NotificationAction.INCOME_PROOF_ATTACHED: _proof_attached,
    NotificationAction.RESIDENCY_PROOF_ATTACHED: _proof_attached,
    NotificationAction.PROOF_SUBMITTED: _proof_submitted,
    NotificationAction.PROOF_SUBMISSION_ERROR: _proof_submission_error,
    NotificationAction.PROOFS_PURGED: _proofs_purged,
    NotificationAction.MAX_REJECTIONS_WARNING: _max_rejections_warning,
    NotificationAction.MAX_REJECTIONS_REACHED: _max_rejections_reached,
    NotificationAction.DOCUMENTS_REQUESTED: _documents_requested,
    NotificationAction.REVIEW_REQUESTED: _review_requested,
    NotificationAction.MEDICAL_CERTIFICATION_REQUESTED: _certification("requested"),
    NotificationAction.MEDICAL_CERTIFICATION_RECEIVED: _certification("received"),
    NotificationAction.MEDICAL_CERTIFICATION_APPROVED: _certification("approved"),
    NotificationAction.MEDICAL_CERTIFICATION_REJECTED: _certification_rejected,
    NotificationAction.EVALUATOR_ASSIGNED: _evaluator_assigned,
    NotificationAction.TRAINER_ASSIGNED: _trainer_assigned,
    NotificationAction.VOUCHER_ASSIGNED: _voucher_assigned,
}


def compose_message(action, notifiable=None, actor=None, context: dict | None = None) -> str:
    """Render the message for ``action``; never raises for unknown actions."""
    context = context or {}
    kind = NotificationAction.parse(action)
    formatter = _MESSAGES.get(kind) if kind is not None else None
    if formatter is None:
        return _default(kind.value if kind is not None else str(action), notifiable)
    return formatter(notifiable, actor, context)
