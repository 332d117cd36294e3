# This project was developed with assistance from AI tools.
"""Tests for notification message composition."""

import pytest

from src.services.notification_composer import NotificationAction, compose_message, humanize


class Application:
    """Minimal notifiable; the composer only reads ``id`` and the class name."""

    def __init__(self, id):
        self.id = id


class _Person:
    full_name = "Casey Admin"


def test_trainer_assigned_message_includes_names_and_status():
    message = compose_message(
        "trainer_assigned",
        Application(42),
        _Person(),
        {
            "trainer_name": "Pat Trainer",
            "constituent_name": "Jordan Rivera",
            "training_session_status": "requested",
        },
    )
    assert message == "Pat Trainer assigned to train Jordan Rivera for Application #42 (Requested)."


def test_trainer_assigned_falls_back_to_actor_name():
    message = compose_message(NotificationAction.TRAINER_ASSIGNED, Application(5), _Person(), {})
    assert message == "Casey Admin assigned to train a constituent for Application #5."


def test_proof_rejected_includes_reason():
    message = compose_message(
        "income_proof_rejected",
        Application(42),
        None,
        {"proof_type": "income", "rejection_reason": "document is blurry"},
    )
    assert message == "Income rejected for application #42 - document is blurry."


def test_proof_rejected_without_reason():
    message = compose_message("proof_rejected", Application(3), None, {"proof_type": "residency"})
    assert message == "Residency rejected for application #3."


def test_certification_requested():
    message = compose_message("medical_certification_requested", Application(8))
    assert message == "Medical certification requested for application #8"


def test_unknown_action_uses_generic_sentence():
    message = compose_message("something_unexpected", Application(42))
    assert message == "Something unexpected notification regarding Application #42."


def test_unknown_action_without_notifiable_never_raises():
    message = compose_message("something_unexpected", None, None, None)
    assert message == "Something unexpected notification regarding #."


@pytest.mark.parametrize("action", list(NotificationAction))
def test_every_action_composes(action):
    assert compose_message(action, Application(1), _Person(), {})


def test_parse_unknown_returns_none():
    assert NotificationAction.parse("nope") is None
    assert NotificationAction.parse("voucher_assigned") is NotificationAction.VOUCHER_ASSIGNED


def test_humanize():
    assert humanize("max_rejections_reached") == "Max rejections reached"


@pytest.mark.parametrize("value", ["training_requested", "account_created"])
def test_retired_actions_are_not_defined(value):
    assert NotificationAction.parse(value) is None


def test_proof_submission_error_message():
    message = compose_message(
        NotificationAction.PROOF_SUBMISSION_ERROR,
        Application(12),
        None,
        {"error": "No attachments found in email"},
    )
    assert message == (
        "Proof documents emailed for application #12 could not be processed - No attachments found in email."
    )
