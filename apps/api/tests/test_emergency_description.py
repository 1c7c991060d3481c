from sqlalchemy.orm import Session

from rescue.db.enums import MessageRole
from rescue.db.models import ChatMessage, Intake
from rescue.services.emergency_description import (
    build_emergency_description,
    strip_html,
    truncate,
)


def _intake_with(db: Session, messages, species="owl") -> Intake:
    intake = Intake(species=species, description="found on road")
    db.add(intake)
    db.flush()
    for role, content, pending in messages:
        db.add(ChatMessage(intake_id=intake.id, role=role, content=content, pending=pending))
        db.flush()
    db.commit()
    db.refresh(intake)
    return intake


def test_uses_first_sentence_of_latest_assessment(db: Session):
    intake = _intake_with(
        db,
        [
            (MessageRole.USER.value, "wing droops", False),
            (MessageRole.ASSISTANT.value, "The owl may have a broken wing. Keep it calm.", False),
            (MessageRole.USER.value, "it is bleeding", False),
            (
                MessageRole.ASSISTANT.value,
                "<p>The owl is <b>bleeding</b> &amp; needs care now. Press gently.</p>",
                False,
            ),
            (MessageRole.ASSISTANT.value, "Thinking", True),
        ],
    )

    assert build_emergency_description(intake) == "The owl is bleeding & needs care now."


def test_long_assessment_is_truncated(db: Session):
    intake = _intake_with(
        db, [(MessageRole.ASSISTANT.value, "word " * 80 + ". Next.", False)]
    )

    description = build_emergency_description(intake)

    assert len(description) == 150
    assert description.endswith("...")


def test_falls_back_to_user_messages(db: Session):
    intake = _intake_with(
        db,
        [
            (MessageRole.USER.value, "wing droops", False),
            (MessageRole.USER.value, "found on road", False),
            (MessageRole.ASSISTANT.value, "Analyzing", True),
        ],
    )

    assert build_emergency_description(intake) == "A owl with wing droops. found on road"


def test_generic_description_without_messages(db: Session):
    intake = _intake_with(db, [], species="fox")
    assert build_emergency_description(intake) == "A fox emergency"


def test_strip_html_drops_script_content():
    assert strip_html("<script>alert(1)</script><p>Safe text</p>") == "Safe text"


def test_truncate_keeps_short_text():
    assert truncate("short", 10) == "short"
    assert truncate("0123456789abc", 10) == "0123456..."
