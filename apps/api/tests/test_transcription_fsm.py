"""Transcription status transition rules."""

from __future__ import annotations

from datetime import UTC, datetime
import unittest

from app.domain.transcription_fsm import (
    allowed_next_statuses,
    ensure_retryable,
    ensure_transition,
    is_terminal,
    transition_changes,
)
from app.errors import ApiError
from app.schemas.transcription import TranscriptionStatus


class TranscriptionFsmUnitTests(unittest.TestCase):
    def test_allowed_transitions_across_lifecycle(self) -> None:
        allowed_pairs = [
            (TranscriptionStatus.PENDING, TranscriptionStatus.PROCESSING),
            (TranscriptionStatus.PROCESSING, TranscriptionStatus.COMPLETED),
            (TranscriptionStatus.PROCESSING, TranscriptionStatus.FAILED),
            (TranscriptionStatus.COMPLETED, TranscriptionStatus.PENDING),
            (TranscriptionStatus.FAILED, TranscriptionStatus.PENDING),
        ]
        for old_status, new_status in allowed_pairs:
            with self.subTest(old_status=old_status, new_status=new_status):
                ensure_transition(old_status, new_status)

    def test_forbidden_transitions_return_contract_shape(self) -> None:
        invalid_pairs = [
            (TranscriptionStatus.PENDING, TranscriptionStatus.COMPLETED),
            (TranscriptionStatus.PENDING, TranscriptionStatus.FAILED),
            (TranscriptionStatus.PENDING, TranscriptionStatus.PENDING),
            (TranscriptionStatus.PROCESSING, TranscriptionStatus.PENDING),
            (TranscriptionStatus.PROCESSING, TranscriptionStatus.PROCESSING),
            (TranscriptionStatus.COMPLETED, TranscriptionStatus.PROCESSING),
            (TranscriptionStatus.FAILED, TranscriptionStatus.COMPLETED),
        ]
        for old_status, new_status in invalid_pairs:
            with self.subTest(old_status=old_status, new_status=new_status):
                with self.assertRaises(ApiError) as context:
                    ensure_transition(old_status, new_status)
                self.assertEqual(context.exception.status_code, 409)
                self.assertEqual(context.exception.payload.code, "FSM_TRANSITION_INVALID")
                details = context.exception.payload.details
                self.assertEqual(details["current_status"], old_status)
                self.assertEqual(details["attempted_status"], new_status)
                self.assertEqual(details["allowed_next_statuses"], allowed_next_statuses(old_status))

    def test_only_settled_states_are_terminal_and_retryable(self) -> None:
        self.assertTrue(is_terminal(TranscriptionStatus.COMPLETED))
        self.assertTrue(is_terminal(TranscriptionStatus.FAILED))
        ensure_retryable(TranscriptionStatus.COMPLETED)
        ensure_retryable(TranscriptionStatus.FAILED)

        for status in (TranscriptionStatus.PENDING, TranscriptionStatus.PROCESSING):
            with self.subTest(status=status):
                self.assertFalse(is_terminal(status))
                with self.assertRaises(ApiError) as context:
                    ensure_retryable(status)
                self.assertEqual(context.exception.status_code, 400)
                self.assertEqual(context.exception.payload.code, "RETRY_NOT_ALLOWED_STATE")
                self.assertEqual(context.exception.payload.details, {"current_status": status})


class TransitionChangesUnitTests(unittest.TestCase):
    def setUp(self) -> None:
        self.now = datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC)

    def test_processing_sets_start_and_clears_results(self) -> None:
        changes = transition_changes(TranscriptionStatus.PROCESSING, now=self.now)

        self.assertEqual(changes["status"], TranscriptionStatus.PROCESSING)
        self.assertEqual(changes["processing_started_at"], self.now)
        self.assertIsNone(changes["processing_completed_at"])
        self.assertIsNone(changes["transcription_text"])
        self.assertIsNone(changes["confidence_score"])
        self.assertIsNone(changes["error_message"])

    def test_completed_requires_text_and_confidence(self) -> None:
        with self.assertRaises(ValueError):
            transition_changes(TranscriptionStatus.COMPLETED, now=self.now, transcription_text="hola")

        changes = transition_changes(
            TranscriptionStatus.COMPLETED,
            now=self.now,
            transcription_text="hola",
            confidence_score=0.8,
        )
        self.assertEqual(changes["transcription_text"], "hola")
        self.assertEqual(changes["confidence_score"], 0.8)
        self.assertIsNone(changes["error_message"])
        self.assertEqual(changes["processing_completed_at"], self.now)

    def test_failed_records_message_and_drops_results(self) -> None:
        changes = transition_changes(TranscriptionStatus.FAILED, now=self.now, error_message="boom")

        self.assertEqual(changes["error_message"], "boom")
        self.assertIsNone(changes["transcription_text"])
        self.assertIsNone(changes["confidence_score"])
        self.assertEqual(changes["processing_completed_at"], self.now)

        fallback = transition_changes(TranscriptionStatus.FAILED, now=self.now)
        self.assertEqual(fallback["error_message"], "Transcription failed")

    def test_pending_resets_every_result_field(self) -> None:
        changes = transition_changes(TranscriptionStatus.PENDING, now=self.now)

        for field_name in (
            "transcription_text",
            "confidence_score",
            "error_message",
            "processing_started_at",
            "processing_completed_at",
        ):
            with self.subTest(field_name=field_name):
                self.assertIsNone(changes[field_name])


if __name__ == "__main__":
    unittest.main()
