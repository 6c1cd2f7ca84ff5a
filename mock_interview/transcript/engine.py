import logging

from mock_interview.transcript.rules import MergeAction, merge_final_segment

logger = logging.getLogger("transcript")


class AnswerAccumulator:
    """Per-turn answer state: reconciled finals plus the latest interim as fallback."""

    def __init__(self, confidence_threshold: float = 0.5):
        self.confidence_threshold = float(confidence_threshold)
        self.accumulated = ""
        self.last_final = ""
        self.last_interim = ""

    def reset(self) -> None:
        self.accumulated = ""
        self.last_final = ""
        self.last_interim = ""

    def apply_final(self, text: str, confidence: float) -> MergeAction:
        segment = str(text or "").strip()
        if not segment:
            return MergeAction.DISCARD

        if float(confidence or 0.0) > self.confidence_threshold:
            self.accumulated, self.last_final, action = merge_final_segment(
                self.accumulated, self.last_final, segment
            )
        elif not self.accumulated:
            # low-confidence final is better than nothing
            self.accumulated = segment
            self.last_final = segment
            action = MergeAction.FIRST
        else:
            action = MergeAction.DISCARD

        logger.debug("final segment | action=%s confidence=%.2f", action.value, float(confidence or 0.0))
        return action

    def apply_interim(self, text: str) -> None:
        interim = str(text or "").strip()
        if interim:
            self.last_interim = interim

    def best_transcript(self) -> str:
        return (self.accumulated or self.last_interim or "").strip()
