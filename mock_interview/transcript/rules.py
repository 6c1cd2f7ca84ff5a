from __future__ import annotations

from enum import Enum


class MergeAction(str, Enum):
    FIRST = "first"
    REPLACE = "replace"
    APPEND = "append"
    DISCARD = "discard"


def merge_final_segment(accumulated: str, last_final: str, segment: str) -> tuple[str, str, MergeAction]:
    """
    Fold one final transcript segment into the answer accumulated so far.

    Providers re-emit refined finals for the same utterance, so:
    - a strict extension of the previous final sitting at the tail replaces that tail,
    - a strict shorter prefix/duplicate of the previous final is dropped,
    - anything else is appended with a separating space.

    Returns (accumulated, last_final, action).
    """
    segment = str(segment or "").strip()
    if not segment:
        return accumulated, last_final, MergeAction.DISCARD

    if not accumulated:
        return segment, segment, MergeAction.FIRST

    previous = str(last_final or "").lower().strip()
    incoming = segment.lower()

    if previous and previous in incoming and len(incoming) > len(previous):
        lowered = accumulated.lower()
        index = lowered.rfind(previous)
        at_end = index != -1 and index + len(previous) >= len(lowered) - 1
        if at_end:
            before = accumulated[:index].strip()
            merged = f"{before} {segment}".strip() if before else segment
            return merged, segment, MergeAction.REPLACE
        return f"{accumulated} {segment}", segment, MergeAction.APPEND

    if previous and incoming in previous and len(previous) > len(incoming):
        return accumulated, last_final, MergeAction.DISCARD

    if incoming == previous:
        return accumulated, last_final, MergeAction.DISCARD

    return f"{accumulated} {segment}", segment, MergeAction.APPEND
