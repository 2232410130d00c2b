# recitescore/services/scoring_service.py
from __future__ import annotations

from dataclasses import dataclass

from rapidfuzz.distance import Levenshtein

from recitescore.services.text_normalizer import normalize

EXCELLENT_THRESHOLD = 0.95
VERY_GOOD_THRESHOLD = 0.80

NOTES_EXCELLENT = "Excellent recitation!"
NOTES_VERY_GOOD = "Very good! Almost perfect."
NOTES_NEEDS_WORK = "Good effort, needs improvement. Some differences found."
NOTES_NO_REFERENCE = (
    "Transcription complete. Accuracy could not be calculated as no target "
    "text was found for the assignment."
)


@dataclass(frozen=True)
class RecitationScore:
    accuracy: float
    notes: str
    scored: bool


def similarity(a: str, b: str) -> float:
    """
    1 - levenshtein(a, b) / max(len(a), len(b)); two empty strings score 1.0.
    Inputs are expected to be normalised already.
    """
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    distance = Levenshtein.distance(a, b)
    return 1.0 - distance / longest


def accuracy_band(accuracy: float) -> str:
    if accuracy >= EXCELLENT_THRESHOLD:
        return NOTES_EXCELLENT
    if accuracy >= VERY_GOOD_THRESHOLD:
        return NOTES_VERY_GOOD
    return NOTES_NEEDS_WORK


def score_recitation(transcript: str, reference: str | None) -> RecitationScore:
    """
    Normalise both texts and score the transcript against the reference.

    Without a reference text scoring is skipped: accuracy is 0 and the notes
    say why, so consumers never read it as a real score.
    """
    if not reference or not reference.strip():
        return RecitationScore(accuracy=0.0, notes=NOTES_NO_REFERENCE, scored=False)

    accuracy = similarity(normalize(transcript), normalize(reference))
    return RecitationScore(accuracy=accuracy, notes=accuracy_band(accuracy), scored=True)
