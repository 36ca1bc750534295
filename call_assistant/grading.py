"""
Call grading.

``GradingEngine`` is the interface the session side depends on.
``KeywordGradingEngine`` is the default engine: fixed keyword-counting rules
over the final transcript, each sub-score clamped to 1..10.
"""

import re
from typing import Dict, List, Protocol

from call_assistant.models.grading import GradeResult, GradeScores

ObjectionMap = Dict[str, Dict[str, List[str]]]

POSITIVE_KEYWORDS = ["great", "happy", "help", "understand", "thank", "appreciate"]
NEGATIVE_KEYWORDS = ["unfortunately", "sorry", "cannot", "problem", "difficult"]
FILLER_WORDS = ["um", "uh", "like", "you know", "sort of"]
PROFESSIONAL_PHRASES = ["would you be interested", "i can help", "let me explain", "thank you"]
BASELINE_SCORE = 7


def clamp_score(score: float) -> int:
    # Python's round() is banker's rounding; grades round half up
    return min(max(int(score + 0.5), 1), 10)


class GradingEngine(Protocol):
    def grade(self, transcript: str, script: str, objections: ObjectionMap) -> GradeResult: ...


class KeywordGradingEngine:
    """Scores tone, script adherence, presentation, objection handling and speaking."""

    def grade(self, transcript: str, script: str, objections: ObjectionMap) -> GradeResult:
        text = transcript.lower()
        tone = self.tone_score(text)
        on_script = self.script_adherence_score(text, script)
        presentation = self.presentation_score(text)
        objection_handling = self.objection_handling_score(text, objections)
        speaking = self.speaking_score(transcript)
        overall = clamp_score((tone + on_script + presentation + objection_handling + speaking) / 5)

        scores = GradeScores(
            tone=tone,
            on_script=on_script,
            presentation=presentation,
            objection_handling=objection_handling,
            speaking=speaking,
            overall=overall,
        )
        return GradeResult(grades=scores, notes=self.performance_notes(scores))

    def tone_score(self, text: str) -> int:
        score = BASELINE_SCORE
        score += 0.5 * sum(1 for word in POSITIVE_KEYWORDS if word in text)
        score -= 0.5 * sum(1 for word in NEGATIVE_KEYWORDS if word in text)
        return clamp_score(score)

    def script_adherence_score(self, text: str, script: str) -> int:
        key_points = [
            re.sub(r"[\[\]]", "", line).strip().lower()
            for line in script.splitlines()
            if line.strip()
        ]
        if not key_points:
            return BASELINE_SCORE
        matched = sum(1 for point in key_points if point in text)
        return clamp_score(matched / len(key_points) * 10)

    def presentation_score(self, text: str) -> int:
        score = BASELINE_SCORE
        for word in FILLER_WORDS:
            score -= 0.2 * len(re.findall(re.escape(word), text))
        score += 0.5 * sum(1 for phrase in PROFESSIONAL_PHRASES if phrase in text)
        return clamp_score(score)

    def objection_handling_score(self, text: str, objections: ObjectionMap) -> int:
        score = BASELINE_SCORE
        objection_count = 0
        for objection_list in objections.values():
            for objection, responses in objection_list.items():
                if objection.lower() in text:
                    objection_count += 1
                    score += sum(1 for response in responses if response.lower() in text)
        if objection_count == 0:
            return BASELINE_SCORE
        return clamp_score(score)

    def speaking_score(self, transcript: str) -> int:
        words = transcript.split()
        if not words:
            return BASELINE_SCORE
        score = BASELINE_SCORE
        avg_word_length = sum(len(word) for word in words) / len(words)
        if avg_word_length < 3 or avg_word_length > 8:
            score -= 1
        sentences = [s for s in re.split(r"[.!?]+", transcript) if s.strip()]
        if sentences:
            avg_sentence_length = sum(len(s.split()) for s in sentences) / len(sentences)
            if 5 < avg_sentence_length < 20:
                score += 1
        return clamp_score(score)

    def performance_notes(self, scores: GradeScores) -> str:
        notes = []
        if scores.tone < 7:
            notes.append("Consider maintaining a more positive tone throughout the call.")
        if scores.on_script < 7:
            notes.append("Try to follow the script more closely while keeping conversation natural.")
        if scores.presentation < 7:
            notes.append("Work on reducing filler words and maintaining professional language.")
        if scores.objection_handling < 7:
            notes.append("Review objection handling techniques and practice standard responses.")
        if scores.speaking < 7:
            notes.append("Focus on clear articulation and appropriate pacing.")

        if scores.overall >= 8:
            notes.insert(0, "Outstanding performance! Excellent work across all metrics.")
        elif scores.overall >= 6:
            notes.insert(0, "Good performance with room for improvement in specific areas.")
        else:
            notes.insert(0, "Additional training and practice recommended to improve overall performance.")
        return "\n".join(notes)
