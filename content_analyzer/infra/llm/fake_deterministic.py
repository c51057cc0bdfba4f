"""Client d'analyse déterministe (hors-ligne) pour dev/tests."""

from __future__ import annotations

import json
import re
from collections import Counter
from typing import Any

from content_analyzer.infra.llm.base import AnalysisClient

_POSITIVE = {"love", "great", "excellent", "good", "amazing", "happy", "like", "best", "wonderful"}
_NEGATIVE = {"hate", "bad", "terrible", "awful", "worst", "sad", "poor", "broken", "angry"}
_STOPWORDS = {
    "the", "a", "an", "and", "or", "but", "is", "are", "was", "this", "that", "it", "i", "you",
    "to", "of", "in", "on", "for", "with", "my", "me", "we", "they", "be", "so", "very",
}
_WORD = re.compile(r"[a-zA-Z']+")


class DeterministicAnalysisClient(AnalysisClient):
    """Analyse par mots-clés; même texte -> même réponse, sans réseau."""

    provider = "fake"

    def _complete(self, prompt: str, timeout: float) -> tuple[str, dict[str, Any]]:
        content = prompt.rsplit("Text:\n", 1)[-1]
        words = [w.lower() for w in _WORD.findall(content)]
        pos = sum(w in _POSITIVE for w in words)
        neg = sum(w in _NEGATIVE for w in words)
        total = pos + neg
        score = 0.0 if total == 0 else round((pos - neg) / total, 3)
        label = "positive" if score > 0.2 else "negative" if score < -0.2 else "neutral"
        counts = Counter(
            w for w in words if w not in _STOPWORDS and w not in _POSITIVE | _NEGATIVE and len(w) > 2
        )
        data = {
            "sentiment": label,
            "sentiment_score": score,
            "topics": [w for w, _ in counts.most_common(5)],
            "summary": " ".join(content.split()[:20]),
        }
        text = json.dumps(data)
        return text, {"provider": self.provider, "output": data}
