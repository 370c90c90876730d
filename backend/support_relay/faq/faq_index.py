"""
FAQ index with keyword relevance scoring.
Answers common questions directly without a provider call.

Version: 1.0.0
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

# Words of this length or shorter are ignored when scoring
MIN_WORD_LENGTH = 3

QUESTION_MATCH_SCORE = 3
ANSWER_MATCH_SCORE = 1

DEFAULT_MATCH_THRESHOLD = 3

DEFAULT_FAQ_PATH = Path(__file__).resolve().parent.parent / "data" / "faqs.json"


class FAQDataError(Exception):
    """Raised when FAQ data cannot be loaded or is malformed."""
    pass


@dataclass(frozen=True)
class FAQEntry:
    """Static question/answer/category record."""
    id: Any
    question: str
    answer: str
    category: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "question": self.question,
            "answer": self.answer,
            "category": self.category
        }


@dataclass(frozen=True)
class FAQMatch:
    """FAQ entry with its relevance score for a query."""
    entry: FAQEntry
    relevance_score: int

    def to_dict(self) -> Dict[str, Any]:
        data = self.entry.to_dict()
        data["relevance_score"] = self.relevance_score
        return data


def query_terms(query: str) -> List[str]:
    """
    Split a query into scoring terms.

    Lower-cases the query, splits on whitespace and keeps only words longer
    than three characters.
    """
    if not query:
        return []
    return [word for word in query.lower().split() if len(word) > MIN_WORD_LENGTH]


class FAQIndex:
    """
    Read-only FAQ collection with keyword scoring.

    Each query word found in the lower-cased question adds 3 points and each
    found in the lower-cased answer adds 1 point. Matching is by substring.
    Entries scoring 0 are excluded; ties keep their original order.
    """

    def __init__(self, entries: Sequence[FAQEntry]):
        self._entries: tuple = tuple(entries)
        # Lower-cased text is computed once; entries never change
        self._lowered = [
            (entry.question.lower(), entry.answer.lower())
            for entry in self._entries
        ]
        logger.info(f"FAQIndex loaded {len(self._entries)} FAQs")

    @classmethod
    def from_records(cls, records: Sequence[Dict[str, Any]]) -> 'FAQIndex':
        """
        Build an index from raw records.

        Records without an ``id`` get their 1-based position as id.

        Raises:
            FAQDataError: If a record is missing a required field
        """
        entries = []
        for position, record in enumerate(records, start=1):
            if not isinstance(record, dict):
                raise FAQDataError(f"FAQ record {position} is not an object")

            missing = [k for k in ("question", "answer", "category") if not record.get(k)]
            if missing:
                raise FAQDataError(
                    f"FAQ record {position} is missing fields: {', '.join(missing)}"
                )

            entries.append(FAQEntry(
                id=record.get("id", position),
                question=str(record["question"]),
                answer=str(record["answer"]),
                category=str(record["category"])
            ))

        return cls(entries)

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]] = None) -> 'FAQIndex':
        """
        Load FAQs from a JSON file containing a list of records.

        Args:
            path: JSON file path (None or empty = bundled data/faqs.json)

        Raises:
            FAQDataError: If the file is missing or malformed
        """
        faq_path = Path(path) if path else DEFAULT_FAQ_PATH

        try:
            with open(faq_path, "r", encoding="utf-8") as f:
                records = json.load(f)
        except FileNotFoundError:
            raise FAQDataError(f"FAQ file not found: {faq_path}")
        except json.JSONDecodeError as e:
            raise FAQDataError(f"FAQ file {faq_path} is not valid JSON: {e}")

        if not isinstance(records, list):
            raise FAQDataError(f"FAQ file {faq_path} must contain a JSON list")

        logger.info(f"Loading FAQs from {faq_path}")
        return cls.from_records(records)

    def __len__(self) -> int:
        return len(self._entries)

    def score(self, entry_index: int, terms: Sequence[str]) -> int:
        question, answer = self._lowered[entry_index]
        total = 0
        for word in terms:
            if word in question:
                total += QUESTION_MATCH_SCORE
            if word in answer:
                total += ANSWER_MATCH_SCORE
        return total

    def search(self, query: str) -> List[FAQMatch]:
        """
        Score every entry against the query.

        Returns:
            Matches with a positive score, highest first
        """
        terms = query_terms(query)
        if not terms:
            return []

        matches = []
        for i, entry in enumerate(self._entries):
            relevance = self.score(i, terms)
            if relevance > 0:
                matches.append(FAQMatch(entry=entry, relevance_score=relevance))

        # sorted() is stable, so ties keep file order
        return sorted(matches, key=lambda m: m.relevance_score, reverse=True)

    def best_match(
        self,
        query: str,
        threshold: int = DEFAULT_MATCH_THRESHOLD
    ) -> Optional[FAQMatch]:
        """Top match if its score reaches the threshold, else None."""
        matches = self.search(query)
        if matches and matches[0].relevance_score >= threshold:
            return matches[0]
        return None

    def by_category(self, category: str) -> List[FAQEntry]:
        return [entry for entry in self._entries if entry.category == category]

    def categories(self) -> List[str]:
        """Distinct categories in first-seen order."""
        return list(dict.fromkeys(entry.category for entry in self._entries))

    def all(self) -> List[FAQEntry]:
        return list(self._entries)

    def get(self, faq_id: Any) -> Optional[FAQEntry]:
        for entry in self._entries:
            if entry.id == faq_id:
                return entry
        return None


__all__ = [
    'FAQIndex',
    'FAQEntry',
    'FAQMatch',
    'FAQDataError',
    'query_terms',
    'DEFAULT_MATCH_THRESHOLD',
    'DEFAULT_FAQ_PATH'
]
