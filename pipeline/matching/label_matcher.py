# File: pipeline/matching/label_matcher.py

import logging  # For logging match outcomes
from difflib import SequenceMatcher  # For longest common substring scoring
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from config.logger_config import configure_logger
from pipeline.matching.disambiguation import OPTION_A, OPTION_B, DisambiguationPrompt, FirstOptionPrompt


class MatchSentinel:
    """Marker returned instead of an index when a label cannot be matched."""

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return self.name

    def __bool__(self) -> bool:
        return False


NO_MATCH = MatchSentinel("NO_MATCH")
AMBIGUOUS = MatchSentinel("AMBIGUOUS")

MatchResult = Union[int, MatchSentinel]


def longest_common_substring(left: str, right: str) -> int:
    """
    Length of the longest contiguous run of characters shared by both strings.
    """
    if not left or not right:
        return 0
    matcher = SequenceMatcher(None, left, right, autojunk=False)
    return matcher.find_longest_match(0, len(left), 0, len(right)).size


class CandidateLabelSet:
    """
    Immutable ordered (accession, label) pairs forming the universe of one match.
    """

    def __init__(self, pairs: Iterable[Tuple[str, Optional[str]]]):
        self._pairs: Tuple[Tuple[str, Optional[str]], ...] = tuple((accession, label) for accession, label in pairs)

    @classmethod
    def from_records(cls, records, accession_column: str, label_column: str) -> "CandidateLabelSet":
        """Builds the set from two columns of a DataFrame, keeping row order."""
        pairs = []
        for accession, label in zip(records[accession_column], records[label_column]):
            pairs.append((accession, label if isinstance(label, str) else None))
        return cls(pairs)

    @property
    def labels(self) -> List[Optional[str]]:
        return [label for _, label in self._pairs]

    def accession_at(self, index: int) -> str:
        return self._pairs[index][0]

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self):
        return iter(self._pairs)


class LabelMatcher:
    """
    Matches a free-text label against candidate labels by longest common substring.

    One best candidate is returned directly; a tie between exactly two is handed to
    the injected DisambiguationPrompt; no candidate or a wider tie yields NO_MATCH.

    Attributes:
        prompt (DisambiguationPrompt): Resolves two-way ties.
        case_sensitive (bool): Compare labels as given when True.
    """

    def __init__(self, prompt: Optional[DisambiguationPrompt] = None, case_sensitive: bool = True, debug: bool = False):
        self.prompt = prompt or FirstOptionPrompt()
        self.case_sensitive = case_sensitive
        self.logger = configure_logger(
            name="LabelMatcher",
            log_file="label_matcher.log",
            level=logging.DEBUG if debug else logging.INFO,
        )

    def score(self, query: str, candidate: str) -> int:
        if not self.case_sensitive:
            query, candidate = query.lower(), candidate.lower()
        return longest_common_substring(query, candidate)

    def match(self, query_label: str, candidates: Sequence[Optional[str]]) -> MatchResult:
        """
        Finds the candidate sharing the longest substring with query_label.

        Args:
            query_label (str): Label to match, e.g. a count matrix column name.
            candidates (Sequence[Optional[str]]): Candidate labels; None entries are ignored.

        Returns:
            MatchResult: Index into candidates, AMBIGUOUS when the prompt declined a two-way
            tie, or NO_MATCH.
        """
        if not query_label:
            return NO_MATCH

        # Null labels are dropped before scoring, but indexes refer to the original sequence
        scored = [
            (index, self.score(query_label, candidate))
            for index, candidate in enumerate(candidates)
            if isinstance(candidate, str)
        ]
        best = max((length for _, length in scored), default=0)
        if best == 0:
            self.logger.debug(f"No candidate shares any text with '{query_label}'.")
            return NO_MATCH

        winners = [index for index, length in scored if length == best]
        if len(winners) == 1:
            return winners[0]

        if len(winners) == 2:
            first, second = winners
            choice = self.prompt.resolve(query_label, candidates[first], candidates[second])
            if choice == OPTION_A:
                return first
            if choice == OPTION_B:
                return second
            self.logger.info(f"Two-way tie for '{query_label}' left unresolved.")
            return AMBIGUOUS

        self.logger.info(f"{len(winners)} candidates tie for '{query_label}'; leaving it unmatched.")
        return NO_MATCH

    def match_accession(self, query_label: str, candidate_set: CandidateLabelSet) -> Optional[str]:
        """
        Matches against a CandidateLabelSet and returns the winning accession, or None.
        """
        result = self.match(query_label, candidate_set.labels)
        if isinstance(result, MatchSentinel):
            return None
        return candidate_set.accession_at(result)
