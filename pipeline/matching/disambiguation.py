# File: pipeline/matching/disambiguation.py

from abc import ABC, abstractmethod
from typing import Callable, Optional

OPTION_A = "a"
OPTION_B = "b"


class DisambiguationPrompt(ABC):
    """
    Decides between two equally good label matches.
    """

    @abstractmethod
    def resolve(self, query: str, option_a: str, option_b: str) -> Optional[str]:
        """
        Chooses between two candidate labels for a query label.

        Args:
            query (str): The label being matched.
            option_a (str): First tied candidate (earlier in candidate order).
            option_b (str): Second tied candidate.

        Returns:
            Optional[str]: "a", "b", or None to leave the query unmatched.
        """
        pass


class FirstOptionPrompt(DisambiguationPrompt):
    """Non-interactive policy: always picks the earlier candidate."""

    def resolve(self, query: str, option_a: str, option_b: str) -> Optional[str]:
        return OPTION_A


class DeferringPrompt(DisambiguationPrompt):
    """Non-interactive policy: never decides, so the match is reported as ambiguous."""

    def resolve(self, query: str, option_a: str, option_b: str) -> Optional[str]:
        return None


class ConsolePrompt(DisambiguationPrompt):
    """
    Blocking human-in-the-loop prompt on the terminal.

    Answers other than "a", "b" or "s" (skip) are asked again.
    """

    def __init__(self, input_func: Callable[[str], str] = input, output_func: Callable[[str], None] = print):
        self.input_func = input_func
        self.output_func = output_func

    def resolve(self, query: str, option_a: str, option_b: str) -> Optional[str]:
        self.output_func(f"Two labels match '{query}' equally well:")
        self.output_func(f"  [a] {option_a}")
        self.output_func(f"  [b] {option_b}")
        while True:
            answer = self.input_func("Choose a, b, or s to skip: ").strip().lower()
            if answer in (OPTION_A, OPTION_B):
                return answer
            if answer == "s":
                return None
            self.output_func(f"Unrecognised answer '{answer}'.")
