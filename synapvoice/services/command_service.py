"""Transcript classification into controller intents."""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Pattern, Tuple

from ..config import NavigationDestination, settings, Settings
from ..models.internal_models import Command, Intent

ENROLL_TARGET = re.compile(r"enroll\s+(\w+)")


@dataclass
class IntentRule:
    """One ``(predicate, intent)`` pair; rules are tried in order."""

    intent: Intent
    matches: Callable[[str], bool]


def _contains_any(*tokens: str) -> Callable[[str], bool]:
    return lambda text: any(token in text for token in tokens)


def _destination_pattern(destination: NavigationDestination) -> Pattern:
    keywords = "|".join(re.escape(keyword.lower()) for keyword in destination.keywords)
    return re.compile(rf"\b(?:{keywords})s?\b")


class CommandInterpreter:
    """
    Classifies free-form transcripts by fixed precedence, first match wins:
    enroll, authenticate, help, reset-all, navigate, unmatched.
    """

    def __init__(
        self,
        destinations: Optional[List[NavigationDestination]] = None,
        config: Optional[Settings] = None
    ):
        config = config or settings
        self.default_profile = config.default_profile
        self.stop_words = {word.lower() for word in config.enroll_stop_words}
        self.destinations: List[Tuple[NavigationDestination, Pattern]] = [
            (destination, _destination_pattern(destination))
            for destination in (destinations if destinations is not None else config.navigation_destinations)
        ]
        self.rules = [
            IntentRule(Intent.ENROLL, _contains_any("enroll")),
            IntentRule(Intent.AUTHENTICATE, _contains_any("verify", "authenticate", "login", "unlock")),
            IntentRule(Intent.HELP, _contains_any("help", "what can")),
            IntentRule(Intent.RESET, lambda text: "reset" in text and "all" in text),
            IntentRule(Intent.NAVIGATE, lambda text: self.match_destination(text) is not None),
        ]

    @staticmethod
    def normalize(transcript: str) -> str:
        return " ".join(transcript.lower().split())

    def match_destination(self, text: str) -> Optional[NavigationDestination]:
        for destination, pattern in self.destinations:
            if pattern.search(text):
                return destination
        return None

    def enroll_target(self, text: str) -> str:
        """Name after ``enroll`` unless it is a filler word; else the default profile."""
        match = ENROLL_TARGET.search(text)
        if match and match.group(1) not in self.stop_words:
            return match.group(1)
        return self.default_profile

    def classify(self, transcript: str) -> Command:
        text = self.normalize(transcript)
        for rule in self.rules:
            if not rule.matches(text):
                continue
            if rule.intent is Intent.ENROLL:
                return Command(intent=rule.intent, transcript=text, target=self.enroll_target(text))
            if rule.intent is Intent.NAVIGATE:
                return Command(intent=rule.intent, transcript=text, destination=self.match_destination(text))
            return Command(intent=rule.intent, transcript=text)
        return Command(intent=Intent.UNMATCHED, transcript=text)

    def help_summary(self) -> str:
        lines = [destination.label or destination.name for destination, _ in self.destinations]
        return "COMMANDS:\n" + "\n".join(f"• {line}" for line in lines)

    def help_utterance(self) -> str:
        # First word of each menu entry, e.g. "Home / Dashboard" -> "home"
        names = [(d.label or d.name).split("/")[0].strip().lower() for d, _ in self.destinations]
        names += ["unlock", "enroll"]
        return f"Available commands: {', '.join(names)}, and help."
