"""Text normalization utilities for consistent matching."""

import re
import unicodedata
from typing import Callable, List, Optional, Sequence

NormalizationHook = Callable[[str], str]

_WORD_EDGE = re.compile(r"^\W+|\W+$")


def strip_diacritics(text: str) -> str:
    """Remove combining marks so "José" matches "Jose"."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def decompose_hangul(text: str) -> str:
    """Split precomposed Hangul syllables into jamo.

    Edit distance over jamo counts a single wrong consonant or vowel as one
    edit instead of a whole-syllable substitution.
    """
    return unicodedata.normalize("NFD", text)


class TextNormalizer:
    """Handles text normalization before comparison."""

    def __init__(
        self,
        case_sensitive: bool = False,
        hooks: Optional[Sequence[NormalizationHook]] = None,
    ) -> None:
        """
        Initialize the normalizer.

        Args:
            case_sensitive: Keep the original case when True
            hooks: Extra transforms applied in order after case folding
        """
        self.case_sensitive = case_sensitive
        self.hooks: List[NormalizationHook] = list(hooks or [])

    def normalize(self, text: Optional[str]) -> str:
        """
        Normalize text for comparison.

        Args:
            text: Input text

        Returns:
            Normalized text ("" for empty or None input)
        """
        if not text:
            return ""

        normalized = str(text).strip()
        if not self.case_sensitive:
            normalized = normalized.casefold()

        for hook in self.hooks:
            normalized = hook(normalized)

        return normalized

    def extract_terms(self, text: Optional[str]) -> List[str]:
        """
        Split free text into lowercase word terms.

        Args:
            text: Input text

        Returns:
            List of non-empty terms with surrounding punctuation removed
        """
        if not text:
            return []

        terms = []
        for word in str(text).lower().split():
            word = _WORD_EDGE.sub("", word)
            if word:
                terms.append(word)
        return terms
