from collections import Counter
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field, PositiveInt

# Tokens are separated by exactly one space. Runs of spaces produce empty tokens.
WORD_SEPARATOR = " "


class Observation(BaseModel):
    """
    One piece of text reduced to word counts, optionally labeled with classes.

    Observations used for training carry one or more class labels; those used
    for prediction carry none. Instances are frozen once built.

    Attributes
    ----------
    classes : frozenset[str]
        Labels this text belongs to.
    word_counts : dict[str, int]
        Occurrences of every distinct token. Tokens that never occur have no
        entry, so every stored count is at least 1.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    classes: frozenset[str] = frozenset()
    word_counts: dict[str, PositiveInt] = Field(
        default_factory=dict, alias="wordCounts"
    )

    @classmethod
    def from_text(cls, classes: Iterable[str], text: str) -> "Observation":
        """
        Build an observation by splitting `text` on single spaces.

        No trimming or whitespace normalization is applied: leading, trailing
        and repeated spaces yield the empty string as a word, and empty text
        yields ``{"": 1}``.

        Parameters
        ----------
        classes : Iterable[str]
            Class labels for the observation (empty for prediction).
        text : str
            Raw text to tokenize.

        Returns
        -------
        Observation
            The labeled word counts.
        """
        word_counts = Counter(text.split(WORD_SEPARATOR))
        return cls(classes=frozenset(classes), word_counts=dict(word_counts))
