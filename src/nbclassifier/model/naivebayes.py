"""
Multinomial naive Bayes text classifier.

Based on: http://nlp.stanford.edu/IR-book/html/htmledition/naive-bayes-text-classification-1.html

A `Model` is trained one `Observation` at a time and scores every class it
knows about for a new observation. All probability arithmetic happens in the
log domain, only the final per-class score is exponentiated.
"""

import logging
import math
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from nbclassifier.model.errors import NotTrainedError
from nbclassifier.model.observation import Observation

logger = logging.getLogger(__name__)


class Prediction(dict[str, float]):
    """
    Mapping of class name to unnormalized likelihood for one observation.

    Scores are ``P(class) * P(observation | class)`` and are not constrained
    to sum to 1. Divide each score by the sum of all scores to obtain
    posterior probabilities.
    """

    def best_fit(self) -> tuple[str, float]:
        """
        Reduce the prediction to its highest scoring class.

        Classes are visited in ascending name order and the running best is
        only replaced by a strictly greater score, so exact ties resolve to the
        lexicographically smallest class name.

        Returns
        -------
        tuple[str, float]
            ``(class_name, score)``, or ``("", 0.0)`` for an empty prediction.
        """
        best: tuple[str, float] | None = None

        for class_name in sorted(self):
            score = self[class_name]
            if best is None or score > best[1]:
                best = (class_name, score)

        return best if best is not None else ("", 0.0)


class Class(BaseModel):
    """
    Aggregate word statistics of every training observation sharing a label.

    Attributes
    ----------
    name : str
        Label this class represents. Unique within a model.
    observation_count : int
        Number of training observations that carried this label.
    word_counts : dict[str, int]
        Accumulated occurrences of every word seen under this label.
    total_count : int
        Sum of `word_counts` values.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    observation_count: NonNegativeInt = 0
    word_counts: dict[str, NonNegativeInt] = Field(default_factory=dict)
    total_count: NonNegativeInt = 0

    @model_validator(mode="after")
    def _check_total_count(self) -> "Class":
        if self.total_count != sum(self.word_counts.values()):
            raise ValueError(
                f"class '{self.name}' totalCount {self.total_count} does not "
                "match the sum of its wordCounts"
            )
        return self

    def add_word(self, word: str, count: int) -> None:
        """Increment the count for `word` by `count`, keeping `total_count` in step."""
        self.word_counts[word] = self.word_counts.get(word, 0) + count
        self.total_count += count


class Model(BaseModel):
    """
    A named naive Bayes model: its classes, vocabulary and training count.

    Attributes
    ----------
    name : str
        Identity of the model. Also the stem of its file on disk.
    classes : dict[str, Class]
        Classes keyed by their name.
    observation_count : int
        Number of `train` calls, regardless of how many labels each carried.
    vocabulary : set[str]
        Every distinct word seen by any class. Serialized as a sorted list.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    classes: dict[str, Class] = Field(default_factory=dict)
    observation_count: NonNegativeInt = 0
    vocabulary: set[str] = Field(default_factory=set)

    @field_validator("vocabulary", mode="before")
    @classmethod
    def _vocabulary_from_mapping(cls, value: Any) -> Any:
        # Older model files store the vocabulary as {word: 1}.
        if isinstance(value, dict):
            return set(value)
        return value

    @field_serializer("vocabulary")
    def _serialize_vocabulary(self, vocabulary: set[str]) -> list[str]:
        return sorted(vocabulary)

    @model_validator(mode="after")
    def _check_classes(self) -> "Model":
        for class_name, model_class in self.classes.items():
            if class_name != model_class.name:
                raise ValueError(
                    f"class keyed as '{class_name}' is named '{model_class.name}'"
                )

            # Each training observation credits a label at most once.
            if model_class.observation_count > self.observation_count:
                raise ValueError(
                    f"class '{class_name}' observationCount "
                    f"{model_class.observation_count} exceeds the model's "
                    f"{self.observation_count}"
                )

            missing = model_class.word_counts.keys() - self.vocabulary
            if missing:
                raise ValueError(
                    f"class '{class_name}' has words missing from the vocabulary: "
                    f"{sorted(missing)}"
                )
        return self

    def train(self, observation: Observation) -> None:
        """
        Update the model with one labeled observation.

        Every label's class is created on first sight, credited with one
        observation and all of the observation's word counts. The model's own
        `observation_count` goes up by exactly one per call.
        """
        for class_name in observation.classes:
            model_class = self.classes.get(class_name)
            if model_class is None:
                model_class = self.classes[class_name] = Class(name=class_name)

            model_class.observation_count += 1

            for word, count in observation.word_counts.items():
                model_class.add_word(word, count)
                self.vocabulary.add(word)

        self.observation_count += 1

        logger.debug(
            "Trained model",
            extra={
                "model": self.name,
                "classes": sorted(observation.classes),
                "observation_count": self.observation_count,
            },
        )

    def predict(self, observation: Observation) -> Prediction:
        """
        Score every known class for the given observation.

        Parameters
        ----------
        observation : Observation
            Text to classify. Its labels, if any, are ignored.

        Returns
        -------
        Prediction
            ``exp(log P(class) + log P(observation | class))`` per class.

        Raises
        ------
        NotTrainedError
            If the model has never been trained, as the class priors would
            divide by zero.
        """
        if self.observation_count == 0:
            raise NotTrainedError(self.name)

        vocabulary_size = len(self.vocabulary)
        prediction = Prediction()

        for model_class in self.classes.values():
            log_prior = self._class_log_prior(model_class)

            # A class without observations cannot be the source of any text.
            if log_prior == -math.inf:
                prediction[model_class.name] = 0.0
                continue

            log_likelihood = log_prior + self._class_log_conditional(
                model_class, observation, vocabulary_size
            )
            prediction[model_class.name] = math.exp(log_likelihood)

        return prediction

    def _class_log_prior(self, model_class: Class) -> float:
        # log P(class): share of training observations carrying this label.
        if model_class.observation_count == 0:
            return -math.inf
        return math.log(model_class.observation_count / self.observation_count)

    @staticmethod
    def _class_log_conditional(
        model_class: Class, observation: Observation, vocabulary_size: int
    ) -> float:
        """
        log P(observation | class), the sum of per-word log probabilities.

        Each word uses Laplace (add-one) smoothing over the model-wide
        vocabulary, ``(count(word, class) + 1) / (total(class) + |V|)``, so a
        word the class never saw still has a non-zero probability.
        """
        denominator = model_class.total_count + vocabulary_size
        log_probability = 0.0

        for word, count in observation.word_counts.items():
            numerator = model_class.word_counts.get(word, 0) + 1
            log_probability += math.log(numerator / denominator) * count

        return log_probability
