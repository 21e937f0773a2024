from pydantic import BaseModel, Field


class TrainRequest(BaseModel):
    """
    Schema for `/model/{name}/train` POST requests.

    Attributes
    ----------
    classes : list[str]
        Labels the text belongs to.
    text : str
        Raw text. Split on single spaces into words.
    """

    classes: list[str] = Field(min_length=1, examples=[["China"]])
    text: str = Field(examples=["Chinese Beijing Chinese"])


class PredictRequest(BaseModel):
    """
    Schema for `/model/{name}/predict` POST requests.

    Attributes
    ----------
    text : str
        Raw text to classify. Split on single spaces into words.
    """

    text: str = Field(examples=["Chinese Chinese Chinese Tokyo Japan"])


class BestFit(BaseModel):
    """Highest scoring class of a prediction. `name` is empty when no class exists."""

    name: str
    score: float


class PredictResponse(BaseModel):
    """
    Schema for `/model/{name}/predict` responses.

    Attributes
    ----------
    prediction : dict[str, float]
        Unnormalized likelihood for every class of the model.
    best_fit : BestFit
        The class with the highest likelihood.
    """

    prediction: dict[str, float]
    best_fit: BestFit


class HealthResponse(BaseModel):
    """
    Schema for `/health` responses.

    Attributes
    ----------
    status : str
        Usually `'ok'` when operational.
    models_loaded : int
        Number of models currently held in memory.
    """

    status: str
    models_loaded: int
