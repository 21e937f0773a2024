from typing import Any

import httpx


class NaiveBayesAPIClient:
    """
    Lightweight client for the naive Bayes classification service.

    Every method returns the decoded JSON body and raises
    `httpx.HTTPStatusError` for 4xx/5xx responses.

    Examples
    --------
    >>> client = NaiveBayesAPIClient("http://localhost:8080")
    >>> client.create_model("demo")
    {'name': 'demo', 'classes': {}, 'observationCount': 0, 'vocabulary': []}
    >>> client.train("demo", ["China"], "Chinese Beijing")["observationCount"]
    1
    >>> client.predict("demo", "Chinese")["best_fit"]["name"]
    'China'
    """

    def __init__(self, url: str, _client: httpx.Client | None = None) -> None:
        """
        Parameters
        ----------
        url : str
            Base URL of the service (no trailing slash).
        _client : httpx.Client | None
            Optional underlying httpx client, e.g. a FastAPI `TestClient`.
        """
        self._client: httpx.Client = _client or httpx.Client()
        self._url: str = url.rstrip("/")

    def create_model(
        self, name: str, overwrite: bool = False, model: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """
        Create a model, empty unless a full `model` payload is given.

        Parameters
        ----------
        name : str
            Name of the new model. Overrides any `name` inside `model`.
        overwrite : bool
            Replace an existing model of the same name.
        model : dict[str, Any] | None
            Full model payload, as returned by `get_model`, to import.

        Returns
        -------
        dict[str, Any]
            The stored model.
        """
        payload = {**(model or {}), "name": name}
        params = {"overwrite": "1"} if overwrite else None
        return self._request("POST", "/model", payload, params).json()

    def get_model(self, name: str) -> dict[str, Any]:
        """
        Fetch a model by name.

        Parameters
        ----------
        name : str
            Name of the model. The service loads it from disk if needed.

        Returns
        -------
        dict[str, Any]
            The model, with `classes`, `observationCount` and `vocabulary`.
        """
        return self._request("GET", f"/model/{name}").json()

    def list_models(self, load_all: bool = False) -> list[dict[str, Any]]:
        """
        List the models held in memory by the service, sorted by name.

        Parameters
        ----------
        load_all : bool
            Ask the service to load every stored model before listing.

        Returns
        -------
        list[dict[str, Any]]
            One entry per model.
        """
        params = {"load_all": "1"} if load_all else None
        return self._request("GET", "/models", params=params).json()

    def delete_model(self, name: str) -> None:
        """
        Delete a model from the service's memory and storage.

        Parameters
        ----------
        name : str
            Name of the model to delete.
        """
        self._request("DELETE", f"/model/{name}")

    def train(self, name: str, classes: list[str], text: str) -> dict[str, Any]:
        """
        Train the named model with one labeled text.

        Parameters
        ----------
        name : str
            Name of the model to train.
        classes : list[str]
            Labels of the text. At least one is required.
        text : str
            Text to learn from, split into words on single spaces.

        Returns
        -------
        dict[str, Any]
            The updated model.
        """
        return self._request(
            "POST", f"/model/{name}/train", {"classes": classes, "text": text}
        ).json()

    def predict(self, name: str, text: str) -> dict[str, Any]:
        """
        Score a text against the named model.

        Parameters
        ----------
        name : str
            Name of a trained model.
        text : str
            Text to classify.

        Returns
        -------
        dict[str, Any]
            ``{"prediction": {class: score, ...}, "best_fit": {"name", "score"}}``
        """
        return self._request("POST", f"/model/{name}/predict", {"text": text}).json()

    def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        response = self._client.request(
            method, f"{self._url}{path}", json=payload, params=params
        )
        response.raise_for_status()
        return response
