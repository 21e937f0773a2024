from typing import Final

API_TITLE: Final[str] = "nbclassifier"
API_VERSION: Final[str] = "1.0.0"
