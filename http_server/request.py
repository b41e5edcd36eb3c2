import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Request:
    method: str
    path: str
    headers: dict[str, str]
    query_params: dict[str, list]
    body: bytes
    version: str
    path_params: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        try:
            self._json = json.loads(self.body) if self.body else None
            self._valid_json = True
        except ValueError:
            self._json = None
            self._valid_json = False

    @property
    def has_valid_json(self) -> bool:
        """False when a body was sent but could not be decoded as JSON."""
        return self._valid_json

    def json(self) -> Any:
        """The decoded JSON body, or None when absent or invalid."""
        return self._json
