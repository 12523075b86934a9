from dataclasses import dataclass
from typing import Any, Dict, Mapping, Union


@dataclass(frozen=True)
class CreatePlaylistRequest:
    name: str
    description: str = ""
    public: bool = False
    collaborative: bool = False

    @classmethod
    def coerce(cls, request: Union["CreatePlaylistRequest", Mapping[str, Any]]) -> "CreatePlaylistRequest":
        if isinstance(request, cls):
            return request
        public = request.get("public")
        collaborative = request.get("collaborative")
        return cls(
            name=str(request["name"]),
            description=str(request.get("description") or ""),
            public=False if public is None else bool(public),
            collaborative=False if collaborative is None else bool(collaborative),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "public": self.public,
            "collaborative": self.collaborative,
        }
