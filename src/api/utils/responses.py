"""JSON responses serialized with orjson."""

from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ORJSONResponse(JSONResponse):
    """JSONResponse that renders with orjson and sorted keys.

    Used as the application's default response class so the health probe and
    the error handlers share one serializer. Pydantic models are dumped in
    JSON mode first, so datetimes come out as ISO 8601 strings.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - any JSON-serializable content
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json")
        return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)
